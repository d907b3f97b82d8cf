"""installforge monitor: Rich rendering of plans, reports and targets.

Modules
-------
renderer
    ``ReportRenderer`` turns ``Plan`` and ``ExecutionReport`` models into
    Rich renderables, plus one-line progress output during a run.
"""

from installforge.monitor.renderer import ReportRenderer

__all__ = ["ReportRenderer"]
