"""Action interface: the boundary between the engine and real build work.

An action is any callable ``action(definition, context)`` returning a
mapping of output location to signature (or None). It performs the
side effects of a target: invoking a toolchain, building an image,
copying a file. Failures are signaled by raising one of the
``ActionError`` subclasses below; anything else raised is captured by
the Executor as ``ActionFailed``.

The capability Protocols describe the external collaborators the
standard target variants call through. Defaults live in
``installforge.backends``; installer authors may supply their own.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from installforge.models.targets import TargetDefinition


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ActionError(Exception):
    """Base class for failures signaled by an action."""

    kind = "action_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def reason(self) -> str:
        """Human-readable reason recorded in the execution report."""
        return self.message


class ActionFailed(ActionError):
    """The build or install step ran and failed."""

    kind = "action_failed"


class MissingInput(ActionError):
    """A required input location does not exist."""

    kind = "missing_input"

    def __init__(self, location: str) -> None:
        super().__init__(f"Missing input '{location}' (did a previous target fail?)")
        self.location = location


class BuildEnvironmentError(ActionError):
    """The underlying toolchain or container engine is unavailable."""

    kind = "environment_error"


class AbortedByUser(ActionError):
    """The run was cancelled while this action was in progress."""

    kind = "aborted_by_user"

    def __init__(self, message: str = "aborted by user") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Scoped working context
# ---------------------------------------------------------------------------


class ActionContext:
    """Everything an action may use besides its own definition.

    Parameters
    ----------
    target_id:
        The target being executed.
    work_dir:
        Scoped scratch directory for this target, created on first access.
    input_signatures:
        Signatures of the target's inputs observed just before the action.
    env:
        Extra environment variables for spawned processes.
    cancel_event:
        Set when the run is being cancelled.
    dry_run:
        True when actions should describe rather than perform work.
    """

    def __init__(
        self,
        target_id: str,
        work_dir: Path,
        *,
        input_signatures: Mapping[str, str | None] | None = None,
        env: Mapping[str, str] | None = None,
        cancel_event: threading.Event | None = None,
        dry_run: bool = False,
    ) -> None:
        self.target_id = target_id
        self._work_dir = Path(work_dir)
        self.input_signatures: dict[str, str | None] = dict(input_signatures or {})
        self.env: dict[str, str] = dict(env or {})
        self.cancel_event = cancel_event or threading.Event()
        self.dry_run = dry_run
        self.logger = logging.getLogger(f"installforge.target.{target_id}")

    @property
    def work_dir(self) -> Path:
        self._work_dir.mkdir(parents=True, exist_ok=True)
        return self._work_dir

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        """Cooperative cancellation point for long-running actions."""
        if self.cancel_event.is_set():
            raise AbortedByUser()


# ---------------------------------------------------------------------------
# Action and capability protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Action(Protocol):
    """Callable performing a target's real work."""

    def __call__(
        self, definition: TargetDefinition, context: ActionContext
    ) -> Mapping[str, str] | None:
        ...


@runtime_checkable
class Toolchain(Protocol):
    """Native compiler toolchain (e.g. cargo)."""

    def compile(
        self,
        source: Path,
        context: ActionContext,
        *,
        packages: list[str] | None = None,
        release: bool = True,
        extra_args: list[str] | None = None,
    ) -> list[Path]:
        """Compile the component at *source*; return produced binaries."""
        ...


@runtime_checkable
class ImageBuilder(Protocol):
    """Container image builder (e.g. ``docker build``)."""

    def build(
        self,
        context_dir: Path,
        tag: str,
        context: ActionContext,
        *,
        dockerfile: Path | None = None,
        build_args: Mapping[str, str] | None = None,
    ) -> str:
        """Build an image from *context_dir*; return the image id."""
        ...

    def save(self, tag: str, archive: Path, context: ActionContext) -> None:
        """Export image *tag* to a tar archive."""
        ...


@runtime_checkable
class ContainerEngine(Protocol):
    """Container engine the built images are loaded into."""

    def load(self, archive: Path, context: ActionContext) -> str:
        """Load an image archive; return the loaded image reference."""
        ...

    def image_id(self, reference: str) -> str | None:
        """Return the id of a loaded image, or None if absent."""
        ...


@runtime_checkable
class FilePlacer(Protocol):
    """Places artifacts at their destination."""

    def place(
        self,
        source: Path,
        destination: Path,
        context: ActionContext,
        *,
        mode: int | None = None,
        link: bool = False,
    ) -> Path:
        """Copy or link *source* to *destination*; return the placed path."""
        ...


def describe_error(exc: BaseException) -> str:
    """Reason string for an exception raised inside an action."""
    if isinstance(exc, ActionError):
        return exc.reason
    text = str(exc) or exc.__class__.__name__
    return f"{exc.__class__.__name__}: {text}"


def coerce_outputs(result: Any) -> dict[str, str]:
    """Normalize an action's return value to ``{location: signature}``."""
    if result is None:
        return {}
    if not isinstance(result, Mapping):
        raise ActionFailed(
            f"Action returned {type(result).__name__}, expected a mapping of "
            f"output locations to signatures"
        )
    return {str(k): str(v) for k, v in result.items()}
