"""Executor: runs a plan's stale targets with bounded parallelism.

Scheduling happens on the calling thread; actions run on a thread pool.
The scheduler is the only writer of state transitions and fingerprints,
so neither needs coordination beyond the store's own write lock.

Failure handling:
- a failed target cascades SKIPPED to every not-yet-started dependent
- independent branches keep running unless ``fail_fast`` is set
- with ``fail_fast`` no new work starts, in-flight targets finish, and
  the run ends ABORTED
- on cancellation (event or KeyboardInterrupt) in-flight targets get a
  grace period, after which they are abandoned and marked FAILED
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from pathlib import Path

from installforge.core.actions import (
    ActionContext,
    ActionError,
    ActionFailed,
    MissingInput,
    coerce_outputs,
    describe_error,
)
from installforge.core.dependency_graph import DependencyGraph
from installforge.core.fingerprint_store import FingerprintStore, FingerprintStoreError
from installforge.core.hasher import combine_signatures, path_signature
from installforge.core.staleness import current_input_signatures, resolve_signature
from installforge.core.state_machine import TargetStateMachine
from installforge.models.config import ExecutionOptions
from installforge.models.fingerprints import (
    ABSENT_SIGNATURE,
    ARTIFACT_SCOPE,
    RUN_MARKER,
    FingerprintRecord,
    SignatureMode,
)
from installforge.models.plan import Plan
from installforge.models.reports import (
    ExecutionReport,
    ExitStatus,
    RunStatus,
    TargetOutcome,
)
from installforge.models.targets import (
    TargetDefinition,
    TargetState,
    TargetTransition,
    has_scheme,
)

logger = logging.getLogger(__name__)

ABORTED_BY_USER = "aborted by user"
ABANDONED = "abandoned after cancellation"

# Seconds between cancellation checks while waiting on workers.
_POLL_INTERVAL = 0.05

_WorkResult = tuple[dict[str, str], dict[str, str]]


def new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"if-{ts}-{uuid.uuid4().hex[:6]}"


class Executor:
    """Runs the stale targets of a plan.

    Parameters
    ----------
    graph:
        The frozen dependency graph the plan was computed from.
    store:
        Fingerprint store updated after every successful target.
    signature_mode:
        How file signatures are computed.
    work_root:
        Parent of the per-target scratch directories.
    env:
        Extra environment variables handed to every action context.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        store: FingerprintStore,
        *,
        signature_mode: SignatureMode = SignatureMode.CONTENT,
        work_root: Path = Path(".installforge") / "work",
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._graph = graph
        self._store = store
        self._mode = signature_mode
        self._work_root = Path(work_root)
        self._env = dict(env or {})
        self.status = RunStatus.NOT_STARTED

        self._counter_lock = threading.Lock()
        self._actions_invoked = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def execute(
        self,
        plan: Plan,
        options: ExecutionOptions | None = None,
        *,
        cancel_event: threading.Event | None = None,
        run_id: str | None = None,
        on_transition: Callable[[TargetTransition], None] | None = None,
    ) -> ExecutionReport:
        """Execute *plan* and return a report covering every planned target."""
        options = options or ExecutionOptions()
        cancel_event = cancel_event or threading.Event()
        run_id = run_id or new_run_id()
        started_at = datetime.now(timezone.utc)

        self.status = RunStatus.RUNNING
        self._actions_invoked = 0
        machine = TargetStateMachine(self._graph, plan.order, on_transition)
        durations: dict[str, int] = {}

        for target_id in plan.order:
            if plan.is_stale(target_id):
                machine.transition(target_id, TargetState.STALE, plan.reasons[target_id])
            else:
                machine.transition(target_id, TargetState.FRESH, "up to date")

        logger.info(
            "Run %s: %d target(s), %d stale, concurrency %d%s",
            run_id,
            len(plan.order),
            len(plan.stale),
            options.concurrency_limit,
            " (dry run)" if options.dry_run else "",
        )

        abort_reason: str | None = None
        if options.dry_run:
            for target_id in plan.stale:
                machine.transition(
                    target_id,
                    TargetState.SKIPPED,
                    f"dry run: {plan.reasons[target_id]}",
                )
        elif plan.stale:
            abort_reason = self._run_pool(plan, options, machine, cancel_event, durations)

        self.status = RunStatus.ABORTED if abort_reason else RunStatus.COMPLETED
        report = self._build_report(
            plan, machine, durations, run_id, started_at, options, abort_reason
        )
        logger.info(
            "Run %s %s: %d succeeded, %d failed, %d skipped, %d fresh",
            run_id,
            report.exit_status.value,
            len(report.succeeded()),
            len(report.failed()),
            len(report.skipped()),
            len(report.fresh()),
        )
        return report

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _run_pool(
        self,
        plan: Plan,
        options: ExecutionOptions,
        machine: TargetStateMachine,
        cancel_event: threading.Event,
        durations: dict[str, int],
    ) -> str | None:
        """Drive the worker pool; return the abort reason, if any."""
        pending = list(plan.stale)
        in_flight: dict[Future[_WorkResult], tuple[str, float]] = {}
        workers = max(1, min(options.concurrency_limit, len(pending)))
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="installforge")

        abort_reason: str | None = None
        try:
            try:
                abort_reason = self._schedule(
                    pool, pending, in_flight, options, machine, cancel_event, durations
                )
            except KeyboardInterrupt:
                logger.warning("Interrupted, cancelling run")
                cancel_event.set()
                abort_reason = ABORTED_BY_USER

            if abort_reason is not None:
                for target_id in machine.skip_remaining(f"skipped: {abort_reason}"):
                    logger.warning("Skipped %s: %s", target_id, abort_reason)
                grace = None if not cancel_event.is_set() else options.grace_period_seconds
                self._drain(in_flight, machine, durations, grace)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return abort_reason

    def _schedule(
        self,
        pool: ThreadPoolExecutor,
        pending: list[str],
        in_flight: dict[Future[_WorkResult], tuple[str, float]],
        options: ExecutionOptions,
        machine: TargetStateMachine,
        cancel_event: threading.Event,
        durations: dict[str, int],
    ) -> str | None:
        while pending or in_flight:
            if cancel_event.is_set():
                return ABORTED_BY_USER

            # Targets skipped by a cascade never start.
            pending[:] = [
                tid for tid in pending if machine.get_state(tid) == TargetState.STALE
            ]
            for target_id in list(pending):
                if len(in_flight) >= options.concurrency_limit:
                    break
                if not machine.is_eligible(target_id):
                    continue
                pending.remove(target_id)
                machine.transition(target_id, TargetState.RUNNING)
                logger.info("Starting %s", target_id)
                future = pool.submit(self._run_target, target_id, cancel_event)
                in_flight[future] = (target_id, time.monotonic())

            if not in_flight:
                if pending:
                    logger.error("No runnable target among %s", pending)
                    return f"unsatisfiable dependencies for {', '.join(pending)}"
                break

            done, _ = wait(list(in_flight), timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
            for future in done:
                target_id, started = in_flight.pop(future)
                ok = self._complete(target_id, future, machine)
                durations[target_id] = int((time.monotonic() - started) * 1000)
                if not ok and options.fail_fast:
                    return f"fail-fast after '{target_id}' failed"
        return None

    def _drain(
        self,
        in_flight: dict[Future[_WorkResult], tuple[str, float]],
        machine: TargetStateMachine,
        durations: dict[str, int],
        grace: float | None,
    ) -> None:
        """Wait for in-flight targets; abandon those still running after *grace*."""
        if not in_flight:
            return
        logger.info("Waiting on %d in-flight target(s)", len(in_flight))
        done, not_done = wait(list(in_flight), timeout=grace)
        for future in done:
            target_id, started = in_flight.pop(future)
            self._complete(target_id, future, machine)
            durations[target_id] = int((time.monotonic() - started) * 1000)
        for future in not_done:
            target_id, started = in_flight.pop(future)
            future.cancel()
            machine.transition(target_id, TargetState.FAILED, ABANDONED)
            durations[target_id] = int((time.monotonic() - started) * 1000)
            logger.error("Abandoned %s after the grace period", target_id)

    # ------------------------------------------------------------------
    # Per-target work
    # ------------------------------------------------------------------

    def _run_target(self, target_id: str, cancel_event: threading.Event) -> _WorkResult:
        """Worker body: verify inputs, run the action, sign the outputs."""
        target = self._graph.get_target(target_id)
        observed = current_input_signatures(target, self._graph, self._store, self._mode)
        input_sigs: dict[str, str] = {}
        for location, signature in observed.items():
            if signature is None:
                raise MissingInput(location)
            input_sigs[location] = signature

        context = ActionContext(
            target_id,
            self._work_root / target_id,
            input_signatures=input_sigs,
            env=self._env,
            cancel_event=cancel_event,
        )
        context.raise_if_cancelled()

        returned: dict[str, str] = {}
        if target.action is not None:
            with self._counter_lock:
                self._actions_invoked += 1
            returned = coerce_outputs(target.action(target, context))

        # The action may have created or rewritten optional inputs (lock files).
        for location in target.optional_inputs:
            signature = resolve_signature(location, self._graph, self._store, self._mode)
            input_sigs[location] = signature or ABSENT_SIGNATURE

        return input_sigs, self._sign_outputs(target, input_sigs, returned)

    def _sign_outputs(
        self,
        target: TargetDefinition,
        input_sigs: dict[str, str],
        returned: dict[str, str],
    ) -> dict[str, str]:
        outputs: dict[str, str] = {}
        for location in target.outputs:
            if location in returned:
                outputs[location] = returned[location]
            elif has_scheme(location):
                outputs[location] = combine_signatures(input_sigs)
            else:
                signature = path_signature(location, self._mode)
                if signature is None:
                    raise ActionFailed(f"declared output '{location}' was not produced")
                outputs[location] = signature
        return outputs

    def _complete(
        self,
        target_id: str,
        future: Future[_WorkResult],
        machine: TargetStateMachine,
    ) -> bool:
        """Record the outcome of a finished worker; return True on success."""
        try:
            input_sigs, outputs = future.result()
            self._store.record_many(
                self._fingerprint_records(target_id, input_sigs, outputs),
                replace_scopes=[target_id],
            )
        except ActionError as exc:
            return self._fail(target_id, exc.reason, machine)
        except FingerprintStoreError as exc:
            return self._fail(target_id, str(exc), machine)
        except Exception as exc:
            logger.exception("Unexpected error in %s", target_id)
            return self._fail(target_id, describe_error(exc), machine)

        machine.transition(target_id, TargetState.SUCCEEDED)
        logger.info("Finished %s", target_id)
        return True

    def _fail(self, target_id: str, reason: str, machine: TargetStateMachine) -> bool:
        machine.transition(target_id, TargetState.FAILED, reason)
        logger.error("%s failed: %s", target_id, reason)
        for skipped in machine.cascade_skip(target_id):
            logger.warning("Skipped %s: dependency '%s' failed", skipped, target_id)
        return False

    @staticmethod
    def _fingerprint_records(
        target_id: str, input_sigs: dict[str, str], outputs: dict[str, str]
    ) -> list[FingerprintRecord]:
        records = [
            FingerprintRecord(scope=ARTIFACT_SCOPE, location=loc, signature=sig)
            for loc, sig in outputs.items()
        ]
        records.extend(
            FingerprintRecord(scope=target_id, location=loc, signature=sig)
            for loc, sig in input_sigs.items()
        )
        records.append(
            FingerprintRecord(
                scope=target_id,
                location=RUN_MARKER,
                signature=combine_signatures(input_sigs),
            )
        )
        return records

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def _build_report(
        self,
        plan: Plan,
        machine: TargetStateMachine,
        durations: dict[str, int],
        run_id: str,
        started_at: datetime,
        options: ExecutionOptions,
        abort_reason: str | None,
    ) -> ExecutionReport:
        outcomes: dict[str, TargetOutcome] = {}
        for target_id in plan.order:
            state = machine.get_state(target_id)
            outcomes[target_id] = TargetOutcome(
                target_id=target_id,
                kind=self._graph.get_target(target_id).kind,
                state=state,
                reason=machine.get_reason(target_id) if state != TargetState.SUCCEEDED else "",
                duration_ms=durations.get(target_id, 0),
            )

        if abort_reason is not None:
            exit_status = ExitStatus.ABORTED
        elif any(o.state == TargetState.FAILED for o in outcomes.values()):
            exit_status = ExitStatus.PARTIAL_FAILURE
        else:
            exit_status = ExitStatus.ALL_SUCCEEDED

        return ExecutionReport(
            run_id=run_id,
            status=self.status,
            exit_status=exit_status,
            outcomes=outcomes,
            actions_executed=self._actions_invoked,
            dry_run=options.dry_run,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
