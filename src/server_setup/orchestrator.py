"""
Sequential, best-effort execution of the selected tasks

State machine per run: IDLE -> PLANNING -> RUNNING -> COMPLETED.
A failing task is recorded and the run continues with the next one.
"""

import time
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, TypeAlias

from .session import Session
from .tasks import Task, TaskKind, TaskRegistry

logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    PLANNING = "planning"
    RUNNING = "running"
    COMPLETED = "completed"


class TaskState(Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    IN_PROGRESS = "in-progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProgressPhase(Enum):
    STARTED = "started"
    FINISHED = "finished"
    COMPLETED = "completed"
    NO_WORK = "no-work"


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    """
    Result of one task in one run.

    Attributes:
        kind: Task identifier
        label: Task label at the time of the run
        state: Final (or current) state
        detail: Captured error detail for failures
        elapsed: Wall-clock seconds spent in the unit
    """
    kind: TaskKind
    label: str
    state: TaskState = TaskState.PENDING
    detail: Optional[str] = None
    elapsed: float = 0.0


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Progress notification; ``fraction`` is tasks finished / tasks selected"""
    fraction: float
    label: str
    phase: ProgressPhase


ProgressSink: TypeAlias = Callable[[ProgressEvent], None]
ConfirmGate: TypeAlias = Callable[["RunPlan"], bool]


@dataclass(frozen=True, slots=True)
class RunPlan:
    """
    Selected tasks in registry order, frozen at the moment of apply.
    """
    tasks: tuple[Task, ...]
    skipped: tuple[Task, ...] = ()
    dry_run: bool = False

    def __len__(self) -> int:
        return len(self.tasks)

    @property
    def is_empty(self) -> bool:
        return not self.tasks

    def initial_outcomes(self) -> tuple[TaskOutcome, ...]:
        return tuple(TaskOutcome(task.kind, task.label) for task in self.tasks)

    def skipped_outcomes(self) -> tuple[TaskOutcome, ...]:
        return tuple(
            TaskOutcome(task.kind, task.label, TaskState.SKIPPED) for task in self.skipped
        )

    def describe(self, session: Optional[Session] = None) -> list[str]:
        """Plan text shown before confirmation"""
        lines = ["Selected tasks:"]
        if self.is_empty:
            lines.append("  (none)")
        for task in self.tasks:
            lines.append(f"- {task.label}")
            if task.kind is TaskKind.USB_ETHERNET and session is not None:
                s = session.settings
                lines.extend([
                    f"  - iface: {s.usb_interface or 'auto'}",
                    f"  - rename: {s.usb_rename_target}",
                    f"  - usb metric: {s.usb_metric}",
                    f"  - wifi glob: {s.wifi_glob}",
                    f"  - wifi metric: {s.wifi_metric}",
                    f"  - disable cloud-init network: {s.suppress_provisioning}",
                ])
        if self.dry_run:
            lines.extend(["", "DRY-RUN: no changes will be made."])
        if any(task.kind is TaskKind.USB_ETHERNET for task in self.tasks):
            lines.extend(["", "Note: USB rename usually needs a reboot."])
        if any(task.kind is TaskKind.WAIT_ONLINE for task in self.tasks):
            lines.append("Note: disabling wait-online speeds up boot; some services may need tuning.")
        return lines


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Outcome of every selected task, in run order, plus the unselected ones"""
    outcomes: tuple[TaskOutcome, ...] = ()
    skipped: tuple[TaskOutcome, ...] = ()
    dry_run: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.outcomes

    @property
    def succeeded(self) -> list[TaskOutcome]:
        return [o for o in self.outcomes if o.state is TaskState.SUCCEEDED]

    @property
    def failed(self) -> list[TaskOutcome]:
        return [o for o in self.outcomes if o.state is TaskState.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def lines(self) -> list[str]:
        """Plain-text summary, one line per selected task"""
        if self.is_empty:
            return ["No tasks selected."]
        result = []
        for outcome in self.outcomes:
            mark = "[OK]" if outcome.state is TaskState.SUCCEEDED else "[FAIL]"
            line = f"{mark} {outcome.label}"
            if outcome.detail:
                line = f"{line}: {outcome.detail}"
            result.append(line)
        return result


class Orchestrator:
    """
    Runs the enabled tasks of a registry one after another.

    Attributes:
        registry: Task catalogue with current toggles
        session: Session passed to every unit
        progress: Sink receiving progress events inline with execution
        state: Current run state
    """

    def __init__(
        self,
        registry: TaskRegistry,
        session: Session,
        progress: Optional[ProgressSink] = None,
    ):
        self.registry = registry
        self.session = session
        self.progress = progress or (lambda event: None)
        self.state = RunState.IDLE
        self._outcomes: dict[TaskKind, TaskOutcome] = {}

    def plan(self) -> RunPlan:
        """Snapshot the current selection in registry order"""
        selected = tuple(self.registry.enabled())
        chosen = {task.kind for task in selected}
        skipped = tuple(task for task in self.registry if task.kind not in chosen)
        return RunPlan(tasks=selected, skipped=skipped, dry_run=self.session.dry_run)

    def apply(self, confirm: Optional[ConfirmGate] = None) -> Optional[RunSummary]:
        """
        Plan and execute the current selection.

        Args:
            confirm: Gate shown the plan; returning False cancels the run

        Returns:
            Summary of the run, or None if the gate declined
        """
        if self.state is RunState.RUNNING:
            raise RuntimeError("A run is already in progress")

        if confirm is not None and not confirm(self.plan()):
            logger.info("Apply cancelled by user")
            return None

        self.state = RunState.PLANNING
        plan = self.plan()
        mode = " (dry-run)" if plan.dry_run else ""
        logger.info(f"[*] Plan: {len(plan)} task(s){mode}")

        if plan.is_empty:
            self.progress(ProgressEvent(0.0, "No tasks selected", ProgressPhase.NO_WORK))
            self.state = RunState.COMPLETED
            logger.info("[i] No tasks selected, nothing to do")
            return RunSummary(skipped=plan.skipped_outcomes(), dry_run=plan.dry_run)

        self.state = RunState.RUNNING
        self._outcomes = {outcome.kind: outcome for outcome in plan.initial_outcomes()}
        total = len(plan)

        for index, task in enumerate(plan.tasks):
            self._run_task(task, index, total)

        self.progress(ProgressEvent(1.0, "All done", ProgressPhase.COMPLETED))
        self.state = RunState.COMPLETED

        summary = RunSummary(
            outcomes=tuple(self._outcomes[task.kind] for task in plan.tasks),
            skipped=plan.skipped_outcomes(),
            dry_run=plan.dry_run,
        )
        self._log_summary(summary)
        return summary

    def _run_task(self, task: Task, index: int, total: int) -> None:
        """Execute one unit, capturing any failure into its outcome"""
        outcome = replace(self._outcomes[task.kind], state=TaskState.IN_PROGRESS)
        self._outcomes[task.kind] = outcome

        logger.info("=" * 60)
        logger.info(f"[STEP {index + 1}/{total}] {task.label}")
        logger.info("=" * 60)
        self.progress(ProgressEvent(index / total, task.label, ProgressPhase.STARTED))

        started = time.monotonic()
        try:
            task.unit(self.session)
        except Exception as e:
            detail = str(e) or e.__class__.__name__
            logger.error(f"[FAIL] {task.label}: {detail}")
            logger.debug("Task failure traceback", exc_info=True)
            outcome = replace(outcome, state=TaskState.FAILED, detail=detail)
        else:
            logger.info(f"[OK] {task.label}")
            outcome = replace(outcome, state=TaskState.SUCCEEDED)

        self._outcomes[task.kind] = replace(outcome, elapsed=time.monotonic() - started)
        self.progress(ProgressEvent((index + 1) / total, task.label, ProgressPhase.FINISHED))

    def _log_summary(self, summary: RunSummary) -> None:
        logger.info(
            f"[*] Run complete: {len(summary.succeeded)} succeeded, {len(summary.failed)} failed"
        )
        for line in summary.lines():
            if line.startswith("[FAIL]"):
                logger.error(line)
            else:
                logger.info(line)
