"""
Step-based workflow engine.

A workflow is a registry of named step handlers. Each handler receives the
current run state and returns a partial update carrying the name of the next
step under ``control``. The engine merges the update, follows ``control``
and stops at ``END``.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

from core.schemas import END, PartialState
from tools.cancellation import CancellationToken

logger = logging.getLogger(__name__)

StepHandler = Callable[[Dict[str, Any]], Optional[PartialState]]
StepObserver = Callable[[str, Dict[str, Any]], None]


class WorkflowError(RuntimeError):
    """Engine-level fault in a workflow definition or run."""
    pass


class UndefinedTransitionError(WorkflowError):
    """A step returned no next step, or named a step that is not registered."""
    pass


class IncompleteRunError(WorkflowError):
    """The run reached END without its required outputs."""
    pass


def _now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


class EmptyGenerationError(ValueError):
    """The model returned empty text where content is required."""
    pass


def make_step_result(
    state: Dict[str, Any],
    step_name: str,
    control: str,
    reasoning: str,
    state_updates: Optional[Dict[str, Any]] = None
) -> PartialState:
    """Standardized step return format."""
    logs = list(state.get("logs") or [])
    logs.append({
        "step": step_name,
        "timestamp": _now_iso(),
        "msg": reasoning,
        "control": control
    })

    result = {
        "last_step": step_name,
        "control": control,
        "step_reasoning": reasoning,
        "logs": logs,
    }

    if state_updates:
        result.update(state_updates)

    return result


class Workflow:
    """
    Sequential state machine over registered steps.

    There is no step budget: handlers that schedule themselves again must
    shrink an explicit work list on every pass.
    """

    def __init__(
        self,
        name: str,
        entry: Optional[str] = None,
        required_outputs: Iterable[str] = ("output",),
        write_once: Iterable[str] = (),
    ):
        self.name = name
        self.entry = entry
        self.required_outputs = tuple(required_outputs)
        self.write_once = tuple(write_once)
        self.steps: Dict[str, StepHandler] = {}

    def add_step(self, name: str, handler: StepHandler) -> "Workflow":
        if name == END:
            raise ValueError(f"'{END}' is reserved for the terminal marker")
        if name in self.steps:
            raise ValueError(f"Step already registered: {name}")
        self.steps[name] = handler
        if self.entry is None:
            self.entry = name
        return self

    def run(
        self,
        initial_state: Dict[str, Any],
        observer: Optional[StepObserver] = None,
        cancel_token: Optional[CancellationToken] = None,
        start: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Execute the workflow from ``start`` (default: the entry step).

        Returns the final state. Raises UndefinedTransitionError,
        IncompleteRunError, RunCancelledError, or whatever a step raised.
        """
        state: Dict[str, Any] = dict(initial_state)
        state["logs"] = list(state.get("logs") or [])
        state["metrics"] = {"start_time": _now_iso(), "step_timings": []}

        control = start or self.entry
        if control is None:
            raise WorkflowError(f"Workflow {self.name} has no steps")

        run_start = datetime.utcnow()
        step = 0
        logger.info(f"[Workflow:{self.name}] Starting at {control}")

        while control != END:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            handler = self.steps.get(control)
            if handler is None:
                raise UndefinedTransitionError(
                    f"Workflow {self.name} has no step named {control!r}"
                )

            self._notify(observer, control, state)

            step += 1
            step_start = datetime.utcnow()
            updates = handler(state)

            if not updates or not updates.get("control"):
                raise UndefinedTransitionError(
                    f"Step {control!r} of workflow {self.name} returned no transition"
                )
            self._check_write_once(control, state, updates)

            state.update(updates)
            next_control = updates["control"]

            step_ms = (datetime.utcnow() - step_start).total_seconds() * 1000
            state["metrics"]["step_timings"].append({"step": control, "ms": step_ms})
            logger.info(f"[Workflow:{self.name}] Step {step}: {control} → {next_control} "
                        f"({step_ms:.1f}ms)")
            control = next_control

        missing = [
            key for key in self.required_outputs
            if not isinstance(state.get(key), str) or not state[key].strip()
        ]
        if missing:
            raise IncompleteRunError(
                f"Workflow {self.name} ended without required outputs: {', '.join(missing)}"
            )

        total_ms = (datetime.utcnow() - run_start).total_seconds() * 1000
        state["metrics"]["steps"] = step
        state["metrics"]["total_ms"] = total_ms
        logger.info(f"[Workflow:{self.name}] Completed in {step} steps, {total_ms:.1f}ms total")
        return state

    def _check_write_once(self, step: str, state: Dict[str, Any], updates: PartialState) -> None:
        for key in self.write_once:
            if key not in updates or state.get(key) is None:
                continue
            if updates[key] != state[key]:
                raise WorkflowError(
                    f"Step {step!r} tried to overwrite {key!r} "
                    f"({state[key]!r} -> {updates[key]!r})"
                )

    def _notify(self, observer: Optional[StepObserver], step: str, state: Dict[str, Any]) -> None:
        if observer is None:
            return
        try:
            observer(step, dict(state))
        except Exception:
            logger.exception(f"[Workflow:{self.name}] Observer failed for step {step}")
