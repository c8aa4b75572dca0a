"""
Canvas Agent - step workflow orchestration for artifact co-editing.
"""
import logging
from functools import partial
from typing import Any, Dict, Optional

from core.canvas_nodes import (
    follow_up_artifact_step,
    generate_artifact_step,
    reply_to_general_input_step,
    rewrite_artifact_step,
    route_user_message_step,
    update_selected_text_step,
)
from core.memory import ReadOnlyMemory
from core.schemas import STEPS, CanvasAgentState
from core.workflow import StepObserver, Workflow
from tools.cancellation import CancellationToken
from tools.llm_client import StructuredModelCaller, get_llm_client

logger = logging.getLogger(__name__)


class CanvasAgent:
    """
    Orchestrates the canvas workflow using a state machine pattern.

    Flow:
    1. Route User Message → selection bypass or model routing
    2. One of:
       - Generate Artifact → Follow Up Artifact
       - Rewrite Artifact → Follow Up Artifact
       - Update Selected Text → Follow Up Artifact
       - Reply To General Input
    3. End
    """

    def __init__(self, model_caller: Optional[StructuredModelCaller] = None):
        self._model_caller = model_caller

    @property
    def model_caller(self) -> StructuredModelCaller:
        if self._model_caller is None:
            self._model_caller = get_llm_client()
        return self._model_caller

    def build_workflow(self, cancel_token: Optional[CancellationToken] = None) -> Workflow:
        """Wire the fixed step graph around this agent's model caller."""
        llm = self.model_caller
        workflow = Workflow(
            "canvas",
            entry=STEPS.route_user_message,
            required_outputs=("output",),
            write_once=("route",),
        )
        (
            workflow
            .add_step(STEPS.route_user_message, partial(route_user_message_step, llm=llm, cancel_token=cancel_token))
            .add_step(STEPS.generate_artifact, partial(generate_artifact_step, llm=llm, cancel_token=cancel_token))
            .add_step(STEPS.rewrite_artifact, partial(rewrite_artifact_step, llm=llm, cancel_token=cancel_token))
            .add_step(STEPS.update_selected_text, partial(update_selected_text_step, llm=llm, cancel_token=cancel_token))
            .add_step(STEPS.reply_to_general_input, partial(reply_to_general_input_step, llm=llm, cancel_token=cancel_token))
            .add_step(STEPS.follow_up_artifact, partial(follow_up_artifact_step, llm=llm, cancel_token=cancel_token))
        )
        return workflow

    def run(
        self,
        input: str,
        artifact: Optional[str] = None,
        artifact_title: Optional[str] = None,
        selected_text_offset: Optional[int] = None,
        selected_text_length: Optional[int] = None,
        memory: Optional[ReadOnlyMemory] = None,
        observer: Optional[StepObserver] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """
        Execute one conversational turn.

        Args:
            input: The user's latest message
            artifact: Artifact carried over from the previous turn
            artifact_title: Title paired with ``artifact``
            selected_text_offset: Zero-based start of the highlighted range
            selected_text_length: Length of the highlighted range
            memory: Read-only view of the conversation so far
            observer: Called with (step, state snapshot) before each step
            cancel_token: Cooperative cancellation signal

        Returns:
            Dict with:
                - output: Reply for the user
                - artifact / artifact_title: Current artifact after this turn
                - route: Routing decision (None for selection edits)
                - logs: Step logs
                - metrics: Timing metrics

        Failures of the model caller, empty generations, engine faults and
        cancellation propagate to the caller; nothing is partially returned.
        """
        state: CanvasAgentState = {
            "input": input,
            "output": None,
            "artifact": artifact or None,
            "artifact_title": artifact_title,
            "selected_text_offset": selected_text_offset,
            "selected_text_length": selected_text_length,
            "route": None,
            "memory": memory if memory is not None else ReadOnlyMemory(),
            "logs": [],
        }

        logger.info(f"[CanvasAgent] Starting run, artifact={'yes' if artifact else 'no'}, "
                    f"selection={selected_text_offset}:{selected_text_length}, prompt_len={len(input)}")

        final_state = self.build_workflow(cancel_token).run(
            state, observer=observer, cancel_token=cancel_token
        )

        return {
            "output": final_state["output"],
            "artifact": final_state.get("artifact"),
            "artifact_title": final_state.get("artifact_title"),
            "route": final_state.get("route"),
            "logs": final_state.get("logs", []),
            "metrics": final_state.get("metrics", {}),
        }
