"""
Steps of the canvas workflow.
Each step takes the run state and returns a partial state update whose
``control`` names the next step.
"""
import logging
from typing import Optional

from core import prompts
from core.memory import ReadOnlyMemory
from core.schemas import (
    END,
    STEPS,
    CanvasAgentState,
    ChatReply,
    FollowUpMessage,
    GeneratedArtifact,
    PartialState,
    RewrittenArtifact,
    RouteWithArtifact,
    RouteWithoutArtifact,
    UpdatedDocument,
)
from core.tagging import has_valid_selection, selected_text, tag_selected_text
from core.workflow import EmptyGenerationError, make_step_result
from tools.cancellation import CancellationToken
from tools.llm_client import StructuredModelCaller

logger = logging.getLogger(__name__)

SELECTION_TAG = "selected"


def _recent_messages(state: CanvasAgentState) -> str:
    memory = state.get("memory")
    if memory is None:
        return ""
    return memory.render() if isinstance(memory, ReadOnlyMemory) else ReadOnlyMemory(memory).render()


def _require_text(value: str, step_name: str, what: str) -> str:
    if not value or not value.strip():
        raise EmptyGenerationError(f"{step_name} received an empty {what} from the model")
    return value


# ============================================================================
# STEP 1: Route User Message
# ============================================================================

def route_user_message_step(
    state: CanvasAgentState,
    llm: StructuredModelCaller,
    cancel_token: Optional[CancellationToken] = None,
) -> PartialState:
    """
    Decide which action handles this turn.

    A valid selection on an existing artifact goes straight to
    update_selected_text without consulting the model. Otherwise the model
    picks from the labels allowed for the current artifact context.
    """
    artifact = state.get("artifact")

    if has_valid_selection(artifact, state.get("selected_text_offset"), state.get("selected_text_length")):
        logger.info("[RouteUserMessage] Valid selection present -> update_selected_text")
        return make_step_result(
            state,
            STEPS.route_user_message,
            STEPS.update_selected_text,
            "Selection present, editing selected text",
        )

    has_artifact = bool(artifact)
    prompt = prompts.render_route_query(has_artifact, _recent_messages(state), state.get("input", ""))
    shape = RouteWithArtifact if has_artifact else RouteWithoutArtifact

    decision = llm.generate(prompt, shape, cancel_token=cancel_token)
    route = decision.route

    logger.info(f"[RouteUserMessage] Routed to '{route}' (artifact present: {has_artifact})")

    return make_step_result(
        state,
        STEPS.route_user_message,
        route,
        f"Route: {route}",
        {"route": route},
    )


# ============================================================================
# STEP 2a: Generate Artifact
# ============================================================================

def generate_artifact_step(
    state: CanvasAgentState,
    llm: StructuredModelCaller,
    cancel_token: Optional[CancellationToken] = None,
) -> PartialState:
    prompt = prompts.render_new_artifact(_recent_messages(state), state.get("input", ""))
    result = llm.generate(prompt, GeneratedArtifact, cancel_token=cancel_token)
    artifact = _require_text(result.artifact, STEPS.generate_artifact, "artifact")

    logger.info(f"[GenerateArtifact] Generated '{result.title}' ({len(artifact)} chars)")

    return make_step_result(
        state,
        STEPS.generate_artifact,
        STEPS.follow_up_artifact,
        f"Generated artifact '{result.title}'",
        {
            "artifact": artifact,
            "artifact_title": result.title,
        }
    )


# ============================================================================
# STEP 2b: Rewrite Artifact
# ============================================================================

def rewrite_artifact_step(
    state: CanvasAgentState,
    llm: StructuredModelCaller,
    cancel_token: Optional[CancellationToken] = None,
) -> PartialState:
    prompt = prompts.render_update_artifact(
        state.get("artifact") or "",
        state.get("artifact_title"),
        state.get("input", ""),
    )
    result = llm.generate(prompt, RewrittenArtifact, cancel_token=cancel_token)
    artifact = _require_text(result.artifact, STEPS.rewrite_artifact, "artifact")

    logger.info(f"[RewriteArtifact] Rewrote '{result.title}' ({len(artifact)} chars)")

    return make_step_result(
        state,
        STEPS.rewrite_artifact,
        STEPS.follow_up_artifact,
        f"Rewrote artifact '{result.title}'",
        {
            "artifact": artifact,
            "artifact_title": result.title,
        }
    )


# ============================================================================
# STEP 2c: Update Selected Text
# ============================================================================

def update_selected_text_step(
    state: CanvasAgentState,
    llm: StructuredModelCaller,
    cancel_token: Optional[CancellationToken] = None,
) -> Optional[PartialState]:
    """
    Rewrite the highlighted range; the model returns the full document.

    Returns None (no transition) when reached without a valid selection.
    """
    artifact = state.get("artifact")
    offset = state.get("selected_text_offset")
    length = state.get("selected_text_length")

    if not has_valid_selection(artifact, offset, length):
        logger.error("[UpdateSelectedText] Reached without a valid selection")
        return None

    prompt = prompts.render_update_highlighted_text(
        tag_selected_text(artifact, offset, length, SELECTION_TAG),
        selected_text(artifact, offset, length),
        state.get("input", ""),
    )
    result = llm.generate(prompt, UpdatedDocument, cancel_token=cancel_token)
    updated = _require_text(result.updated_document, STEPS.update_selected_text, "document")

    logger.info(f"[UpdateSelectedText] Edited range {offset}:{offset + length} "
                f"({len(artifact)} -> {len(updated)} chars)")

    return make_step_result(
        state,
        STEPS.update_selected_text,
        STEPS.follow_up_artifact,
        f"Updated selected text at {offset}:{offset + length}",
        {"artifact": updated}
    )


# ============================================================================
# STEP 3a: Reply To General Input (terminal)
# ============================================================================

def reply_to_general_input_step(
    state: CanvasAgentState,
    llm: StructuredModelCaller,
    cancel_token: Optional[CancellationToken] = None,
) -> PartialState:
    prompt = prompts.render_reply_general(
        state.get("artifact"),
        state.get("artifact_title"),
        _recent_messages(state),
        state.get("input", ""),
    )
    result = llm.generate(prompt, ChatReply, cancel_token=cancel_token)
    response = _require_text(result.response, STEPS.reply_to_general_input, "response")

    logger.info(f"[ReplyToGeneralInput] Generated response ({len(response)} chars)")

    return make_step_result(
        state,
        STEPS.reply_to_general_input,
        END,
        "Generated conversational response",
        {"output": response}
    )


# ============================================================================
# STEP 3b: Follow Up Artifact (terminal)
# ============================================================================

def follow_up_artifact_step(
    state: CanvasAgentState,
    llm: StructuredModelCaller,
    cancel_token: Optional[CancellationToken] = None,
) -> PartialState:
    """Acknowledge the artifact change; rewrite runs get the update framing."""
    updated = state.get("route") == STEPS.rewrite_artifact
    prompt = prompts.render_follow_up(
        updated,
        state.get("artifact") or "",
        state.get("artifact_title"),
        _recent_messages(state),
        state.get("input", ""),
    )
    result = llm.generate(prompt, FollowUpMessage, cancel_token=cancel_token)
    response = _require_text(result.response, STEPS.follow_up_artifact, "response")

    logger.info(f"[FollowUpArtifact] Generated {'update' if updated else 'create'} follow-up "
                f"({len(response)} chars)")

    return make_step_result(
        state,
        STEPS.follow_up_artifact,
        END,
        f"Follow-up ({'updated' if updated else 'created'})",
        {"output": response}
    )
