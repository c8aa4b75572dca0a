"""
Schema definitions for the canvas and planner workflows.
"""
from typing import Any, Dict, List, Literal, Optional, TypedDict

from pydantic import BaseModel, Field

from core.memory import ReadOnlyMemory

END = "end"

CanvasStep = Literal[
    "route_user_message",      # Initial step - pick the action for this turn
    "generate_artifact",       # Create a new artifact
    "rewrite_artifact",        # Revise the whole artifact
    "update_selected_text",    # Edit a highlighted range of the artifact
    "reply_to_general_input",  # Conversational answer (terminal)
    "follow_up_artifact",      # Acknowledge the artifact change (terminal)
    "end",
]

Route = Literal["generate_artifact", "rewrite_artifact", "reply_to_general_input"]


class STEPS:
    route_user_message = "route_user_message"
    generate_artifact = "generate_artifact"
    rewrite_artifact = "rewrite_artifact"
    update_selected_text = "update_selected_text"
    reply_to_general_input = "reply_to_general_input"
    follow_up_artifact = "follow_up_artifact"


class CanvasAgentState(TypedDict, total=False):
    """
    State for the canvas workflow.

    Flow:
    1. Route User Message - selection bypass or model routing
    2. One of: Generate Artifact | Rewrite Artifact | Update Selected Text
       -> Follow Up Artifact
       or Reply To General Input
    3. End
    """

    # ============================================================================
    # INPUT (set by caller)
    # ============================================================================
    input: str
    artifact: Optional[str]
    artifact_title: Optional[str]
    selected_text_offset: Optional[int]
    selected_text_length: Optional[int]
    memory: ReadOnlyMemory

    # ============================================================================
    # ROUTING (route_user_message step, write-once)
    # ============================================================================
    route: Optional[Route]

    # ============================================================================
    # OUTPUT (terminal steps)
    # ============================================================================
    output: Optional[str]

    # ============================================================================
    # CONTROL FLOW
    # ============================================================================
    control: Optional[CanvasStep]
    last_step: Optional[CanvasStep]
    step_reasoning: Optional[str]

    # ============================================================================
    # TELEMETRY
    # ============================================================================
    logs: List[Dict[str, Any]]
    metrics: Dict[str, Any]


PartialState = Dict[str, Any]


# ============================================================================
# STRUCTURED MODEL OUTPUTS
# ============================================================================

class RouteWithoutArtifact(BaseModel):
    """Routing decision when no artifact exists yet."""
    route: Literal["generate_artifact", "reply_to_general_input"] = Field(
        description="The action to take for the user's message."
    )


class RouteWithArtifact(BaseModel):
    """Routing decision when an artifact already exists."""
    route: Literal["rewrite_artifact", "reply_to_general_input"] = Field(
        description="The action to take for the user's message."
    )


class GeneratedArtifact(BaseModel):
    title: str = Field(description="The title of the artifact.")
    artifact: str = Field(description="The artifact content.")


class RewrittenArtifact(BaseModel):
    title: str = Field(description="The title of the artifact.")
    artifact: str = Field(description="The updated artifact.")


class UpdatedDocument(BaseModel):
    updated_document: str = Field(description="The full updated document.")


class ChatReply(BaseModel):
    response: str = Field(description="Response to the user's request.")


class FollowUpMessage(BaseModel):
    response: str = Field(description="The follow up message.")


# ============================================================================
# PLANNER
# ============================================================================

PlannerStep = Literal["plan", "executor", "end"]

PlanAgent = Literal["internet_search_agent", "research_agent"]


class PlanItem(TypedDict, total=False):
    agent: PlanAgent
    step: str
    solution: Optional[str]


class PlannerAgentState(TypedDict, total=False):
    input: str
    output: Optional[str]
    plan: List[PlanItem]
    memory: ReadOnlyMemory
    control: Optional[PlannerStep]
    last_step: Optional[PlannerStep]
    step_reasoning: Optional[str]
    logs: List[Dict[str, Any]]
    metrics: Dict[str, Any]


class PlannedStep(BaseModel):
    agent: PlanAgent = Field(description="The agent that executes this step.")
    step: str = Field(description="A specific, concise description of the step.")


class Plan(BaseModel):
    plan: List[PlannedStep] = Field(description="Minimal ordered list of steps.")


class SearchQuery(BaseModel):
    search_query: str = Field(description="A fully formed web search query.")


class ResearchResult(BaseModel):
    result: str = Field(description="The answer to the task.")
