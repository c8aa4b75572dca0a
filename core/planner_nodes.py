"""
Steps of the planner workflow.

``plan`` asks the model for an ordered work list; ``executor`` solves the
first unsolved item and schedules itself again. Every executor pass either
fills in exactly one ``solution`` or ends the run, so the set of unsolved
items strictly shrinks and the loop terminates.
"""
import json
import logging
from typing import Optional

from core import prompts
from core.schemas import (
    END,
    PartialState,
    Plan,
    PlannerAgentState,
    ResearchResult,
    SearchQuery,
)
from core.workflow import EmptyGenerationError, make_step_result
from tools.cancellation import CancellationToken
from tools.llm_client import StructuredModelCaller
from tools.searxng import SearxngTool

logger = logging.getLogger(__name__)


def plan_step(
    state: PlannerAgentState,
    llm: StructuredModelCaller,
    cancel_token: Optional[CancellationToken] = None,
) -> PartialState:
    result = llm.generate(prompts.render_planner(state.get("input", "")), Plan, cancel_token=cancel_token)
    if not result.plan:
        raise EmptyGenerationError("plan received an empty plan from the model")

    plan = [{"agent": item.agent, "step": item.step, "solution": None} for item in result.plan]
    logger.info(f"[Planner] Planned {len(plan)} steps: {[item['step'] for item in plan]}")

    return make_step_result(
        state,
        "plan",
        "executor",
        f"Planned {len(plan)} steps",
        {"plan": plan}
    )


def executor_step(
    state: PlannerAgentState,
    llm: StructuredModelCaller,
    search_tool: SearxngTool,
    cancel_token: Optional[CancellationToken] = None,
) -> PartialState:
    plan = [dict(item) for item in state.get("plan") or []]
    index = next((i for i, item in enumerate(plan) if item.get("solution") is None), None)

    if index is None:
        output = plan[-1]["solution"] if plan else ""
        return make_step_result(
            state,
            "executor",
            END,
            "All plan steps solved",
            {"output": output}
        )

    item = plan[index]
    previous = plan[index - 1] if index > 0 else None

    if item["agent"] == "internet_search_agent":
        query = llm.generate(prompts.render_search_agent(item["step"]), SearchQuery, cancel_token=cancel_token)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        results = search_tool.run(query.search_query)
        item["solution"] = json.dumps(results, indent=4)
    elif item["agent"] == "research_agent":
        research = llm.generate(
            prompts.render_research_agent(item["step"], previous.get("solution") if previous else None),
            ResearchResult,
            cancel_token=cancel_token,
        )
        if not research.result or not research.result.strip():
            raise EmptyGenerationError(f"executor received an empty result for step {index + 1}")
        item["solution"] = research.result
    else:
        raise ValueError(f"Unknown plan agent: {item['agent']!r}")

    plan[index] = item
    logger.info(f"[Executor] Solved step {index + 1}/{len(plan)} with {item['agent']}")

    return make_step_result(
        state,
        "executor",
        "executor",
        f"Solved step {index + 1}: {item['step']}",
        {"plan": plan}
    )
