"""
Planner Agent - plan-and-execute research workflow.
"""
import logging
from functools import partial
from typing import Any, Dict, Optional

from core.memory import ReadOnlyMemory
from core.planner_nodes import executor_step, plan_step
from core.schemas import PlannerAgentState
from core.workflow import StepObserver, Workflow
from tools.cancellation import CancellationToken
from tools.llm_client import StructuredModelCaller, get_llm_client
from tools.searxng import SearxngTool

logger = logging.getLogger(__name__)


class PlannerAgent:
    """
    Flow:
    1. Plan → ordered steps, each assigned to the search or research agent
    2. Executor → solves the next unsolved step, repeats until none remain
    3. End → output is the last step's solution
    """

    def __init__(
        self,
        model_caller: Optional[StructuredModelCaller] = None,
        search_tool: Optional[SearxngTool] = None,
    ):
        self._model_caller = model_caller
        self.search_tool = search_tool or SearxngTool()

    @property
    def model_caller(self) -> StructuredModelCaller:
        if self._model_caller is None:
            self._model_caller = get_llm_client()
        return self._model_caller

    def build_workflow(self, cancel_token: Optional[CancellationToken] = None) -> Workflow:
        llm = self.model_caller
        return (
            Workflow("planner", entry="plan", required_outputs=("output",))
            .add_step("plan", partial(plan_step, llm=llm, cancel_token=cancel_token))
            .add_step("executor", partial(
                executor_step, llm=llm, search_tool=self.search_tool, cancel_token=cancel_token
            ))
        )

    def run(
        self,
        input: str,
        memory: Optional[ReadOnlyMemory] = None,
        observer: Optional[StepObserver] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        state: PlannerAgentState = {
            "input": input,
            "output": None,
            "plan": [],
            "memory": memory if memory is not None else ReadOnlyMemory(),
            "logs": [],
        }

        logger.info(f"[PlannerAgent] Starting run, prompt_len={len(input)}")
        final_state = self.build_workflow(cancel_token).run(
            state, observer=observer, cancel_token=cancel_token
        )

        return {
            "output": final_state["output"],
            "plan": final_state.get("plan", []),
            "logs": final_state.get("logs", []),
            "metrics": final_state.get("metrics", {}),
        }
