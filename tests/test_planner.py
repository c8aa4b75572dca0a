import json

import pytest

from core.planner_agent import PlannerAgent
from core.schemas import Plan, ResearchResult, SearchQuery
from core.workflow import EmptyGenerationError
from tools.cancellation import CancellationToken, RunCancelledError


def _plan(*steps):
    return {"plan": [{"agent": agent, "step": step} for agent, step in steps]}


def test_search_then_research(fake_llm, fake_search):
    fake_llm.queue(Plan, **_plan(
        ("internet_search_agent", "Find the latest Python release"),
        ("research_agent", "Summarise what changed"),
    ))
    fake_llm.queue(SearchQuery, search_query="latest python release")
    fake_llm.queue(ResearchResult, result="Python 3.x brings faster startup.")

    result = PlannerAgent(fake_llm, fake_search).run("What is new in Python?")

    assert result["output"] == "Python 3.x brings faster startup."
    assert fake_search.queries == ["latest python release"]
    assert [item["agent"] for item in result["plan"]] == ["internet_search_agent", "research_agent"]
    assert json.loads(result["plan"][0]["solution"]) == fake_search.results
    assert "https://example.com/a" in fake_llm.prompt_for(ResearchResult)
    assert fake_llm.shapes == [Plan, SearchQuery, ResearchResult]


def test_executor_runs_once_per_step_plus_final_pass(fake_llm, fake_search):
    fake_llm.queue(Plan, **_plan(("research_agent", "a"), ("research_agent", "b"), ("research_agent", "c")))
    for answer in ("one", "two", "three"):
        fake_llm.queue(ResearchResult, result=answer)

    result = PlannerAgent(fake_llm, fake_search).run("q")

    assert result["output"] == "three"
    assert [item["solution"] for item in result["plan"]] == ["one", "two", "three"]
    assert [log["step"] for log in result["logs"]] == ["plan"] + ["executor"] * 4


def test_first_research_step_has_no_context(fake_llm, fake_search):
    fake_llm.queue(Plan, **_plan(("research_agent", "answer directly")))
    fake_llm.queue(ResearchResult, result="42")

    PlannerAgent(fake_llm, fake_search).run("q")

    assert "Contextual information:\nNone" in fake_llm.prompt_for(ResearchResult)


def test_empty_plan_fails(fake_llm, fake_search):
    fake_llm.queue(Plan, plan=[])

    with pytest.raises(EmptyGenerationError):
        PlannerAgent(fake_llm, fake_search).run("q")


def test_cancel_before_search(fake_llm, fake_search):
    token = CancellationToken()
    fake_llm.queue(Plan, **_plan(("internet_search_agent", "look it up")))
    fake_llm.queue(SearchQuery, search_query="look it up")

    def cancel_on_query(prompt, shape, cancel_token):
        if shape is SearchQuery:
            cancel_token.cancel()

    fake_llm.on_call = cancel_on_query

    with pytest.raises(RunCancelledError):
        PlannerAgent(fake_llm, fake_search).run("q", cancel_token=token)
    assert fake_search.queries == []


def test_empty_research_result_fails(fake_llm, fake_search):
    fake_llm.queue(Plan, **_plan(("research_agent", "answer")))
    fake_llm.queue(ResearchResult, result="   ")

    with pytest.raises(EmptyGenerationError):
        PlannerAgent(fake_llm, fake_search).run("q")
