from typing import get_args

import pytest

from core.canvas_agent import CanvasAgent
from core.canvas_nodes import update_selected_text_step
from core.memory import ConversationMemory
from core.schemas import (
    END,
    CanvasStep,
    STEPS,
    ChatReply,
    FollowUpMessage,
    GeneratedArtifact,
    RewrittenArtifact,
    RouteWithArtifact,
    RouteWithoutArtifact,
    UpdatedDocument,
)
from core.workflow import EmptyGenerationError, UndefinedTransitionError
from tools.cancellation import CancellationToken, RunCancelledError
from tools.llm_client import ModelCallError, SchemaViolationError


def test_generate_new_artifact(fake_llm):
    fake_llm.queue(RouteWithoutArtifact, route="generate_artifact")
    fake_llm.queue(GeneratedArtifact, title="Ocean", artifact="Waves roll in...")
    fake_llm.queue(FollowUpMessage, response="Here is your poem about the ocean.")

    result = CanvasAgent(fake_llm).run("Write a short poem about the ocean")

    assert result["route"] == "generate_artifact"
    assert result["artifact"] == "Waves roll in..."
    assert result["artifact_title"] == "Ocean"
    assert result["output"] == "Here is your poem about the ocean."
    assert fake_llm.shapes == [RouteWithoutArtifact, GeneratedArtifact, FollowUpMessage]
    assert "CREATED" in fake_llm.prompt_for(FollowUpMessage)
    assert [log["step"] for log in result["logs"]] == [
        STEPS.route_user_message, STEPS.generate_artifact, STEPS.follow_up_artifact,
    ]


def test_rewrite_existing_artifact(fake_llm):
    fake_llm.queue(RouteWithArtifact, route="rewrite_artifact")
    fake_llm.queue(RewrittenArtifact, title="Ocean", artifact="A sea in rhyme")
    fake_llm.queue(FollowUpMessage, response="I made it rhyme.")

    result = CanvasAgent(fake_llm).run(
        "Make it rhyme", artifact="Waves roll in...", artifact_title="Ocean"
    )

    assert result["route"] == "rewrite_artifact"
    assert result["artifact"] == "A sea in rhyme"
    assert result["output"] == "I made it rhyme."
    assert fake_llm.shapes == [RouteWithArtifact, RewrittenArtifact, FollowUpMessage]
    follow_up_prompt = fake_llm.prompt_for(FollowUpMessage)
    assert "UPDATED" in follow_up_prompt
    assert "CREATED" not in follow_up_prompt
    assert "Waves roll in..." in fake_llm.prompt_for(RewrittenArtifact)


def test_selection_edit_skips_routing_model(fake_llm):
    fake_llm.queue(UpdatedDocument, updated_document="Hello there")
    fake_llm.queue(FollowUpMessage, response="Updated your selection.")

    result = CanvasAgent(fake_llm).run(
        "Change the selection",
        artifact="Hello world",
        artifact_title="Greeting",
        selected_text_offset=6,
        selected_text_length=5,
    )

    assert fake_llm.shapes == [UpdatedDocument, FollowUpMessage]
    assert "Hello <selected>world</selected>" in fake_llm.prompt_for(UpdatedDocument)
    assert result["artifact"] == "Hello there"
    assert result["artifact_title"] == "Greeting"
    assert result["route"] is None
    assert result["output"] == "Updated your selection."
    assert "CREATED" in fake_llm.prompt_for(FollowUpMessage)


def test_selection_at_offset_zero_is_honoured(fake_llm):
    fake_llm.queue(UpdatedDocument, updated_document="Hi world")
    fake_llm.queue(FollowUpMessage, response="Done.")

    result = CanvasAgent(fake_llm).run(
        "Shorten it", artifact="Hello world", selected_text_offset=0, selected_text_length=5
    )

    assert fake_llm.shapes == [UpdatedDocument, FollowUpMessage]
    assert "<selected>Hello</selected> world" in fake_llm.prompt_for(UpdatedDocument)
    assert result["artifact"] == "Hi world"


def test_general_reply_keeps_artifact(fake_llm):
    fake_llm.queue(RouteWithArtifact, route="reply_to_general_input")
    fake_llm.queue(ChatReply, response="It is a four line poem.")

    result = CanvasAgent(fake_llm).run(
        "What is this about?", artifact="Waves roll in...", artifact_title="Ocean"
    )

    assert result["route"] == "reply_to_general_input"
    assert result["artifact"] == "Waves roll in..."
    assert result["artifact_title"] == "Ocean"
    assert result["output"] == "It is a four line poem."
    assert fake_llm.shapes == [RouteWithArtifact, ChatReply]


def test_reply_without_artifact(fake_llm):
    fake_llm.queue(RouteWithoutArtifact, route="reply_to_general_input")
    fake_llm.queue(ChatReply, response="Hello!")

    result = CanvasAgent(fake_llm).run("Hi")

    assert result["output"] == "Hello!"
    assert result["artifact"] is None


@pytest.mark.parametrize("offset,length", [
    (None, None),
    (6, None),
    (None, 5),
    (6, 0),
    (-1, 3),
    (8, 10),
])
def test_invalid_selection_falls_back_to_model_routing(fake_llm, offset, length):
    fake_llm.queue(RouteWithArtifact, route="reply_to_general_input")
    fake_llm.queue(ChatReply, response="ok")

    CanvasAgent(fake_llm).run(
        "Hi", artifact="Hello world", selected_text_offset=offset, selected_text_length=length
    )

    assert fake_llm.shapes[0] is RouteWithArtifact


def test_selection_without_artifact_is_ignored(fake_llm):
    fake_llm.queue(RouteWithoutArtifact, route="reply_to_general_input")
    fake_llm.queue(ChatReply, response="ok")

    CanvasAgent(fake_llm).run("Hi", selected_text_offset=0, selected_text_length=3)

    assert fake_llm.shapes == [RouteWithoutArtifact, ChatReply]


def test_memory_is_rendered_into_prompts(fake_llm):
    memory = ConversationMemory()
    memory.add_many([("user", "Write a haiku"), ("assistant", "Done, see the canvas.")])
    fake_llm.queue(RouteWithoutArtifact, route="reply_to_general_input")
    fake_llm.queue(ChatReply, response="ok")

    CanvasAgent(fake_llm).run("Thanks", memory=memory.as_read_only())

    assert "user: Write a haiku" in fake_llm.prompt_for(RouteWithoutArtifact)
    assert "assistant: Done, see the canvas." in fake_llm.prompt_for(ChatReply)


def test_follow_up_framing_is_stable_across_runs(fake_llm):
    agent = CanvasAgent(fake_llm)
    for _ in range(2):
        fake_llm.queue(RouteWithArtifact, route="rewrite_artifact")
        fake_llm.queue(RewrittenArtifact, title="T", artifact="v2")
        fake_llm.queue(FollowUpMessage, response="ok")
        agent.run("Rewrite", artifact="v1")

    follow_ups = [prompt for prompt, shape in fake_llm.calls if shape is FollowUpMessage]
    assert len(follow_ups) == 2
    assert follow_ups[0] == follow_ups[1]


def test_empty_generation_fails_the_run(fake_llm):
    fake_llm.queue(RouteWithoutArtifact, route="generate_artifact")
    fake_llm.queue(GeneratedArtifact, title="Empty", artifact="  ")

    with pytest.raises(EmptyGenerationError):
        CanvasAgent(fake_llm).run("Write something")

    assert FollowUpMessage not in fake_llm.shapes


def test_empty_selection_rewrite_fails_the_run(fake_llm):
    fake_llm.queue(UpdatedDocument, updated_document="")

    with pytest.raises(EmptyGenerationError):
        CanvasAgent(fake_llm).run(
            "Fix", artifact="Hello world", selected_text_offset=0, selected_text_length=5
        )


@pytest.mark.parametrize("error", [
    ModelCallError("connection reset"),
    SchemaViolationError("not json", raw_output="oops"),
])
def test_model_failures_propagate(fake_llm, error):
    fake_llm.queue(RouteWithArtifact, route="rewrite_artifact")
    fake_llm.queue(RewrittenArtifact, error)

    with pytest.raises(type(error)):
        CanvasAgent(fake_llm).run("Rewrite", artifact="v1")


def test_cancelled_before_start_makes_no_model_calls(fake_llm):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(RunCancelledError):
        CanvasAgent(fake_llm).run("Hi", cancel_token=token)

    assert fake_llm.calls == []


def test_cancel_during_run_stops_before_next_step(fake_llm):
    token = CancellationToken()
    fake_llm.queue(RouteWithoutArtifact, route="generate_artifact")
    fake_llm.on_call = lambda prompt, shape, cancel_token: cancel_token.cancel("user stop")

    with pytest.raises(RunCancelledError):
        CanvasAgent(fake_llm).run("Write", cancel_token=token)

    assert fake_llm.shapes == [RouteWithoutArtifact]


def test_observer_receives_step_starts(fake_llm):
    fake_llm.queue(RouteWithoutArtifact, route="reply_to_general_input")
    fake_llm.queue(ChatReply, response="ok")
    seen = []

    CanvasAgent(fake_llm).run("Hi", observer=lambda step, snapshot: seen.append(step))

    assert seen == [STEPS.route_user_message, STEPS.reply_to_general_input]


def test_failing_observer_does_not_break_run(fake_llm):
    fake_llm.queue(RouteWithoutArtifact, route="reply_to_general_input")
    fake_llm.queue(ChatReply, response="ok")

    def observer(step, snapshot):
        raise RuntimeError("display gone")

    assert CanvasAgent(fake_llm).run("Hi", observer=observer)["output"] == "ok"


def test_update_selected_text_without_selection_has_no_transition(fake_llm):
    state = {"input": "Fix", "artifact": "Hello", "selected_text_offset": None,
             "selected_text_length": None, "logs": []}

    assert update_selected_text_step(state, fake_llm) is None

    workflow = CanvasAgent(fake_llm).build_workflow()
    with pytest.raises(UndefinedTransitionError):
        workflow.run(state, start=STEPS.update_selected_text)
    assert fake_llm.calls == []


def test_registered_steps_and_routes_are_known_step_names(fake_llm):
    known = set(get_args(CanvasStep))
    workflow = CanvasAgent(fake_llm).build_workflow()

    assert set(workflow.steps) == known - {END}
    for shape in (RouteWithArtifact, RouteWithoutArtifact):
        assert set(get_args(shape.model_fields["route"].annotation)) <= known
