import threading
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from core.schemas import RouteWithArtifact, UpdatedDocument
from tools import llm_client
from tools.cancellation import CancellationToken, RunCancelledError
from tools.llm_client import (
    LLMClientWrapper,
    LLMNotAvailableError,
    ModelCallError,
    SchemaViolationError,
    call_with_cancellation,
    coerce_to_shape,
    get_llm_client,
    parse_json_response,
)


class FakeMessages:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.requests = []

    def create(self, **params):
        self.requests.append(params)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(text=self.reply)])


def _wrapper(reply=None, error=None):
    messages = FakeMessages(reply, error)
    return LLMClientWrapper(SimpleNamespace(messages=messages), model="test-model", max_tokens=100), messages


def test_parse_json_strips_code_fence():
    assert parse_json_response('```json\n{"route": "rewrite_artifact"}\n```') == {"route": "rewrite_artifact"}
    assert parse_json_response('  {"a": 1}  ') == {"a": 1}


def test_coerce_to_shape_validates_labels():
    assert coerce_to_shape('{"route": "rewrite_artifact"}', RouteWithArtifact).route == "rewrite_artifact"

    with pytest.raises(SchemaViolationError):
        coerce_to_shape('{"route": "generate_artifact"}', RouteWithArtifact)


def test_coerce_to_shape_rejects_non_json():
    with pytest.raises(SchemaViolationError) as excinfo:
        coerce_to_shape("Sure! Here is the document.", UpdatedDocument)
    assert excinfo.value.raw_output == "Sure! Here is the document."


def test_generate_sends_schema_and_parses_reply():
    wrapper, messages = _wrapper('{"updated_document": "Hello there"}')

    result = wrapper.generate("rewrite it", UpdatedDocument)

    assert result.updated_document == "Hello there"
    request = messages.requests[0]
    assert request["model"] == "test-model"
    assert request["max_tokens"] == 100
    assert request["messages"] == [{"role": "user", "content": "rewrite it"}]
    assert "updated_document" in request["system"]
    assert "temperature" not in request


def test_api_errors_become_model_call_errors():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    wrapper, _ = _wrapper(error=anthropic.APIConnectionError(request=request))

    with pytest.raises(ModelCallError):
        wrapper.generate("hi", UpdatedDocument)


def test_timeouts_become_model_call_errors():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    wrapper, _ = _wrapper(error=anthropic.APITimeoutError(request=request))

    with pytest.raises(ModelCallError):
        wrapper.invoke([{"role": "user", "content": "hi"}])


def test_call_with_cancellation_runs_inline_without_token():
    assert call_with_cancellation(lambda: "done") == "done"


def test_call_with_cancellation_propagates_errors():
    def boom():
        raise ModelCallError("down")

    with pytest.raises(ModelCallError):
        call_with_cancellation(boom, CancellationToken())


def test_call_with_cancellation_stops_waiting_when_cancelled():
    token = CancellationToken()
    release = threading.Event()
    timer = threading.Timer(0.2, token.cancel)
    timer.start()
    try:
        with pytest.raises(RunCancelledError):
            call_with_cancellation(lambda: release.wait(5), token)
    finally:
        release.set()
        timer.cancel()


def test_call_with_cancellation_checks_token_first():
    token = CancellationToken()
    token.cancel()
    called = []

    with pytest.raises(RunCancelledError):
        call_with_cancellation(lambda: called.append(True), token)
    assert called == []


def test_get_llm_client_requires_api_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setattr(llm_client, "_client", None)
    monkeypatch.setattr(llm_client, "_wrapper", None)

    with pytest.raises(LLMNotAvailableError):
        get_llm_client()


def test_abandoned_calls_do_not_starve_new_ones():
    release = threading.Event()
    try:
        for _ in range(6):
            token = CancellationToken()
            timer = threading.Timer(0.05, token.cancel)
            timer.start()
            with pytest.raises(RunCancelledError):
                call_with_cancellation(lambda: release.wait(30), token)

        finished = threading.Event()
        outcome = []

        def fresh_run():
            outcome.append(call_with_cancellation(lambda: "ok", CancellationToken()))
            finished.set()

        threading.Thread(target=fresh_run, daemon=True).start()
        assert finished.wait(2)
        assert outcome == ["ok"]
    finally:
        release.set()
