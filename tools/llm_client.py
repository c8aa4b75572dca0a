"""Direct Anthropic API integration for structured LLM calls."""

import json
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Type, TypeVar

import anthropic
from anthropic import Anthropic
from pydantic import BaseModel, ValidationError

from tools.cancellation import CancellationToken, RunCancelledError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-sonnet-latest"
DEFAULT_MAX_TOKENS = 4096

ShapeT = TypeVar("ShapeT", bound=BaseModel)

_CANCEL_POLL_SECONDS = 0.1


class LLMNotAvailableError(RuntimeError):
    """LLM not available error."""
    pass


class ModelCallError(RuntimeError):
    """The model call failed (network, API status, timeout)."""
    pass


class SchemaViolationError(ValueError):
    """The model output could not be coerced to the requested shape."""

    def __init__(self, message: str, raw_output: str = ""):
        super().__init__(message)
        self.raw_output = raw_output


class StructuredModelCaller(Protocol):
    def generate(
        self,
        prompt: str,
        shape: Type[ShapeT],
        cancel_token: Optional[CancellationToken] = None,
    ) -> ShapeT:
        ...


STRUCTURED_SYSTEM_PROMPT = """You produce structured data for a co-editing application.

Respond ONLY with a single valid JSON value that conforms to this JSON schema:
{schema}

Do not add explanations, markdown fences or any text before or after the JSON."""


def parse_json_response(response: str) -> Any:
    """Parse a JSON reply, tolerating a surrounding markdown code fence."""
    cleaned_response = response.strip()
    if cleaned_response.startswith("```"):
        lines = cleaned_response.split("\n")
        if len(lines) > 2:
            cleaned_response = "\n".join(lines[1:-1])
        if cleaned_response.endswith("```"):
            cleaned_response = cleaned_response[:-3]
    return json.loads(cleaned_response)


def coerce_to_shape(response: str, shape: Type[ShapeT]) -> ShapeT:
    """Parse a raw model reply into an instance of ``shape``."""
    try:
        parsed = parse_json_response(response)
    except json.JSONDecodeError as exc:
        raise SchemaViolationError(
            f"Model output for {shape.__name__} is not valid JSON: {exc}", response
        ) from exc
    try:
        return shape.model_validate(parsed)
    except ValidationError as exc:
        raise SchemaViolationError(
            f"Model output does not match {shape.__name__}: {exc}", response
        ) from exc


def call_with_cancellation(fn: Callable[[], Any], cancel_token: Optional[CancellationToken] = None) -> Any:
    """
    Run ``fn`` and stop waiting for it as soon as ``cancel_token`` fires.

    Without a token the call runs inline. With one, it runs on its own daemon
    thread, so an abandoned call never holds up other runs; on cancellation
    its result is discarded and RunCancelledError is raised.
    """
    if cancel_token is None:
        return fn()

    cancel_token.raise_if_cancelled()
    outcome: Dict[str, Any] = {}
    done = threading.Event()

    def target():
        try:
            outcome["result"] = fn()
        except Exception as exc:  # pylint: disable=broad-except
            outcome["error"] = exc
        finally:
            done.set()

    threading.Thread(target=target, name="llm-call", daemon=True).start()
    while not done.wait(_CANCEL_POLL_SECONDS):
        if cancel_token.cancelled:
            logger.info(f"[LLMClient] Abandoning model call: {cancel_token.reason}")
            raise RunCancelledError(cancel_token.reason or "cancelled")

    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("result")


class LLMClientWrapper:
    """Wrapper around Anthropic client providing plain and structured calls."""

    def __init__(
        self,
        client: Anthropic,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: Optional[float] = None,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    def invoke(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Invoke LLM with messages.

        Args:
            messages: List of {"role": "user"|"assistant", "content": "..."}
            system: Optional system prompt
            temperature: Override default temperature (0.0-1.0)
            max_tokens: Maximum tokens in response

        Returns:
            LLM response text

        Raises:
            ModelCallError: on connection, timeout or API status failures
        """
        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": messages,
        }

        if system:
            params["system"] = system

        if temperature is None:
            temperature = self.temperature
        if temperature is not None:
            params["temperature"] = temperature

        try:
            response = self.client.messages.create(**params)
        except anthropic.APITimeoutError as exc:
            raise ModelCallError(f"Model call timed out: {exc}") from exc
        except anthropic.APIError as exc:
            raise ModelCallError(f"Model call failed: {exc}") from exc

        # Extract text from response
        if hasattr(response, 'content') and response.content:
            text_parts = []
            for block in response.content:
                if hasattr(block, 'text'):
                    text_parts.append(block.text)
                elif isinstance(block, dict) and 'text' in block:
                    text_parts.append(block['text'])
            return "".join(text_parts)

        return ""

    def generate(
        self,
        prompt: str,
        shape: Type[ShapeT],
        cancel_token: Optional[CancellationToken] = None,
    ) -> ShapeT:
        """
        Send ``prompt`` and parse the reply into ``shape``.

        Raises:
            ModelCallError: the request failed
            SchemaViolationError: the reply is not JSON matching ``shape``
            RunCancelledError: ``cancel_token`` fired while waiting
        """
        system_prompt = STRUCTURED_SYSTEM_PROMPT.format(
            schema=json.dumps(shape.model_json_schema(), indent=2)
        )
        messages = [{"role": "user", "content": prompt}]

        response = call_with_cancellation(
            lambda: self.invoke(messages=messages, system=system_prompt),
            cancel_token,
        )
        logger.debug(f"[LLMClient] {shape.__name__} raw response ({len(response)} chars)")
        return coerce_to_shape(response, shape)


_client: Optional[Anthropic] = None
_wrapper: Optional[LLMClientWrapper] = None


def get_llm_client() -> LLMClientWrapper:
    """Get or create Anthropic client wrapper."""
    global _client, _wrapper
    if _client is None:
        api_key = os.getenv('ANTHROPIC_API_KEY')
        if not api_key:
            raise LLMNotAvailableError("ANTHROPIC_API_KEY environment variable not set")
        _client = Anthropic(
            api_key=api_key,
            max_retries=int(os.getenv('LLM_MAX_RETRIES', '2')),
            timeout=float(os.getenv('LLM_TIMEOUT', '120')),
        )
        temperature = os.getenv('LLM_TEMPERATURE')
        _wrapper = LLMClientWrapper(
            _client,
            model=os.getenv('LLM_MODEL', DEFAULT_MODEL),
            max_tokens=int(os.getenv('LLM_MAX_TOKENS', str(DEFAULT_MAX_TOKENS))),
            temperature=float(temperature) if temperature else None,
        )
    return _wrapper
