from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask import Blueprint, jsonify, request

from app.auth import api_key_required
from app.socketio_handlers import emit_canvas_event
from core.canvas_agent import CanvasAgent
from core.chat_history import ChatHistoryManager
from core.memory import ROLES, ConversationMemory
from core.planner_agent import PlannerAgent
from core.store import ConversationStore
from core.workflow import EmptyGenerationError, WorkflowError
from tools.cancellation import CancellationToken, RunCancelledError
from tools.llm_client import LLMNotAvailableError, ModelCallError, SchemaViolationError
from tools.searxng import SearchToolError, SearxngTool

logger = logging.getLogger(__name__)

# Blueprint for canvas routes
canvas_bp = Blueprint('canvas', __name__)

# Module-level managers (initialized in init_canvas_routes)
_agent: Optional[CanvasAgent] = None
_planner: Optional[PlannerAgent] = None
_store: Optional[ConversationStore] = None
_chat_history: Optional[ChatHistoryManager] = None
_socketio = None

_active_runs: Dict[str, CancellationToken] = {}
_active_runs_lock = threading.Lock()


def init_canvas_routes(
    config: Dict[str, Any],
    socketio_instance=None,
    model_caller=None,
    search_tool: Optional[SearxngTool] = None,
):
    """Initialize canvas routes with dependencies."""
    global _agent, _planner, _store, _chat_history, _socketio
    _agent = CanvasAgent(model_caller)
    _planner = PlannerAgent(
        model_caller,
        search_tool or SearxngTool(
            base_url=config.get('SEARXNG_URL'),
            max_results=config.get('SEARXNG_MAX_RESULTS', 10),
        ),
    )
    _store = ConversationStore(data_dir=config.get('DATA_DIR', 'data/conversations'))
    _chat_history = ChatHistoryManager(_store)
    _socketio = socketio_instance
    with _active_runs_lock:
        _active_runs.clear()
    logger.info("Canvas routes initialized")


# ============================================================================
# Run bookkeeping
# ============================================================================

def _begin_run(conversation_id: str) -> Optional[CancellationToken]:
    """Register an active run; None when the conversation already has one."""
    with _active_runs_lock:
        if conversation_id in _active_runs:
            return None
        token = CancellationToken()
        _active_runs[conversation_id] = token
        return token


def _end_run(conversation_id: str) -> None:
    with _active_runs_lock:
        _active_runs.pop(conversation_id, None)


def cancel_run(conversation_id: str) -> bool:
    """Cancel the active run of a conversation. Returns False when none is active."""
    with _active_runs_lock:
        token = _active_runs.get(conversation_id)
    if token is None:
        return False
    token.cancel("cancelled by client")
    logger.info(f"Cancellation requested for conversation {conversation_id}")
    return True


def _make_step_observer(conversation_id: str) -> Optional[Callable[[str, Dict[str, Any]], None]]:
    """Create a step observer that forwards step starts to Socket.IO."""
    if not _socketio:
        return None

    def observer(step: str, snapshot: Dict[str, Any]) -> None:
        emit_canvas_event(_socketio, conversation_id, "step_started", {
            "conversation_id": conversation_id,
            "step": step,
            "route": snapshot.get("route"),
            "timestamp": datetime.utcnow().isoformat() + "Z",
        })

    return observer


def _error_response(exc: Exception, context: str):
    """Translate run failures into JSON error responses."""
    if isinstance(exc, RunCancelledError):
        return jsonify({"error": "Run cancelled"}), 499
    if isinstance(exc, EmptyGenerationError):
        return jsonify({"error": f"Model returned empty content: {exc}"}), 422
    if isinstance(exc, LLMNotAvailableError):
        return jsonify({"error": "LLM not configured"}), 503
    if isinstance(exc, (ModelCallError, SchemaViolationError, SearchToolError)):
        logger.error(f"{context} failed: {exc}")
        return jsonify({"error": f"Upstream failure: {exc}"}), 502
    if isinstance(exc, WorkflowError):
        logger.exception(f"{context} workflow fault: {exc}")
        return jsonify({"error": "Workflow fault"}), 500
    logger.exception(f"{context} failed: {exc}")
    return jsonify({"error": "Processing failed"}), 500


def _optional_int(body: Dict[str, Any], key: str) -> Optional[int]:
    value = body.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


# ============================================================================
# Stateless run
# ============================================================================

@canvas_bp.route("/api/canvas/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@canvas_bp.route("/api/canvas/run", methods=["POST"])
@api_key_required
def run_canvas():
    """Run one turn; the last message is the input, the whole list is the memory."""
    body = request.get_json(force=True, silent=True) or {}
    messages = body.get("messages") or []
    if not isinstance(messages, list) or not messages:
        return jsonify({"error": "messages is required"}), 400

    memory = ConversationMemory()
    for message in messages:
        if not isinstance(message, dict) or message.get("role") not in ROLES:
            return jsonify({"error": "each message needs a role of 'user' or 'assistant'"}), 400
        memory.add(message["role"], str(message.get("content") or ""))

    user_prompt = str(messages[-1].get("content") or "").strip()
    if messages[-1]["role"] != "user" or not user_prompt:
        return jsonify({"error": "the last message must be a non-empty user message"}), 400

    for key in ("artifact", "artifact_title"):
        if body.get(key) is not None and not isinstance(body[key], str):
            return jsonify({"error": f"{key} must be a string"}), 400

    try:
        result = _agent.run(
            user_prompt,
            artifact=body.get("artifact") or None,
            artifact_title=body.get("artifact_title") or None,
            selected_text_offset=_optional_int(body, "selected_text_offset"),
            selected_text_length=_optional_int(body, "selected_text_length"),
            memory=memory.as_read_only(),
        )
    except Exception as exc:  # pylint: disable=broad-except
        return _error_response(exc, "Canvas run")

    return jsonify({
        "messages": [{"role": "assistant", "content": result["output"]}],
        "artifact": result.get("artifact"),
        "artifact_title": result.get("artifact_title"),
        "route": result.get("route"),
    })


# ============================================================================
# Conversations
# ============================================================================

@canvas_bp.route("/api/canvas/conversations", methods=["GET", "POST"])
@api_key_required
def conversations():
    if request.method == "GET":
        return jsonify({"conversations": _store.list_conversations()})

    body = request.get_json(force=True, silent=True) or {}
    record = _store.create(title=(body.get("title") or "").strip() or None)
    return jsonify(record), 201


@canvas_bp.route("/api/canvas/conversations/<conversation_id>", methods=["GET", "DELETE"])
@api_key_required
def conversation_detail(conversation_id: str):
    if request.method == "DELETE":
        if not _store.delete(conversation_id):
            return jsonify({"error": "Conversation not found"}), 404
        return jsonify({"deleted": conversation_id})

    record = _store.load(conversation_id)
    if not record:
        return jsonify({"error": "Conversation not found"}), 404
    return jsonify(record)


@canvas_bp.route("/api/canvas/conversations/<conversation_id>/messages", methods=["GET", "DELETE"])
@api_key_required
def conversation_messages(conversation_id: str):
    """List or clear the stored chat messages; the artifact is kept."""
    if not _store.load(conversation_id):
        return jsonify({"error": "Conversation not found"}), 404

    if request.method == "GET":
        return jsonify({
            "conversation_id": conversation_id,
            "messages": _chat_history.list_messages(conversation_id),
        })

    with _active_runs_lock:
        if conversation_id in _active_runs:
            return jsonify({"error": "A run is already active for this conversation"}), 409
        _chat_history.clear_messages(conversation_id)
    return jsonify({"conversation_id": conversation_id, "cleared": True})


@canvas_bp.route("/api/canvas/conversations/<conversation_id>/messages", methods=["POST"])
@api_key_required
def conversation_message(conversation_id: str):
    """Run a turn against the conversation's stored artifact and history."""
    record = _store.load(conversation_id)
    if not record:
        return jsonify({"error": "Conversation not found"}), 404

    body = request.get_json(force=True, silent=True) or {}
    user_message = str(body.get("message") or "").strip()
    if not user_message:
        return jsonify({"error": "message is required"}), 400

    token = _begin_run(conversation_id)
    if token is None:
        return jsonify({"error": "A run is already active for this conversation"}), 409

    try:
        state = record.get("state", {}) or {}
        memory = _chat_history.as_memory(conversation_id)
        memory.add("user", user_message)

        try:
            result = _agent.run(
                user_message,
                artifact=state.get("artifact"),
                artifact_title=state.get("artifact_title"),
                selected_text_offset=_optional_int(body, "selected_text_offset"),
                selected_text_length=_optional_int(body, "selected_text_length"),
                memory=memory.as_read_only(),
                observer=_make_step_observer(conversation_id),
                cancel_token=token,
            )
        except Exception as exc:  # pylint: disable=broad-except
            return _error_response(exc, f"Conversation {conversation_id} run")

        # Only a completed run is persisted
        if result.get("artifact"):
            _store.save_artifact(
                conversation_id, result["artifact"], result.get("artifact_title"), result.get("route")
            )
        _chat_history.add_message(conversation_id, "user", user_message)
        _chat_history.add_message(conversation_id, "assistant", result["output"])
    finally:
        _end_run(conversation_id)

    if _socketio:
        emit_canvas_event(_socketio, conversation_id, "run_completed", {
            "conversation_id": conversation_id,
            "route": result.get("route"),
        })

    return jsonify({
        "conversation_id": conversation_id,
        "response": result["output"],
        "artifact": result.get("artifact"),
        "artifact_title": result.get("artifact_title"),
        "route": result.get("route"),
        "metrics": result.get("metrics"),
    })


@canvas_bp.route("/api/canvas/conversations/<conversation_id>/artifact/versions", methods=["GET"])
@api_key_required
def artifact_versions(conversation_id: str):
    versions = _store.list_artifact_versions(conversation_id)
    if versions is None:
        return jsonify({"error": "Conversation not found"}), 404
    return jsonify({"conversation_id": conversation_id, "versions": versions})


@canvas_bp.route("/api/canvas/conversations/<conversation_id>/cancel", methods=["POST"])
@api_key_required
def cancel_conversation_run(conversation_id: str):
    if not cancel_run(conversation_id):
        return jsonify({"error": "No active run"}), 404
    return jsonify({"conversation_id": conversation_id, "cancelled": True})


# ============================================================================
# Planner
# ============================================================================

@canvas_bp.route("/api/planner/run", methods=["POST"])
@api_key_required
def run_planner():
    body = request.get_json(force=True, silent=True) or {}
    query = str(body.get("query") or "").strip()
    if not query:
        return jsonify({"error": "query is required"}), 400

    try:
        result = _planner.run(query)
    except Exception as exc:  # pylint: disable=broad-except
        return _error_response(exc, "Planner run")

    return jsonify({
        "output": result["output"],
        "plan": result.get("plan", []),
    })
