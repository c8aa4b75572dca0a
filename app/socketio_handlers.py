"""Socket.IO event handlers."""

import logging

from flask import request
from flask_socketio import emit, join_room, leave_room

logger = logging.getLogger(__name__)


def conversation_room(conversation_id: str) -> str:
    return f"canvas:{conversation_id}"


def register_socketio_handlers(socketio, cancel_run=None):
    """
    Register Socket.IO event handlers.

    ``cancel_run(conversation_id) -> bool`` cancels the active run of a
    conversation, if any.
    """

    @socketio.on('connect')
    def handle_connect():
        """Handle client connection."""
        logger.info(f"Client connected: {request.sid}")
        emit('connected', {'status': 'ok'})

    @socketio.on('canvas:join')
    def handle_join(data):
        """Join a conversation room."""
        conversation_id = (data or {}).get('conversationId')
        if conversation_id:
            join_room(conversation_room(conversation_id))
            emit('joined', {'conversationId': conversation_id})

    @socketio.on('canvas:leave')
    def handle_leave(data):
        """Leave a conversation room."""
        conversation_id = (data or {}).get('conversationId')
        if conversation_id:
            leave_room(conversation_room(conversation_id))
            emit('left', {'conversationId': conversation_id})

    @socketio.on('canvas:cancel')
    def handle_cancel(data):
        """Cancel the active run of a conversation."""
        conversation_id = (data or {}).get('conversationId')
        cancelled = bool(conversation_id and cancel_run and cancel_run(conversation_id))
        emit('cancel_requested', {'conversationId': conversation_id, 'cancelled': cancelled})

    @socketio.on('disconnect')
    def handle_disconnect(*args):
        """Handle client disconnection."""
        logger.info(f"Client disconnected: {request.sid}")


def emit_canvas_event(socketio, conversation_id: str, event_type: str, data: dict):
    """Emit an event to a specific conversation room."""
    socketio.emit(
        f'canvas:{event_type}',
        data,
        room=conversation_room(conversation_id)
    )
