"""
Chat history management for canvas conversations.
Handles storage and retrieval of messages between the user and the agent.
"""
from typing import Any, Dict, List, Optional

from core.memory import ChatMessage, ConversationMemory, make_message
from core.store import ConversationStore


class ChatHistoryManager:
    """Manages chat history for canvas conversations."""

    def __init__(self, store: ConversationStore):
        self.store = store

    def _get_messages_from_state(self, conversation_id: str) -> List[Dict[str, Any]]:
        """Get chat messages array from conversation state."""
        record = self.store.load(conversation_id)
        if not record:
            return []

        state = record.get("state", {})
        return state.get("chat_messages", [])

    def _save_messages_to_state(self, conversation_id: str, messages: List[Dict[str, Any]]) -> bool:
        """Save chat messages array to conversation state."""
        with self.store._lock:
            record = self.store.load(conversation_id)
            if not record:
                return False

            state = record.get("state", {})
            state["chat_messages"] = messages
            record["state"] = state
            self.store.write(record)

        return True

    def list_messages(self, conversation_id: str) -> List[Dict[str, Any]]:
        """
        List all chat messages for a conversation.

        Args:
            conversation_id: Conversation ID

        Returns:
            List of message dictionaries
        """
        return self._get_messages_from_state(conversation_id)

    def add_message(self, conversation_id: str, role: str, text: str) -> Optional[ChatMessage]:
        """
        Append a chat message.

        Args:
            conversation_id: Conversation ID
            role: Message role ('user' or 'assistant')
            text: Message text

        Returns:
            The created message, or None when the conversation does not exist
        """
        with self.store._lock:
            messages = self._get_messages_from_state(conversation_id)
            message = make_message(role, text)
            messages.append(dict(message))
            if not self._save_messages_to_state(conversation_id, messages):
                return None

        return message

    def clear_messages(self, conversation_id: str) -> bool:
        """
        Clear all chat messages for a conversation.

        Args:
            conversation_id: Conversation ID

        Returns:
            True if successful
        """
        return self._save_messages_to_state(conversation_id, [])

    def as_memory(self, conversation_id: str) -> ConversationMemory:
        """Load the stored messages into a ConversationMemory."""
        return ConversationMemory(
            make_message(m["role"], m["text"], m.get("timestamp"))
            for m in self._get_messages_from_state(conversation_id)
        )
