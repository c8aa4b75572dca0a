"""
Conversation memory handed to agent runs.

``ConversationMemory`` is the append-only log owned by the caller;
``ReadOnlyMemory`` is the snapshot view the agent core reads.
"""
from datetime import datetime
from typing import Iterable, Iterator, List, Literal, Tuple, TypedDict

Role = Literal["user", "assistant"]

ROLES = ("user", "assistant")


class ChatMessage(TypedDict):
    role: Role
    text: str
    timestamp: str


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


def make_message(role: str, text: str, timestamp: str = None) -> ChatMessage:
    if role not in ROLES:
        raise ValueError(f"Unknown message role: {role!r}")
    return ChatMessage(role=role, text=text, timestamp=timestamp or _timestamp())


class ReadOnlyMemory:
    """Immutable snapshot of a conversation; iteration only."""

    def __init__(self, messages: Iterable[ChatMessage] = ()):
        self._messages: Tuple[ChatMessage, ...] = tuple(dict(m) for m in messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        # copies, so callers cannot edit the snapshot through the yielded dicts
        return (ChatMessage(**m) for m in self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)

    def render(self) -> str:
        """Render as ``role: text`` lines for prompts."""
        return "\n".join(f"{m['role']}: {m['text']}" for m in self._messages)


class ConversationMemory:
    """Append-only ordered log of role-tagged messages."""

    def __init__(self, messages: Iterable[ChatMessage] = ()):
        self._messages: List[ChatMessage] = [ChatMessage(**m) for m in messages]

    def add(self, role: str, text: str) -> ChatMessage:
        message = make_message(role, text)
        self._messages.append(message)
        return message

    def add_many(self, messages: Iterable[Tuple[str, str]]) -> None:
        for role, text in messages:
            self.add(role, text)

    @property
    def messages(self) -> List[ChatMessage]:
        return [ChatMessage(**m) for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def as_read_only(self) -> ReadOnlyMemory:
        return ReadOnlyMemory(self._messages)
