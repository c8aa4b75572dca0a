"""File-based JSON storage for canvas conversations."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from tools.file_utils import ensure_directory

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    """Get current timestamp in ISO format."""
    return datetime.utcnow().isoformat() + "Z"


class ConversationStore:
    """
    File-based JSON storage for canvas conversations.

    Each conversation record holds its chat messages, the current artifact
    and title, and the list of artifact revisions.
    """

    def __init__(self, data_dir: str = "data/conversations"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.index_file = self.data_dir / "index.json"
        self._lock = threading.RLock()
        self._ensure_index()

    def _ensure_index(self):
        """Ensure index.json exists."""
        if not self.index_file.exists():
            with open(self.index_file, 'w') as f:
                json.dump({"conversations": []}, f, indent=2)

    def _conversation_file(self, conversation_id: str) -> Path:
        """Get path to conversation JSON file."""
        return self.data_dir / f"{conversation_id}.json"

    def _update_index(self, record: Dict[str, Any]):
        """Update the index.json file."""
        with open(self.index_file, 'r') as f:
            index = json.load(f)

        entries = [c for c in index["conversations"] if c["id"] != record["id"]]
        entries.append({
            "id": record["id"],
            "title": record.get("title", "Untitled"),
            "created_at": record.get("created_at"),
            "updated_at": record.get("updated_at"),
        })
        index["conversations"] = sorted(entries, key=lambda x: x.get("updated_at", ""), reverse=True)

        with open(self.index_file, 'w') as f:
            json.dump(index, f, indent=2)

    def write(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a full conversation record and refresh the index."""
        with self._lock:
            record["updated_at"] = _timestamp()
            path = self._conversation_file(record["id"])
            ensure_directory(path.parent)
            with path.open("w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            self._update_index(record)
        return record

    def create(self, title: Optional[str] = None) -> Dict[str, Any]:
        """Create an empty conversation."""
        conversation_id = uuid4().hex
        now = _timestamp()
        record = {
            "id": conversation_id,
            "title": title or "Untitled",
            "created_at": now,
            "updated_at": now,
            "state": {
                "artifact": None,
                "artifact_title": None,
                "artifact_versions": [],
                "chat_messages": [],
            },
        }
        self.write(record)
        logger.info(f"Created conversation {conversation_id}")
        return record

    def list_conversations(self) -> List[Dict[str, Any]]:
        """List conversations (index entries only)."""
        with open(self.index_file, 'r') as f:
            return json.load(f).get("conversations", [])

    def load(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        """Load a conversation by id."""
        path = self._conversation_file(conversation_id)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def delete(self, conversation_id: str) -> bool:
        """Delete a conversation."""
        with self._lock:
            path = self._conversation_file(conversation_id)
            deleted = False
            if path.exists():
                path.unlink()
                deleted = True

            with open(self.index_file, 'r') as f:
                index = json.load(f)
            index["conversations"] = [c for c in index["conversations"] if c["id"] != conversation_id]
            with open(self.index_file, 'w') as f:
                json.dump(index, f, indent=2)

        return deleted

    def save_artifact(
        self,
        conversation_id: str,
        artifact: str,
        artifact_title: Optional[str],
        route: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Set the current artifact and append it to the revision history when it changed."""
        with self._lock:
            record = self.load(conversation_id)
            if not record:
                return None

            state = record.get("state", {})
            versions = state.setdefault("artifact_versions", [])
            if artifact != state.get("artifact") or artifact_title != state.get("artifact_title"):
                versions.append({
                    "version": len(versions) + 1,
                    "title": artifact_title,
                    "artifact": artifact,
                    "route": route,
                    "timestamp": _timestamp(),
                })
            state["artifact"] = artifact
            state["artifact_title"] = artifact_title
            record["state"] = state
            if artifact_title and record.get("title", "Untitled") == "Untitled":
                record["title"] = artifact_title

            return self.write(record)

    def list_artifact_versions(self, conversation_id: str) -> Optional[List[Dict[str, Any]]]:
        record = self.load(conversation_id)
        if not record:
            return None
        return record.get("state", {}).get("artifact_versions", [])
