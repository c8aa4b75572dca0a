"""File utility functions."""

from pathlib import Path


def ensure_directory(path: Path) -> Path:
    """Create directory if it doesn't exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_text_file(path: Path) -> str:
    """Read UTF-8 text content from file."""
    return Path(path).expanduser().read_text(encoding="utf-8")


def write_text_file(path: Path, content: str) -> None:
    """Write text content to file."""
    path = Path(path).expanduser()
    ensure_directory(path.parent)
    path.write_text(content, encoding="utf-8")
