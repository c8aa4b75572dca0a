"""Offset-based markup of a selected range inside an artifact."""

from typing import Optional


def tag_selected_text(document: str, offset: int, length: int, tag: str = "tag") -> str:
    """
    Wrap ``document[offset:offset + length]`` in ``<tag>...</tag>``.

    Out-of-range or empty selections return the document unchanged.
    """
    if offset < 0 or length <= 0 or offset + length > len(document):
        return document

    before = document[:offset]
    selected_text = document[offset:offset + length]
    after = document[offset + length:]

    return f"{before}<{tag}>{selected_text}</{tag}>{after}"


def has_valid_selection(
    artifact: Optional[str],
    offset: Optional[int],
    length: Optional[int],
) -> bool:
    """True when an artifact exists and offset/length describe a non-empty range inside it."""
    if not artifact:
        return False
    # bool is an int subclass; a stray True/False is not a position
    for value in (offset, length):
        if value is None or isinstance(value, bool) or not isinstance(value, int):
            return False
    return offset >= 0 and length > 0 and offset + length <= len(artifact)


def selected_text(artifact: str, offset: int, length: int) -> str:
    return artifact[offset:offset + length]
