"""Atlassian Document Format (ADF) helpers for worklog comments."""

from typing import Any


def text_to_adf(text: str) -> dict[str, Any]:
    """Wrap plain text in a single-paragraph ADF document.

    Args:
        text: Comment text.

    Returns:
        ADF document with one paragraph holding one text run.
    """
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}],
            }
        ],
    }


def extract_text(node: Any) -> str:
    """Concatenate every text leaf of an ADF tree in document order.

    Node types other than ``text`` contribute only through their children;
    unknown shapes are ignored. A plain string is returned unchanged.

    Args:
        node: ADF document (or any sub-tree), a plain string, or None.

    Returns:
        Plain-text description, empty if there is none.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node

    parts: list[str] = []
    _collect_text(node, parts)
    return "".join(parts)


def _collect_text(node: Any, parts: list[str]) -> None:
    if isinstance(node, list):
        for child in node:
            _collect_text(child, parts)
        return
    if not isinstance(node, dict):
        return

    if node.get("type") == "text":
        text = node.get("text")
        if isinstance(text, str):
            parts.append(text)
        return

    _collect_text(node.get("content"), parts)
