"""Cancellation boundary predicates.

A pending cancellation takes effect on the first fragment whose text
satisfies the requested boundary. ``evaluate_boundary`` decides whether to
stop; ``allowed_portion`` decides how much of that fragment is kept.
"""

from __future__ import annotations

import re

from deepseek_kit.errors import InvalidBoundaryState
from deepseek_kit.schemas.session import CancelBoundary

_SENTENCE_END = (".", "!", "?")
_GRACEFUL_END = (".", "\n")
_WHITESPACE_RE = re.compile(r"\s")
_PARAGRAPH_BREAK = "\n\n"


def evaluate_boundary(boundary: CancelBoundary, buffer: str, fragment: str) -> bool:
    """Return True when cancellation should take effect at this fragment.

    Args:
        boundary: The boundary requested by the caller.
        buffer: Text accumulated before this fragment.
        fragment: Text of the incoming fragment.

    Raises:
        InvalidBoundaryState: If both buffer and fragment are empty.
    """
    if not buffer and not fragment:
        raise InvalidBoundaryState(
            f"Cannot evaluate {boundary} boundary without any text"
        )

    accumulated = buffer + fragment

    if boundary == CancelBoundary.IMMEDIATE:
        return True
    if boundary == CancelBoundary.AFTER_WORD:
        return _WHITESPACE_RE.search(fragment) is not None
    if boundary == CancelBoundary.AFTER_SENTENCE:
        return accumulated.endswith(_SENTENCE_END)
    if boundary == CancelBoundary.AFTER_PARAGRAPH:
        return _PARAGRAPH_BREAK in fragment
    if boundary == CancelBoundary.GRACEFUL:
        return accumulated.endswith(_GRACEFUL_END)

    raise ValueError(f"Unknown cancel boundary: {boundary!r}")


def allowed_portion(boundary: CancelBoundary, fragment: str) -> str:
    """Return the prefix of ``fragment`` that may still be appended.

    Only meaningful once ``evaluate_boundary`` returned True for the same
    fragment.
    """
    if boundary == CancelBoundary.IMMEDIATE:
        return ""
    if boundary == CancelBoundary.AFTER_WORD:
        matches = list(_WHITESPACE_RE.finditer(fragment))
        if not matches:
            return fragment
        return fragment[: matches[-1].end()]
    if boundary == CancelBoundary.AFTER_PARAGRAPH:
        index = fragment.rfind(_PARAGRAPH_BREAK)
        if index < 0:
            return fragment
        return fragment[: index + len(_PARAGRAPH_BREAK)]
    return fragment
