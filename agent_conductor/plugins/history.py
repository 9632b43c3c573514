"""
Paging over CLI-native conversation history.

Vendor CLIs compact long conversations: they summarise earlier turns into a
single message and carry on from there. Everything before the most recent
such summary is superseded context, so paging stops at it.
"""

from datetime import datetime
from typing import Any, List, Optional, Sequence

from agent_conductor.config import get_settings
from agent_conductor.plugins.base import HistoryMessage, PaginatedHistory


def parse_timestamp(value: Any) -> Optional[int]:
    """ISO-8601 (with Z) or epoch seconds to epoch seconds; None when unreadable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str) or not value:
        return None
    if value.isdigit():
        return int(value)
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return None


def is_continuation_marker(
    content: str,
    markers: Sequence[str],
    analysis_marker: str = "Analysis:",
    analysis_min_length: int = 500,
) -> bool:
    """True if a message marks a summarised or continued conversation."""
    if any(marker in content for marker in markers):
        return True
    return (
        bool(analysis_marker)
        and analysis_marker in content
        and len(content) > analysis_min_length
    )


def find_continuation_index(
    messages: Sequence[HistoryMessage],
    markers: Optional[Sequence[str]] = None,
    analysis_marker: Optional[str] = None,
    analysis_min_length: Optional[int] = None,
) -> Optional[int]:
    """Index of the most recent continuation marker, or None."""
    if markers is None or analysis_marker is None or analysis_min_length is None:
        history_cfg = get_settings().history
        markers = history_cfg.continuation_markers if markers is None else markers
        if analysis_marker is None:
            analysis_marker = history_cfg.analysis_marker
        if analysis_min_length is None:
            analysis_min_length = history_cfg.analysis_min_length

    for index in range(len(messages) - 1, -1, -1):
        if is_continuation_marker(
            messages[index].content, markers, analysis_marker, analysis_min_length
        ):
            return index
    return None


def paginate_history(
    messages: Sequence[HistoryMessage],
    offset: int,
    limit: int,
    markers: Optional[Sequence[str]] = None,
) -> PaginatedHistory:
    """
    Page through chronological history, most recent first.

    If a continuation marker exists at index i, every message from i onward
    is returned (most recent first) regardless of offset/limit, and
    has_more is False. Otherwise the window [offset, offset + limit) of the
    reversed history is returned.

    Args:
        messages: Full history in chronological order
        offset: Number of most-recent messages to skip
        limit: Page size
        markers: Override the configured continuation markers
    """
    offset = max(offset, 0)
    limit = max(limit, 0)
    total = len(messages)

    marker_index = find_continuation_index(messages, markers)
    if marker_index is not None:
        page: List[HistoryMessage] = list(reversed(messages[marker_index:]))
        return PaginatedHistory(
            messages=page, total_count=total, has_more=False, offset=0
        )

    newest_first = list(reversed(messages))
    page = newest_first[offset : offset + limit]
    return PaginatedHistory(
        messages=page,
        total_count=total,
        has_more=offset + limit < total,
        offset=offset,
    )
