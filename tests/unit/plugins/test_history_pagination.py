"""
Unit Tests: history pagination and continuation detection.
"""


def _messages(count, marker_at=None, marker="This session is being continued"):
    from agent_conductor.plugins.base import HistoryMessage

    messages = []
    for i in range(count):
        content = f"message {i}"
        if marker_at is not None and i == marker_at:
            content = f"{marker} from a previous conversation"
        messages.append(
            HistoryMessage(id=f"m{i}", role="user", content=content, timestamp=i)
        )
    return messages


class TestContinuationMarker:
    """Tests for marker-based pagination."""

    def test_marker_returns_everything_from_marker(self):
        """
        A continuation marker short-circuits paging.

        Given: 50 messages with a marker at index 30
        When: paginate_history(offset=0, limit=10)
        Then: 21 messages (indices 50..30 reversed), has_more False
        """
        from agent_conductor.plugins.history import paginate_history

        page = paginate_history(_messages(50, marker_at=30), offset=0, limit=10)

        assert len(page.messages) == 21
        assert page.messages[0].id == "m49"
        assert page.messages[-1].id == "m30"
        assert page.has_more is False
        assert page.total_count == 50
        assert page.offset == 0

    def test_most_recent_marker_wins(self):
        from agent_conductor.plugins.history import find_continuation_index

        messages = _messages(10, marker_at=2)
        messages[7].content = "## Summary of work"

        assert find_continuation_index(messages) == 7

    def test_analysis_marker_needs_long_content(self):
        from agent_conductor.plugins.history import find_continuation_index

        short = _messages(3)
        short[1].content = "Analysis: brief"
        long = _messages(3)
        long[1].content = "Analysis: " + "x" * 600

        assert find_continuation_index(short) is None
        assert find_continuation_index(long) == 1

    def test_custom_markers_override_defaults(self):
        from agent_conductor.plugins.history import paginate_history

        messages = _messages(20, marker_at=5, marker="CHECKPOINT")

        page = paginate_history(messages, 0, 5, markers=["CHECKPOINT"])
        default_page = paginate_history(messages, 0, 5)

        assert len(page.messages) == 15
        assert len(default_page.messages) == 5


class TestWindowing:
    """Tests for plain offset/limit paging."""

    def test_first_page_is_newest(self):
        """
        Given: 50 messages, no marker
        When: offset 0, limit 10
        Then: the newest 10, newest first, has_more True
        """
        from agent_conductor.plugins.history import paginate_history

        page = paginate_history(_messages(50), offset=0, limit=10)

        assert [m.id for m in page.messages] == [f"m{i}" for i in range(49, 39, -1)]
        assert page.has_more is True
        assert page.total_count == 50

    def test_second_page_is_next_older(self):
        from agent_conductor.plugins.history import paginate_history

        page = paginate_history(_messages(50), offset=10, limit=10)

        assert [m.id for m in page.messages] == [f"m{i}" for i in range(39, 29, -1)]
        assert page.offset == 10

    def test_last_page_has_no_more(self):
        from agent_conductor.plugins.history import paginate_history

        page = paginate_history(_messages(25), offset=20, limit=10)

        assert [m.id for m in page.messages] == ["m4", "m3", "m2", "m1", "m0"]
        assert page.has_more is False

    def test_empty_history(self):
        from agent_conductor.plugins.history import paginate_history

        page = paginate_history([], offset=0, limit=10)

        assert page.messages == []
        assert page.total_count == 0
        assert page.has_more is False
