"""
Unit Tests: AskUserQuestion prompt detection.
"""

import json

ASK_BLOCK = {
    "type": "tool_use",
    "id": "toolu_01",
    "name": "AskUserQuestion",
    "input": {
        "questions": [
            {
                "question": "Which database should we use?",
                "header": "Database",
                "multiSelect": False,
                "options": [
                    {"label": "Postgres", "description": "Relational"},
                    {"label": "SQLite", "description": "Embedded"},
                ],
            }
        ]
    },
}


def _msg(role, content, idx=0):
    from agent_conductor.plugins.base import HistoryMessage

    return HistoryMessage(id=f"m{idx}", role=role, content=content, timestamp=idx)


class TestFromContent:
    """Tests for UserPrompt.from_content."""

    def test_content_block_array(self):
        from agent_conductor.plugins.prompts import UserPrompt

        content = json.dumps([{"type": "text", "text": "Let me ask"}, ASK_BLOCK])

        prompt = UserPrompt.from_content(content)

        assert prompt is not None
        assert prompt.tool_use_id == "toolu_01"
        assert prompt.questions[0].header == "Database"
        assert [o.label for o in prompt.questions[0].options] == ["Postgres", "SQLite"]

    def test_embedded_in_text(self):
        from agent_conductor.plugins.prompts import UserPrompt

        content = "Using tool: AskUserQuestion\n" + json.dumps(ASK_BLOCK)

        assert UserPrompt.from_content(content).tool_use_id == "toolu_01"

    def test_other_tools_ignored(self):
        from agent_conductor.plugins.prompts import UserPrompt

        block = dict(ASK_BLOCK, name="Bash")

        assert UserPrompt.from_content(json.dumps([block])) is None
        assert UserPrompt.from_content("no tools here") is None

    def test_malformed_input_ignored(self):
        from agent_conductor.plugins.prompts import UserPrompt

        block = dict(ASK_BLOCK, input={"questions": [{"question": "?"}]})

        assert UserPrompt.from_content(json.dumps(block)) is None


class TestPending:
    """Tests for UserPrompt.get_pending_from_messages."""

    def test_unanswered_prompt_is_pending(self):
        """
        Given: The last assistant message asks a question
        When: No later tool_result answers it
        Then: The prompt is pending
        """
        from agent_conductor.plugins.prompts import UserPrompt

        messages = [_msg("user", "start", 0), _msg("assistant", json.dumps([ASK_BLOCK]), 1)]

        prompt = UserPrompt.get_pending_from_messages(messages)

        assert prompt is not None
        assert prompt.to_dict()["questions"][0]["question"] == "Which database should we use?"

    def test_answered_prompt_is_not_pending(self):
        from agent_conductor.plugins.prompts import UserPrompt

        answer = json.dumps(
            [{"type": "tool_result", "tool_use_id": "toolu_01", "content": "Postgres"}]
        )
        messages = [
            _msg("assistant", json.dumps([ASK_BLOCK]), 0),
            _msg("user", answer, 1),
        ]

        assert UserPrompt.get_pending_from_messages(messages) is None

    def test_no_assistant_messages(self):
        from agent_conductor.plugins.prompts import UserPrompt

        assert UserPrompt.get_pending_from_messages([_msg("user", "hi")]) is None
        assert UserPrompt.get_pending_from_messages([]) is None
