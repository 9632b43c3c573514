"""
Structured user prompts raised through the AskUserQuestion tool.

Claude Code asks multiple-choice questions by emitting a tool_use block
named AskUserQuestion. The prompt is pending until a later message carries
a tool_result with the same tool_use_id.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from agent_conductor.plugins.base import HistoryMessage

logger = logging.getLogger(__name__)

ASK_USER_QUESTION = "AskUserQuestion"


class _AskOption(BaseModel):
    label: str
    description: str = ""


class _AskQuestion(BaseModel):
    question: str
    header: str = ""
    multi_select: bool = Field(False, alias="multiSelect")
    options: List[_AskOption]


class _AskInput(BaseModel):
    questions: List[_AskQuestion]


@dataclass
class QuestionOption:
    label: str
    description: str = ""


@dataclass
class UserQuestion:
    question: str
    header: str = ""
    multi_select: bool = False
    options: List[QuestionOption] = field(default_factory=list)


@dataclass
class UserPrompt:
    """One to four questions awaiting a structured answer."""

    questions: List[UserQuestion]
    tool_use_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_tool_block(cls, block: Any) -> Optional["UserPrompt"]:
        if not isinstance(block, dict):
            return None
        if block.get("type") != "tool_use" or block.get("name") != ASK_USER_QUESTION:
            return None
        try:
            ask = _AskInput.model_validate(block.get("input"))
        except ValidationError as e:
            logger.debug(f"[PROMPTS] Ignoring malformed AskUserQuestion input: {e}")
            return None

        questions = [
            UserQuestion(
                question=q.question,
                header=q.header,
                multi_select=q.multi_select,
                options=[QuestionOption(o.label, o.description) for o in q.options],
            )
            for q in ask.questions
        ]
        if not questions:
            return None
        tool_use_id = block.get("id")
        return cls(questions=questions, tool_use_id=tool_use_id or None)

    @classmethod
    def from_content(cls, content: str) -> Optional["UserPrompt"]:
        """
        Parse a prompt from message content.

        Accepts a JSON array of content blocks, a single block, or text with
        an embedded tool_use object.
        """
        if ASK_USER_QUESTION not in content:
            return None

        parsed = _loads(content)
        blocks = parsed if isinstance(parsed, list) else [parsed]
        for block in blocks:
            prompt = cls.from_tool_block(block)
            if prompt is not None:
                return prompt

        start, end = content.find("{"), content.rfind("}")
        if 0 <= start < end:
            return cls.from_tool_block(_loads(content[start : end + 1]))
        return None

    @staticmethod
    def is_answered_in(tool_use_id: str, content: str) -> bool:
        """True if content holds a tool_result for ``tool_use_id``."""
        if "tool_result" not in content:
            return False
        parsed = _loads(content)
        blocks = parsed if isinstance(parsed, list) else [parsed]
        return any(
            isinstance(block, dict)
            and block.get("type") == "tool_result"
            and block.get("tool_use_id") == tool_use_id
            for block in blocks
        )

    @classmethod
    def get_pending_from_messages(
        cls, messages: Sequence[HistoryMessage]
    ) -> Optional["UserPrompt"]:
        """The last assistant message's prompt, unless it was answered since."""
        for index in range(len(messages) - 1, -1, -1):
            if messages[index].role == "assistant":
                break
        else:
            return None

        prompt = cls.from_content(messages[index].content)
        if prompt is None:
            return None
        if prompt.tool_use_id:
            for later in messages[index + 1 :]:
                if cls.is_answered_in(prompt.tool_use_id, later.content):
                    return None
        return prompt


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None
