"""
OutputParser: best-effort classification of CLI output lines.

Each non-empty line yields a RawOutput event followed by whatever the
detector families recognise. Detectors are independent of one another, so
a single line may produce several events (including near-duplicates such
as two FileChanged events for "Wrote edited file.txt"). Lines no detector
recognises produce only RawOutput.
"""

import re
import time
from typing import Iterable, List, Optional

from agent_conductor.parsing.events import (
    AgentEvent,
    CommandExecuted,
    ErrorEvent,
    ErrorSeverity,
    FileChanged,
    FileChangeType,
    InputRequired,
    RawOutput,
    TaskCompleted,
    TaskCreated,
    TestRan,
    Thinking,
    WarningEvent,
)

_I = re.IGNORECASE

# File change verb families, evaluated independently
FILE_CHANGE_PATTERNS = [
    (re.compile(r"(?:created?|new file):?\s+(\S+)", _I), FileChangeType.CREATED),
    (re.compile(r"(?:modified?|updated?):?\s+(\S+)", _I), FileChangeType.MODIFIED),
    (re.compile(r"(?:edited?|editing):?\s+(\S+)", _I), FileChangeType.MODIFIED),
    (re.compile(r"(?:wrote?|writing):?\s+(?:to\s+)?(\S+)", _I), FileChangeType.MODIFIED),
    (re.compile(r"(?:deleted?|removed?):?\s+(\S+)", _I), FileChangeType.DELETED),
]

TEST_PASSED_RE = re.compile(r"(?:test|spec)\s+(.+?)\s+(?:passed|ok)", _I)
TEST_FAILED_RE = re.compile(r"(?:test|spec)\s+(.+?)\s+(?:failed|error)", _I)
TEST_SUMMARY_RE = re.compile(r"(\d+)\s+passed.*?(\d+)\s+failed", _I)

COMMAND_RE = re.compile(r"(?:ran?|executed?|running):?\s+[`'\"]?([^`'\"]+)[`'\"]?", _I)
EXIT_CODE_RE = re.compile(r"exit(?:\s+code)?:?\s*(\d+)", _I)

FATAL_RE = re.compile(r"fatal:?\s+(.+)", _I)
ERROR_RE = re.compile(r"error:?\s+(.+)", _I)
WARNING_RE = re.compile(r"warning:?\s+(.+)", _I)
GENERIC_ERROR_MARKERS = ("failed", "cannot", "unable to")

TASK_COMPLETE_RE = re.compile(
    r"(?:task|job)\s+(.+?)\s+(?:completed?|done|finished)", _I
)
TASK_DONE_RE = re.compile(r"(?:completed?|done|finished):?\s+(.+)", _I)
TASK_CREATED_RE = re.compile(r"(?:task|job)\s+(.+?)\s+(?:created?|added?)", _I)

THINKING_KEYWORDS = (
    "thinking",
    "processing",
    "analyzing",
    "working on",
    "examining",
    "considering",
    "loading",
)
INPUT_KEYWORDS = (
    "y/n",
    "(y/n)",
    "yes/no",
    "press enter",
    "continue?",
    "proceed?",
)
# Short lines ending in "?" are treated as conversational questions
QUESTION_MAX_LENGTH = 200


def is_thinking(text: str) -> bool:
    lower = text.lower()
    return any(keyword in lower for keyword in THINKING_KEYWORDS)


def is_waiting_for_input(text: str) -> bool:
    lower = text.lower()
    if any(keyword in lower for keyword in INPUT_KEYWORDS):
        return True
    return text.strip().endswith("?") and len(text) < QUESTION_MAX_LENGTH


class OutputParser:
    """
    Stateless line classifier.

    Holds no state between calls: parsing the same line twice yields equal
    event lists.
    """

    def parse_line(self, line: str) -> List[AgentEvent]:
        """Classify one line of CLI output."""
        return self.parse_lines([line])

    def parse_lines(self, lines: Iterable[str]) -> List[AgentEvent]:
        """Classify many lines; empty lines are skipped."""
        events: List[AgentEvent] = []
        now = int(time.time())

        for line in lines:
            trimmed = line.strip()
            if not trimmed:
                continue

            events.append(RawOutput(line=line, timestamp=now))
            events.extend(self._file_changes(trimmed, now))

            for detector in (
                self._test_result,
                self._command_execution,
                self._error_or_warning,
                self._task_completion,
                self._task_created,
            ):
                event = detector(trimmed, now)
                if event is not None:
                    events.append(event)

            if is_thinking(trimmed):
                events.append(Thinking(message=trimmed, timestamp=now))
            if is_waiting_for_input(trimmed):
                events.append(InputRequired(prompt=trimmed, timestamp=now))

        return events

    def _file_changes(self, line: str, now: int) -> List[AgentEvent]:
        changes: List[AgentEvent] = []
        for pattern, change_type in FILE_CHANGE_PATTERNS:
            match = pattern.search(line)
            if match:
                path = match.group(1).strip()
                if path:
                    changes.append(
                        FileChanged(path=path, change_type=change_type, timestamp=now)
                    )
        return changes

    def _test_result(self, line: str, now: int) -> Optional[AgentEvent]:
        match = TEST_PASSED_RE.search(line)
        if match:
            return TestRan(name=match.group(1).strip(), passed=True, timestamp=now)

        match = TEST_FAILED_RE.search(line)
        if match:
            return TestRan(
                name=match.group(1).strip(),
                passed=False,
                details=line,
                timestamp=now,
            )

        match = TEST_SUMMARY_RE.search(line)
        if match:
            passed, failed = int(match.group(1)), int(match.group(2))
            return TestRan(
                name="Test Summary",
                passed=failed == 0,
                details=f"{passed} passed, {failed} failed",
                timestamp=now,
            )
        return None

    def _command_execution(self, line: str, now: int) -> Optional[AgentEvent]:
        match = COMMAND_RE.search(line)
        if not match:
            return None
        command = match.group(1).strip()
        if not command:
            return None

        exit_code = None
        exit_match = EXIT_CODE_RE.search(line)
        if exit_match:
            exit_code = int(exit_match.group(1))
        return CommandExecuted(command=command, exit_code=exit_code, timestamp=now)

    def _error_or_warning(self, line: str, now: int) -> Optional[AgentEvent]:
        match = FATAL_RE.search(line)
        if match:
            return ErrorEvent(
                message=match.group(1).strip(),
                severity=ErrorSeverity.FATAL,
                timestamp=now,
            )

        match = ERROR_RE.search(line)
        if match:
            return ErrorEvent(
                message=match.group(1).strip(),
                severity=ErrorSeverity.ERROR,
                timestamp=now,
            )

        match = WARNING_RE.search(line)
        if match:
            return WarningEvent(message=match.group(1).strip(), timestamp=now)

        lower = line.lower()
        if any(marker in lower for marker in GENERIC_ERROR_MARKERS):
            return ErrorEvent(message=line, severity=ErrorSeverity.ERROR, timestamp=now)
        return None

    def _task_completion(self, line: str, now: int) -> Optional[AgentEvent]:
        match = TASK_COMPLETE_RE.search(line) or TASK_DONE_RE.search(line)
        if match:
            return TaskCompleted(description=match.group(1).strip(), timestamp=now)
        return None

    def _task_created(self, line: str, now: int) -> Optional[AgentEvent]:
        match = TASK_CREATED_RE.search(line)
        if match:
            return TaskCreated(description=match.group(1).strip(), timestamp=now)
        return None
