"""
Function call extractor - incremental separation of prose and embedded calls.

Models without native tool calling emit calls inline as JSON objects of the
form ``{"functionCall": {"name": ..., "args": {...}, "id": ...}}``. The
extractor scans streamed chunks one character at a time so a call split
across arbitrary chunk boundaries is still recovered, braces inside JSON
strings never affect nesting, and memory stays bounded by the lookback size
while no call is being captured.
"""

from __future__ import annotations
import json
import logging
from typing import List, Optional
from dataclasses import dataclass

from ..models.tool import FeedResult, ParsedCall, Segment
from ...utils import truncate_text


FUNCTION_CALL_MARKER = '"functionCall"'
LOOKBACK_SIZE = 200


@dataclass
class AccumulatorState:
    """Scanner state; reset after each completed or abandoned call."""
    buffer: str = ""
    capturing: bool = False
    depth: int = 0
    in_string: bool = False
    escaped: bool = False


def find_opening_brace(text: str, end: int) -> int:
    """Index of the nearest unmatched ``{`` before ``end``, or -1."""
    unmatched_closers = 0
    for i in range(end - 1, -1, -1):
        ch = text[i]
        if ch == "}":
            unmatched_closers += 1
        elif ch == "{":
            if unmatched_closers == 0:
                return i
            unmatched_closers -= 1
    return -1


def parse_call(candidate: str) -> Optional[ParsedCall]:
    """Parse a captured object; None when it is not a function call."""
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    return ParsedCall.from_payload(data)


class FunctionCallExtractor:
    """Domain service extracting function calls from streamed model text."""

    def __init__(self, lookback_size: int = LOOKBACK_SIZE, logger: Optional[logging.Logger] = None):
        self._lookback_size = lookback_size
        self._logger = logger or logging.getLogger(__name__)
        self._state = AccumulatorState()

    @classmethod
    def extract(cls, text: str) -> List[Segment]:
        """Run a complete, non-streamed text through a fresh extractor."""
        extractor = cls()
        return extractor.feed_segments(text) + extractor.flush_segments()

    def feed(self, chunk: str) -> FeedResult:
        """Process one chunk; returns completed calls and releasable text."""
        return FeedResult.from_segments(self.feed_segments(chunk))

    def flush(self) -> FeedResult:
        """Recover or discard in-flight content after the stream ends."""
        return FeedResult.from_segments(self.flush_segments())

    def reset(self) -> None:
        self._state = AccumulatorState()

    def feed_segments(self, chunk: str) -> List[Segment]:
        """Like ``feed`` but keeps text and calls in emission order."""
        segments: List[Segment] = []
        pending: List[str] = []
        state = self._state

        for ch in chunk:
            if not state.capturing:
                state.buffer += ch

                if ch == '"' and state.buffer.endswith(FUNCTION_CALL_MARKER):
                    marker_start = len(state.buffer) - len(FUNCTION_CALL_MARKER)
                    brace = find_opening_brace(state.buffer, marker_start)
                    if brace != -1:
                        pending.append(state.buffer[:brace])
                        state.buffer = state.buffer[brace:]
                        state.capturing = True
                        state.depth = 1
                        state.in_string = False
                        state.escaped = False
                        continue

                if len(state.buffer) > self._lookback_size:
                    excess = len(state.buffer) - self._lookback_size
                    pending.append(state.buffer[:excess])
                    state.buffer = state.buffer[excess:]
                continue

            state.buffer += ch

            if state.in_string:
                if state.escaped:
                    state.escaped = False
                elif ch == "\\":
                    state.escaped = True
                elif ch == '"':
                    state.in_string = False
                continue

            if ch == '"':
                state.in_string = True
            elif ch == "{":
                state.depth += 1
            elif ch == "}":
                state.depth -= 1
                if state.depth == 0:
                    call = parse_call(state.buffer)
                    if call is not None:
                        self._append_text(segments, pending)
                        segments.append(Segment(call=call))
                        self._logger.debug(f"Extracted function call: {call.name}")
                    else:
                        # Balanced object that is not a call: it was prose all along
                        pending.append(state.buffer)
                    self.reset()
                    state = self._state

        self._append_text(segments, pending)
        return segments

    def flush_segments(self) -> List[Segment]:
        """Like ``flush`` but returns ordered segments."""
        segments: List[Segment] = []
        state = self._state

        if state.buffer:
            if state.capturing:
                call = parse_call(state.buffer)
                if call is not None:
                    segments.append(Segment(call=call))
                else:
                    self._logger.warning(
                        "Dropping incomplete function call at end of stream: "
                        f"{truncate_text(state.buffer, 100)}"
                    )
            else:
                segments.append(Segment(text=state.buffer))

        self.reset()
        return segments

    @staticmethod
    def _append_text(segments: List[Segment], pending: List[str]) -> None:
        text = "".join(pending)
        pending.clear()
        if text:
            segments.append(Segment(text=text))
