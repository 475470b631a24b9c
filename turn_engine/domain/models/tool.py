"""
Tool call domain models - calls extracted from model output.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


@dataclass
class ParsedCall:
    """A structured call recovered from streamed text."""
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Any) -> Optional[ParsedCall]:
        """Build a call from a decoded ``{"functionCall": {...}}`` object.

        Returns None when the object does not have the call shape.
        """
        if not isinstance(data, dict):
            return None
        fc = data.get("functionCall")
        if not isinstance(fc, dict) or not isinstance(fc.get("name"), str):
            return None
        args = fc.get("args")
        call_id = fc.get("id")
        return cls(
            name=fc["name"],
            args=args if isinstance(args, dict) else {},
            id=call_id if isinstance(call_id, str) else None,
        )


@dataclass
class Segment:
    """One ordered piece of extractor output: either text or a call."""
    text: Optional[str] = None
    call: Optional[ParsedCall] = None

    @property
    def is_call(self) -> bool:
        return self.call is not None


@dataclass
class FeedResult:
    """Aggregated extractor output for one feed or flush."""
    calls: List[ParsedCall] = field(default_factory=list)
    text: str = ""

    @classmethod
    def from_segments(cls, segments: List[Segment]) -> FeedResult:
        return cls(
            calls=[s.call for s in segments if s.call is not None],
            text="".join(s.text or "" for s in segments if s.call is None),
        )
