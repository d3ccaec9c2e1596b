from __future__ import annotations

"""Classifier for the marker protocol embedded in streamed model text.

The backend streams plain text. Inline markers split it into channels:

* ``[SWARM_LOG]`` marks a diagnostic log line;
* ``[LAYOUT: ...]`` announces how the result should be laid out;
* ``[ARCHITECT]``, ``[RESEARCHER]``, ... tag the agent role speaking;
* ``[DATA_BOUNDARY]`` ends the report, everything after it is a JSON payload.

``classify`` always works on the full cumulative text received so far, so it
can be called on every fragment without any incremental bookkeeping.
"""

import json
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .state import AgentRole, ClassifiedFragments, Layout


LOG_MARKER = "[SWARM_LOG]"
BOUNDARY_MARKER = "[DATA_BOUNDARY]"

LAYOUT_MARKERS: Dict[str, Layout] = {
    "[LAYOUT: SPATIAL_SPLIT]": Layout.SPATIAL_SPLIT,
    "[LAYOUT: DATA_FOCUS]": Layout.DATA_FOCUS,
    "[LAYOUT: REPORT_ONLY]": Layout.REPORT_ONLY,
}

AGENT_MARKERS: Dict[str, AgentRole] = {
    "[ARCHITECT]": AgentRole.ARCHITECT,
    "[RESEARCHER]": AgentRole.RESEARCHER,
    "[KERNEL]": AgentRole.KERNEL,
    "[ANALYST]": AgentRole.ANALYST,
    "[AUDITOR]": AgentRole.AUDITOR,
}

ALL_MARKERS: Tuple[str, ...] = (
    LOG_MARKER,
    BOUNDARY_MARKER,
    *LAYOUT_MARKERS,
    *AGENT_MARKERS,
)

_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")


def merge_layout(current: Layout, incoming: Layout) -> Layout:
    """Sticky merge: a specific layout is never replaced by AUTO."""
    if incoming is Layout.AUTO:
        return current
    return incoming


def _physical_lines(text: str) -> Iterator[Tuple[str, str]]:
    parts = text.split("\n")
    last = len(parts) - 1
    for i, part in enumerate(parts):
        yield part, ("\n" if i < last else "")


def pending_marker_start(line: str) -> Optional[int]:
    """Index where ``line`` ends with an incomplete marker, if it does."""
    idx = line.rfind("[")
    if idx < 0:
        return None
    tail = line[idx:]
    if "]" in tail:
        return None
    for marker in ALL_MARKERS:
        if len(tail) < len(marker) and marker.startswith(tail):
            return idx
    return None


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    lines = text.split("\n")
    body = lines[1:]
    if body and body[-1].strip().startswith("```"):
        body = body[:-1]
    return "\n".join(body).strip()


def parse_payload(buffer: str) -> Tuple[bool, Any]:
    """Parse the text after the data boundary.

    Returns ``(True, value)`` once the buffer holds complete JSON and
    ``(False, None)`` while it is empty, truncated or malformed.
    """
    text = (buffer or "").strip()
    if not text:
        return False, None
    text = _strip_code_fence(text)
    try:
        return True, json.loads(text)
    except ValueError:
        pass
    if text.startswith(("{", "[")):
        # Raw JSON must parse whole; a complete inner element is not the payload
        return False, None
    # Leading prose is tolerated, as long as the object itself is whole
    match = _OBJECT_SPAN.search(text)
    if match:
        try:
            return True, json.loads(match.group(0))
        except ValueError:
            pass
    return False, None


class _Accumulator:
    def __init__(self) -> None:
        self.report: List[str] = []
        self.logs: List[str] = []
        self.layout = Layout.AUTO
        self.agents: List[AgentRole] = []

    def _strip_agents(self, line: str) -> str:
        for marker, role in AGENT_MARKERS.items():
            if marker in line:
                if role not in self.agents:
                    self.agents.append(role)
                line = line.replace(marker, "")
        return line

    def _detect_layout(self, line: str) -> bool:
        found: Optional[Tuple[int, Layout]] = None
        for marker, layout in LAYOUT_MARKERS.items():
            pos = line.rfind(marker)
            if pos >= 0 and (found is None or pos > found[0]):
                found = (pos, layout)
        if found is None:
            return False
        self.layout = merge_layout(self.layout, found[1])
        return True

    def take(self, line: str, ending: str) -> None:
        line = self._strip_agents(line)
        has_layout = self._detect_layout(line)
        if LOG_MARKER in line:
            entry = line.split(LOG_MARKER, 1)[1]
            for marker in LAYOUT_MARKERS:
                entry = entry.replace(marker, "")
            entry = entry.strip()
            if entry:
                self.logs.append(entry)
            return
        if has_layout:
            return
        self.report.append(line + ending)


def classify(raw_text: str, *, final: bool = False) -> ClassifiedFragments:
    """Split cumulative stream text into report, logs, layout and payload.

    While ``final`` is false an unterminated last line ending in the start of
    a marker (``"... [SWARM_"``) is held back until the marker is complete.
    """
    acc = _Accumulator()
    payload: Optional[List[str]] = None

    lines = list(_physical_lines(raw_text or ""))
    for i, (line, ending) in enumerate(lines):
        if payload is not None:
            payload.append(line + ending)
            continue

        if BOUNDARY_MARKER in line:
            head, _, tail = line.partition(BOUNDARY_MARKER)
            acc.take(head, "")
            payload = [tail + ending]
            continue

        is_open_tail = i == len(lines) - 1 and not ending
        if is_open_tail and not final:
            cut = pending_marker_start(line)
            if cut is not None:
                line = line[:cut]

        acc.take(line, ending)

    has_payload, value = (False, None)
    if payload is not None:
        has_payload, value = parse_payload("".join(payload))

    return ClassifiedFragments(
        report="".join(acc.report),
        log_lines=acc.logs,
        layout=acc.layout,
        active_agents=acc.agents,
        in_payload=payload is not None,
        has_payload=has_payload,
        structured_payload=value,
    )


__all__ = [
    "LOG_MARKER",
    "BOUNDARY_MARKER",
    "LAYOUT_MARKERS",
    "AGENT_MARKERS",
    "ALL_MARKERS",
    "classify",
    "merge_layout",
    "parse_payload",
    "pending_marker_start",
]
