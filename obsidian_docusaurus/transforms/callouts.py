"""Callout and quote block conversion.

Obsidian callouts::

    > [!warning] Careful
    > body text

become Docusaurus admonitions::

    :::warning Careful
    body text
    :::

``> [!quote] Author`` blocks stay blockquotes and get an attribution line
when they close.
"""

import enum
import re
from dataclasses import dataclass
from typing import List, Tuple

from obsidian_docusaurus.core.models import UnsupportedCalloutError

CALLOUT_START_PATTERN = re.compile(r'^>\s*\[!(?P<type>[^\]]*)\](?P<title>.*)?')

ADMONITION_FENCE = ":::"
ATTRIBUTION_DASH = "—"


class BlockState(enum.Enum):
    IDLE = "idle"
    IN_CALLOUT = "in_callout"
    IN_QUOTE = "in_quote"


@dataclass(frozen=True)
class CalloutState:
    """Machine state: which block is open and how to close it."""
    block: BlockState = BlockState.IDLE
    type: str = ""
    title: str = ""
    offset: int = 0


IDLE = CalloutState()


def parse_callout_start(line: str):
    """Parse a ``> [!type] title`` line.

    Returns:
        CalloutState describing the block the line opens, or None
    """
    match = CALLOUT_START_PATTERN.match(line)
    if not match:
        return None

    callout_type = match.group('type').strip()
    if not callout_type:
        return None

    block = BlockState.IN_QUOTE if callout_type.lower() == "quote" else BlockState.IN_CALLOUT
    return CalloutState(
        block=block,
        type=callout_type,
        title=(match.group('title') or "").strip(),
        offset=line.index("[") - line.index(">"),
    )


def _close(state: CalloutState) -> List[str]:
    if state.block is BlockState.IN_CALLOUT:
        return [ADMONITION_FENCE]
    if state.block is BlockState.IN_QUOTE:
        if state.title:
            return [">", f"> {ATTRIBUTION_DASH} {state.title}", ""]
        return [""]
    return []


def transition(state: CalloutState, line: str) -> Tuple[CalloutState, List[str]]:
    """Advance the machine by one line.

    Args:
        state: Current state
        line: Input line without trailing newline

    Returns:
        Tuple of (next state, lines to emit in place of ``line``)

    Raises:
        UnsupportedCalloutError: If a callout starts inside an open block
    """
    opened = parse_callout_start(line)

    if state.block is BlockState.IDLE:
        if opened is None:
            return state, [line]
        if opened.block is BlockState.IN_QUOTE:
            return opened, [""]
        header = ADMONITION_FENCE + opened.type
        if opened.title:
            header += " " + opened.title
        return opened, [header]

    if opened is not None:
        raise UnsupportedCalloutError(
            f"Nested callout [!{opened.type}] inside an open [!{state.type}] block"
        )

    if line.strip() == "":
        return IDLE, _close(state)

    if state.block is BlockState.IN_CALLOUT:
        return state, [line[state.offset:]]

    return state, [line]


def finish(state: CalloutState) -> List[str]:
    """Lines needed to close a block still open at end of document."""
    return _close(state)


class CalloutMachine:
    """Stateful wrapper around :func:`transition` for line-by-line use."""

    def __init__(self):
        self.state = IDLE

    def feed(self, line: str) -> List[str]:
        self.state, emitted = transition(self.state, line)
        return emitted

    def close(self) -> List[str]:
        emitted = finish(self.state)
        self.state = IDLE
        return emitted
