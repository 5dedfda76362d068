"""Parsers for the free-text formats the model is asked to follow.

Every parser fails open: when the model ignores the requested format the
result carries a ``failure`` reason and a default value that keeps the
conversation moving.

    parser              default on failure
    ------------------  ---------------------------------------
    parse_control_tag   CONTINUE, text unchanged
    parse_hint          no hint, text unchanged
    parse_evaluation    needs_correction=False
"""

import re
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Any, Optional

CONTINUE = 'continue'
END = 'end'

CONTROL_TAGS = (
    ('[END]', END),
    ('[CONTINUE]', CONTINUE),
)

HINT_MARKER = 'HINT:'
OK_PREFIX = 'OK:'
CORRECTION_PREFIX = 'CORRECTION:'

_HINT_MARKER = re.compile(re.escape(HINT_MARKER), re.IGNORECASE)
_ERROR_PHRASE = re.compile(r'(?:error|issue|problem):\s*([^.]+)', re.IGNORECASE)

TaggedReply = namedtuple('TaggedReply', ['kind', 'text'])
HintSplit = namedtuple('HintSplit', ['text', 'hint'])


@dataclass(frozen=True)
class Evaluation:
    needs_correction: bool = False
    correction: Optional[str] = None
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {'needsCorrection': self.needs_correction}
        if self.needs_correction:
            data['correction'] = self.correction
            if self.errors:
                data['errors'] = list(self.errors)
        return data


NO_CORRECTION = Evaluation()


@dataclass(frozen=True)
class Parsed:
    """Parser outcome. ``value`` is always usable; ``failure`` explains a fallback."""

    value: Any
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def parse_control_tag(text) -> Parsed:
    stripped = (text or '').strip()
    for marker, kind in CONTROL_TAGS:
        if stripped.startswith(marker):
            return Parsed(TaggedReply(kind, stripped[len(marker):].strip()))
    return Parsed(TaggedReply(CONTINUE, stripped), failure='no control tag')


def parse_hint(text) -> Parsed:
    """Split a trailing ``HINT: ...`` section off a reply."""
    stripped = (text or '').strip()
    last = None
    for last in _HINT_MARKER.finditer(stripped):
        pass
    if last is None:
        return Parsed(HintSplit(stripped, None), failure='no hint marker')
    message = stripped[:last.start()].strip()
    hint = stripped[last.end():].strip()
    if not hint:
        return Parsed(HintSplit(message, None), failure='empty hint')
    return Parsed(HintSplit(message, hint))


def parse_evaluation(text) -> Parsed:
    stripped = (text or '').strip()
    if stripped[:len(CORRECTION_PREFIX)].upper() == CORRECTION_PREFIX:
        correction = stripped[len(CORRECTION_PREFIX):].strip()
        if not correction:
            return Parsed(NO_CORRECTION, failure='empty correction')
        errors = [m.strip() for m in _ERROR_PHRASE.findall(correction) if m.strip()]
        return Parsed(Evaluation(needs_correction=True, correction=correction, errors=errors))
    if stripped[:len(OK_PREFIX)].upper() == OK_PREFIX:
        return Parsed(NO_CORRECTION)
    # Better to show no correction than a false one
    return Parsed(NO_CORRECTION, failure='unrecognized verdict')

