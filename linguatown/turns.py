"""Turn counting and end-of-conversation decisions for a single chat."""

import logging
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Optional

from linguatown.catalog import Topic
from linguatown.parsing import END, parse_control_tag, parse_hint
from linguatown.registry import TurnLimits, get_turn_limits, require_difficulty

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm sorry, I didn't catch that. Could you say that again?"

MODE_CONTINUE = 'continue'
MODE_MAY_END = 'may_end'
MODE_MUST_END = 'must_end'

TurnOutcome = namedtuple('TurnOutcome', ['text', 'should_end', 'hint'])


@dataclass(frozen=True)
class TurnState:
    turn_count: int
    can_end: bool
    must_end: bool

    @classmethod
    def for_turn(cls, turn_count: int, limits: TurnLimits) -> 'TurnState':
        if turn_count < 0:
            raise ValueError('turn_count must be non-negative')
        return cls(
            turn_count=turn_count,
            can_end=turn_count >= limits.min,
            must_end=turn_count >= limits.max,
        )

    @property
    def mode(self) -> str:
        if self.must_end:
            return MODE_MUST_END
        if self.can_end:
            return MODE_MAY_END
        return MODE_CONTINUE


def resolve_reply(raw_text, turn_state: TurnState) -> TurnOutcome:
    """Turn raw model output into the text shown to the learner.

    Control tags are only honoured while the conversation may end; once it
    must end the reply is taken as-is and the conversation ends regardless.
    """
    text = (raw_text or '').strip()
    if not text:
        return TurnOutcome(FALLBACK_REPLY, turn_state.must_end, None)

    hint_split = parse_hint(text).value
    text = hint_split.text

    if turn_state.must_end:
        should_end = True
    elif turn_state.can_end:
        parsed = parse_control_tag(text)
        if not parsed.ok:
            logger.debug('Reply had no control tag at turn %s; continuing', turn_state.turn_count)
        should_end = parsed.value.kind == END
        text = parsed.value.text
    else:
        should_end = False

    return TurnOutcome(text or FALLBACK_REPLY, should_end, hint_split.hint)


@dataclass
class ConversationSession:
    """In-memory state of one chat; discarded when it ends or is abandoned."""

    location: str
    difficulty: str
    topic: Optional[Topic] = None
    messages: list = field(default_factory=list)
    turn_count: int = 0
    ended: bool = False

    def __post_init__(self):
        require_difficulty(self.difficulty)
        if self.turn_count < 0:
            raise ValueError('turn_count must be non-negative')

    @classmethod
    def from_history(cls, location, difficulty, history, turn_count=0, topic=None):
        """Rebuild a session from chat-API shaped history ({role, content})."""
        messages = []
        for m in history or []:
            if not isinstance(m, dict):
                continue
            role = m.get('role')
            content = m.get('content')
            content = content.strip() if isinstance(content, str) else ''
            if role in ('user', 'assistant') and content:
                messages.append({'role': role, 'text': content})
        return cls(location=location, difficulty=difficulty, topic=topic,
                   messages=messages, turn_count=int(turn_count or 0))

    @property
    def limits(self) -> TurnLimits:
        return get_turn_limits(self.difficulty)

    def add_user_message(self, text: str) -> int:
        if self.ended:
            raise RuntimeError('Conversation has already ended')
        self.messages.append({'role': 'user', 'text': text})
        self.turn_count += 1
        return self.turn_count

    def add_character_message(self, text: str) -> None:
        self.messages.append({'role': 'assistant', 'text': text})

    def turn_state(self) -> TurnState:
        return TurnState.for_turn(self.turn_count, self.limits)

    def apply_reply(self, raw_text) -> TurnOutcome:
        outcome = resolve_reply(raw_text, self.turn_state())
        self.add_character_message(outcome.text)
        if outcome.should_end:
            self.ended = True
        return outcome

    def history(self) -> list:
        return [{'role': m['role'], 'content': m['text']} for m in self.messages]
