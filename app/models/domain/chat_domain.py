"""
Chat feed shapes.

ChatEvent is what the feed adapter yields; ChatCommand is the parsed form the
admission service works with.
"""

from dataclasses import dataclass, field
from datetime import datetime

from app.models.domain.slot_domain import TIER_PRECEDENCE, Tier

COMMAND_PREFIX = "!"


@dataclass(slots=True)
class ChatEvent:
    """A single chat message as received from the live feed."""

    user: str
    text: str
    badges: frozenset[str] = field(default_factory=frozenset)
    timestamp: datetime | None = None


@dataclass(slots=True)
class ChatCommand:
    """A `!verb args` message with the sender's tier badges."""

    user: str
    verb: str
    args: str
    raw_text: str
    badges: frozenset[str] = field(default_factory=frozenset)

    @property
    def tier(self) -> Tier:
        for tier in TIER_PRECEDENCE:
            if tier.value in self.badges:
                return tier
        return Tier.FOLLOWER

    @classmethod
    def from_event(cls, event: ChatEvent) -> "ChatCommand | None":
        text = event.text.strip()
        if not text.startswith(COMMAND_PREFIX) or len(text) == 1:
            return None

        verb, _, args = text[len(COMMAND_PREFIX) :].partition(" ")
        return cls(
            user=event.user,
            verb=verb.lower(),
            args=args.strip(),
            raw_text=text,
            badges=event.badges,
        )
