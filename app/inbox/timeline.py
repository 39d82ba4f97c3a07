"""
Timeline reconciliation
Merges the interaction feed and call records into one duplicate-free,
chronologically ordered timeline per contact point.

The same phone call can show up in both stores: the interaction feed writes a
placeholder row while the voice provider writes a call record with the
transcript. The two are matched by shared id first and by time proximity
second; call records the feed never saw are injected as standalone entries.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

import structlog

from ..utils.helpers import format_duration, normalize_phone, parse_timestamp

logger = structlog.get_logger("inbox.timeline")

RECONCILIATION_WINDOW = timedelta(minutes=10)

PHONE_CHANNEL = "phone"
CHANNEL_ALIASES = {
    "call": PHONE_CHANNEL,
    "voice": PHONE_CHANNEL,
    "text": "sms",
}
SYSTEM_CHANNELS = {"system", "note"}

SYSTEM_SENDER = "System"
UNKNOWN_CALLER = "Unknown Caller"
CALL_ENTRY_PREFIX = "call-"


def normalize_channel(channel: Optional[str]) -> str:
    channel = (channel or "").strip().lower()
    return CHANNEL_ALIASES.get(channel, channel)


def has_content(value: Any) -> bool:
    """Transcripts are strings or turn lists; summaries are strings"""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return len(value) > 0


class EntryType(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"

    @classmethod
    def classify(cls, direction: Optional[str], channel: str, call_backed: bool = False) -> "EntryType":
        """Decide the entry type once, from direction and channel"""
        if call_backed or channel in SYSTEM_CHANNELS:
            return cls.SYSTEM
        if direction == "inbound":
            return cls.CUSTOMER
        if direction == "outbound":
            return cls.AGENT
        return cls.SYSTEM


@dataclass(frozen=True)
class TimelineEntry:
    """One rendered unit of a conversation"""
    id: str
    type: EntryType
    content: str
    sender_name: str
    created_at: datetime
    channel: str
    call_summary: Optional[str] = None
    call_transcript: Any = None
    call_record_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "sender_name": self.sender_name,
            "created_at": self.created_at.isoformat(),
            "channel": self.channel,
        }
        if self.call_summary is not None:
            data["call_summary"] = self.call_summary
        if self.call_transcript is not None:
            data["call_transcript"] = self.call_transcript
        return data


@dataclass(frozen=True)
class ConversationThread:
    """All activity for one contact point, entries sorted by created_at"""
    contact_point: str
    customer_id: Optional[str]
    entries: Tuple[TimelineEntry, ...]
    channels: FrozenSet[str]
    ticket: Any = None
    deal: Any = None
    tags: Tuple[str, ...] = ()

    @property
    def last_entry(self) -> Optional[TimelineEntry]:
        return self.entries[-1] if self.entries else None


@dataclass
class _ThreadBuilder:
    contact_point: str
    customer_id: Optional[str] = None
    interactions: List[Any] = field(default_factory=list)
    call_records: List[Any] = field(default_factory=list)


class TimelineBuilder:
    """Build deduplicated conversation threads from raw rows"""

    def __init__(
        self,
        window: timedelta = RECONCILIATION_WINDOW,
        agent_name: str = "Shop"
    ):
        self.window = window
        self.agent_name = agent_name

    def build(
        self,
        interactions: Iterable[Any],
        call_records: Iterable[Any],
        customer_ids: Optional[Mapping[str, str]] = None,
        customer_names: Optional[Mapping[str, str]] = None
    ) -> List[ConversationThread]:
        """
        Group rows by normalized contact point and reconcile each group.

        customer_ids / customer_names are keyed by normalized phone.
        """
        customer_ids = customer_ids or {}
        customer_names = customer_names or {}
        builders: Dict[str, _ThreadBuilder] = {}

        for interaction in interactions:
            contact_point = normalize_phone(interaction.contact_point)
            if not contact_point:
                continue
            builder = builders.setdefault(contact_point, _ThreadBuilder(contact_point))
            builder.interactions.append(interaction)
            if builder.customer_id is None and getattr(interaction, "customer_id", None):
                builder.customer_id = interaction.customer_id

        for call in call_records:
            contact_point = normalize_phone(call.customer_phone)
            if not contact_point:
                continue
            builders.setdefault(contact_point, _ThreadBuilder(contact_point)).call_records.append(call)

        threads = []
        for contact_point, builder in builders.items():
            threads.append(self.build_thread(
                contact_point,
                builder.interactions,
                builder.call_records,
                customer_id=customer_ids.get(contact_point) or builder.customer_id,
                customer_name=customer_names.get(contact_point)
            ))

        logger.debug("Timelines built", threads=len(threads))
        return threads

    def build_thread(
        self,
        contact_point: str,
        interactions: List[Any],
        call_records: List[Any],
        customer_id: Optional[str] = None,
        customer_name: Optional[str] = None
    ) -> ConversationThread:
        """Reconcile one contact point's interactions and call records"""
        customer_name = customer_name or UNKNOWN_CALLER

        interactions = sorted(interactions, key=lambda i: (parse_timestamp(i.created_at), str(i.id)))
        calls = sorted(call_records, key=lambda c: (parse_timestamp(c.created_at), str(c.id)))
        calls_by_id = {str(c.id): c for c in calls}

        phone_interactions = [i for i in interactions if normalize_channel(i.channel) == PHONE_CHANNEL]
        matches: Dict[str, Any] = {}
        claimed: Set[str] = set()

        # Shared id is authoritative, so resolve all exact matches before any
        # time-window match can claim the same call
        for interaction in phone_interactions:
            call = calls_by_id.get(str(interaction.id))
            if call is not None:
                matches[str(interaction.id)] = call
                claimed.add(str(call.id))

        for interaction in phone_interactions:
            if str(interaction.id) in matches:
                continue
            call = self._closest_call(parse_timestamp(interaction.created_at), calls, claimed)
            if call is not None:
                matches[str(interaction.id)] = call
                claimed.add(str(call.id))

        entries = [
            self._interaction_entry(i, matches.get(str(i.id)), customer_name)
            for i in interactions
        ]

        interaction_ids = {str(i.id) for i in interactions}
        phone_times = [parse_timestamp(i.created_at) for i in phone_interactions]
        for call in calls:
            if not (has_content(call.summary) or has_content(call.transcript)):
                continue
            if str(call.id) in claimed or str(call.id) in interaction_ids:
                continue
            call_time = parse_timestamp(call.created_at)
            if any(self._within_window(call_time, t) for t in phone_times):
                continue
            entries.append(self._call_entry(call))

        # Stable sort keeps feed order for equal timestamps
        entries.sort(key=lambda e: e.created_at)

        return ConversationThread(
            contact_point=contact_point,
            customer_id=customer_id,
            entries=tuple(entries),
            channels=frozenset(e.channel for e in entries if e.channel)
        )

    def _within_window(self, a: Optional[datetime], b: Optional[datetime]) -> bool:
        if a is None or b is None:
            return False
        return abs(a - b) <= self.window

    def _closest_call(self, at: Optional[datetime], calls: List[Any], claimed: Set[str]) -> Optional[Any]:
        best = None
        best_delta = None
        for call in calls:
            if str(call.id) in claimed:
                continue
            call_time = parse_timestamp(call.created_at)
            if not self._within_window(at, call_time):
                continue
            delta = abs(call_time - at)
            if best_delta is None or delta < best_delta:
                best, best_delta = call, delta
        return best

    def _sender_name(self, entry_type: EntryType, customer_name: str) -> str:
        if entry_type == EntryType.CUSTOMER:
            return customer_name
        if entry_type == EntryType.AGENT:
            return self.agent_name
        return SYSTEM_SENDER

    def _interaction_entry(self, interaction: Any, call: Optional[Any], customer_name: str) -> TimelineEntry:
        channel = normalize_channel(interaction.channel)
        entry_type = EntryType.classify(interaction.direction, channel, call_backed=call is not None)
        content = interaction.content or ""

        if call is None:
            return TimelineEntry(
                id=str(interaction.id),
                type=entry_type,
                content=content,
                sender_name=self._sender_name(entry_type, customer_name),
                created_at=parse_timestamp(interaction.created_at),
                channel=channel
            )

        return TimelineEntry(
            id=str(interaction.id),
            type=entry_type,
            content=content or self._describe_call(call),
            sender_name=self._sender_name(entry_type, customer_name),
            created_at=parse_timestamp(interaction.created_at),
            channel=channel,
            call_summary=call.summary or None,
            call_transcript=call.transcript if has_content(call.transcript) else None,
            call_record_id=str(call.id)
        )

    def _call_entry(self, call: Any) -> TimelineEntry:
        return TimelineEntry(
            id=f"{CALL_ENTRY_PREFIX}{call.id}",
            type=EntryType.SYSTEM,
            content=self._describe_call(call),
            sender_name=SYSTEM_SENDER,
            created_at=parse_timestamp(call.created_at),
            channel=PHONE_CHANNEL,
            call_summary=call.summary or None,
            call_transcript=call.transcript if has_content(call.transcript) else None,
            call_record_id=str(call.id)
        )

    @staticmethod
    def _describe_call(call: Any) -> str:
        verb = "made" if call.direction == "outbound" else "received"
        return f"Phone call {verb} ({format_duration(call.duration_seconds)})"
