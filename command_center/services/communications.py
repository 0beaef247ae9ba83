"""
Communication classification for ServiceM8 feed items and notes.

ServiceM8 does not label messages cleanly, so type and direction are guessed
from substrings. These are best-effort hints for UI badges with known false
negatives (e.g. a note mentioning "email" that describes a phone call); they
are intentionally not made smarter.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..database.models import CommunicationTypeEnum, ContactDirectionEnum
from ..utils.datetime_utils import parse_servicem8_timestamp, to_naive_local, whole_days_between

logger = logging.getLogger(__name__)

SENT_EMAIL_PHRASES = ("email sent", "sent email", "emailed")
SENT_SMS_PHRASES = ("sms sent", "sent sms", "text sent")
CALL_WORDS = ("call", "phone", "spoke", "rang")
INBOUND_PHRASES = (
    "received",
    "replied",
    "client called",
    "customer called",
    "inbound",
    "from client",
    "from customer",
)


@dataclass(frozen=True)
class CommunicationItem:
    job_uuid: str
    timestamp: datetime  # aware UTC
    type: CommunicationTypeEnum
    direction: ContactDirectionEnum
    text: str = ""


def classify_feed_item_type(item_type: Optional[str]) -> Optional[CommunicationTypeEnum]:
    """Feed items count only when their type mentions sms or email."""
    text = (item_type or "").lower()
    if "sms" in text:
        return CommunicationTypeEnum.SMS
    if "email" in text:
        return CommunicationTypeEnum.EMAIL
    return None


def classify_sent_note(note_text: Optional[str]) -> Optional[CommunicationTypeEnum]:
    """Strict note classifier used by sync: only explicit "sent" phrases count."""
    text = (note_text or "").lower()
    if any(p in text for p in SENT_EMAIL_PHRASES):
        return CommunicationTypeEnum.EMAIL
    if any(p in text for p in SENT_SMS_PHRASES):
        return CommunicationTypeEnum.SMS
    return None


def classify_note_text(note_text: Optional[str]) -> CommunicationTypeEnum:
    """Loose classifier for the job history view. Anything unmatched is a note."""
    text = (note_text or "").lower()
    if "email" in text:
        return CommunicationTypeEnum.EMAIL
    if "sms" in text or "text" in text:
        return CommunicationTypeEnum.SMS
    if any(w in text for w in CALL_WORDS):
        return CommunicationTypeEnum.CALL
    return CommunicationTypeEnum.NOTE


def detect_direction(*texts: Optional[str]) -> ContactDirectionEnum:
    """Inbound when any text reads as client-initiated, otherwise outbound."""
    combined = " ".join(t for t in texts if t).lower()
    if any(p in combined for p in INBOUND_PHRASES):
        return ContactDirectionEnum.INBOUND
    return ContactDirectionEnum.OUTBOUND


def _is_job_item(item: Mapping[str, Any]) -> bool:
    return bool(item.get("related_object_uuid")) and item.get("related_object") == "job"


def communications_from_feed(feed_items: Iterable[Mapping[str, Any]]) -> List[CommunicationItem]:
    """SMS and email feed items attached to jobs. Items without a usable timestamp are skipped."""
    items = []
    for item in feed_items:
        if not _is_job_item(item):
            continue
        comm_type = classify_feed_item_type(item.get("type"))
        if comm_type is None:
            continue
        timestamp = parse_servicem8_timestamp(item.get("timestamp"))
        if timestamp is None:
            continue
        text = item.get("message") or item.get("description") or ""
        items.append(CommunicationItem(
            job_uuid=item["related_object_uuid"],
            timestamp=timestamp,
            type=comm_type,
            direction=detect_direction(item.get("type"), text),
            text=text,
        ))
    return items


def communications_from_notes(notes: Iterable[Mapping[str, Any]]) -> List[CommunicationItem]:
    """Job notes that record a sent email or SMS, or read as a client reply."""
    items = []
    for note in notes:
        if not _is_job_item(note):
            continue
        text = note.get("note") or ""
        direction = detect_direction(text)
        comm_type = classify_sent_note(text)
        if comm_type is None:
            if direction != ContactDirectionEnum.INBOUND:
                continue
            comm_type = classify_note_text(text)
        timestamp = parse_servicem8_timestamp(note.get("timestamp") or note.get("create_date"))
        if timestamp is None:
            continue
        items.append(CommunicationItem(
            job_uuid=note["related_object_uuid"],
            timestamp=timestamp,
            type=comm_type,
            direction=direction,
            text=text,
        ))
    return items


def latest_communications(
    items: Iterable[CommunicationItem],
) -> Tuple[Dict[str, CommunicationItem], Dict[str, CommunicationItem]]:
    """
    Most recent communication per job, and separately the most recent inbound one.

    Returns (latest_any, latest_inbound), both keyed by job UUID.
    """
    latest: Dict[str, CommunicationItem] = {}
    latest_inbound: Dict[str, CommunicationItem] = {}
    for item in items:
        current = latest.get(item.job_uuid)
        if current is None or item.timestamp > current.timestamp:
            latest[item.job_uuid] = item
        if item.direction == ContactDirectionEnum.INBOUND:
            current = latest_inbound.get(item.job_uuid)
            if current is None or item.timestamp > current.timestamp:
                latest_inbound[item.job_uuid] = item
    return latest, latest_inbound


def communication_fields(
    latest: Optional[CommunicationItem],
    latest_inbound: Optional[CommunicationItem],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Job columns derived from a job's latest communications. Empty when there are none."""
    now = now or datetime.now(timezone.utc)
    fields: Dict[str, Any] = {}

    if latest is not None:
        fields.update({
            "last_communication_date": to_naive_local(latest.timestamp),
            "last_communication_type": latest.type.value,
            "last_communication_direction": latest.direction.value,
            "days_since_last_contact": max(0, whole_days_between(now, latest.timestamp)),
            "last_contact_who": "client" if latest.direction == ContactDirectionEnum.INBOUND else "us",
        })

    if latest_inbound is not None:
        fields.update({
            "last_client_contact_date": to_naive_local(latest_inbound.timestamp),
            "last_client_contact_type": latest_inbound.type.value,
            "days_since_client_contact": max(0, whole_days_between(now, latest_inbound.timestamp)),
        })

    return fields


def build_job_history(
    activities: Iterable[Mapping[str, Any]],
    notes: Iterable[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Merge a job's notes and scheduled activities into one timeline, newest first.

    Entries whose date cannot be parsed sort to the end.
    """
    entries: List[Tuple[Optional[datetime], Dict[str, Any]]] = []

    for note in notes:
        stamp = note.get("create_date") or note.get("timestamp")
        when = parse_servicem8_timestamp(stamp)
        entries.append((when, {
            "uuid": note.get("uuid"),
            "date": when.isoformat() if when else None,
            "type": classify_note_text(note.get("note")).value,
            "content": note.get("note") or "",
            "staff_name": note.get("created_by_staff_name"),
        }))

    for activity in activities:
        when = parse_servicem8_timestamp(activity.get("start_date"))
        entries.append((when, {
            "uuid": activity.get("uuid"),
            "date": when.isoformat() if when else None,
            "type": "activity",
            "content": f"Scheduled activity: {activity.get('start_date')} - {activity.get('end_date')}",
            "staff_name": activity.get("staff_name"),
        }))

    dated = sorted((e for e in entries if e[0] is not None), key=lambda e: e[0], reverse=True)
    undated = [e for e in entries if e[0] is None]
    return [entry for _, entry in dated + undated]
