import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from ..contracts.base import Timestamp
from ..contracts.temporal import EventId, SeriesEntry, UpdateEvent


class StrictLedgerEncoder(json.JSONEncoder):
    """
    JSON Encoder that prioritizes Fidelity over Flexibility.

    RULES:
    1. Datetimes MUST be ISO 8601 strings in UTC with a Z suffix.
    2. Decimals MUST be preserved as strings (no float precision loss,
       trailing zeros kept).
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return Timestamp(obj).to_iso()
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


def event_to_record(event: UpdateEvent) -> Dict[str, Any]:
    """Flatten an event into a dict for one JSONL line; the encoder renders it."""
    return {
        'event_id': event.event_id.value,
        'category': event.category,
        'arrival_timestamp': event.arrival_timestamp,
        'entries': [
            {'instant': e.instant, 'value': e.value}
            for e in event.entries
        ],
        'previous_hash': event.previous_hash,
        'entry_hash': event.entry_hash,
    }


def event_from_record(record: Dict[str, Any]) -> UpdateEvent:
    """Inverse of a decoded JSONL line. Raises KeyError/ValueError on bad input."""
    return UpdateEvent(
        event_id=EventId(int(record['event_id'])),
        category=record['category'],
        arrival_timestamp=Timestamp.from_iso(record['arrival_timestamp']).value,
        entries=tuple(
            SeriesEntry(
                instant=Timestamp.from_iso(e['instant']).value,
                value=None if e['value'] is None else Decimal(e['value']),
            )
            for e in record['entries']
        ),
        previous_hash=record.get('previous_hash', ''),
        entry_hash=record.get('entry_hash', ''),
    )


def dumps_event(event: UpdateEvent) -> str:
    return json.dumps(event_to_record(event), cls=StrictLedgerEncoder, sort_keys=True)
