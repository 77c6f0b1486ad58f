from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
import json


class EventType(str, Enum):
    # Registration events
    REGISTRATION_CREATED = "registration.created"
    REGISTRATION_STATUS_CHANGED = "registration.status_changed"

    # Ledger events
    TRANSACTION_RECORDED = "transaction.recorded"

    # Tournament lifecycle
    TOURNAMENT_STATUS_CHANGED = "tournament.status_changed"


@dataclass
class Event:
    type: EventType
    user_id: int = None
    tournament_id: int = None
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).isoformat()
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "user_id": self.user_id,
            "tournament_id": self.tournament_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]) if data["type"] in [e.value for e in EventType] else data["type"],
            user_id=data.get("user_id"),
            tournament_id=data.get("tournament_id"),
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))


def registration_created_event(registration) -> Event:
    return Event(
        type=EventType.REGISTRATION_CREATED,
        user_id=registration.user_id,
        tournament_id=registration.tournament_id,
        data={
            "registration_id": registration.id,
            "status": registration.status
        }
    )


def registration_status_event(registration, from_state: str) -> Event:
    return Event(
        type=EventType.REGISTRATION_STATUS_CHANGED,
        user_id=registration.user_id,
        tournament_id=registration.tournament_id,
        data={
            "registration_id": registration.id,
            "from_state": from_state,
            "to_state": registration.status,
            "placement": registration.placement
        }
    )


def transaction_recorded_event(transaction) -> Event:
    return Event(
        type=EventType.TRANSACTION_RECORDED,
        user_id=transaction.user_id,
        tournament_id=transaction.tournament_id,
        data={
            "transaction_id": transaction.id,
            "type": transaction.type,
            "amount": str(transaction.amount)
        }
    )


def tournament_status_event(tournament_id: int, from_state: str, to_state: str) -> Event:
    return Event(
        type=EventType.TOURNAMENT_STATUS_CHANGED,
        tournament_id=tournament_id,
        data={
            "from_state": from_state,
            "to_state": to_state
        }
    )
