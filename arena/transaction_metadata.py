"""
Typed payloads stored in Transaction.metadata.

Each transaction type carries its own payload shape; the JSON column holds the
payload fields plus a ``kind`` tag naming the variant.
"""
from dataclasses import dataclass, asdict, fields
from typing import Optional, Union

from .errors import ValidationError


@dataclass
class DepositMetadata:
    method: str
    kind: str = "deposit"


@dataclass
class WithdrawalMetadata:
    method: str
    kind: str = "withdrawal"


@dataclass
class EntryFeeMetadata:
    tournament_title: str
    kind: str = "entry_fee"


@dataclass
class PrizeMetadata:
    registration_id: int
    placement: Optional[int] = None
    kind: str = "prize"


TransactionMetadata = Union[DepositMetadata, WithdrawalMetadata, EntryFeeMetadata, PrizeMetadata]

METADATA_TYPES = {
    'deposit': DepositMetadata,
    'withdrawal': WithdrawalMetadata,
    'entry_fee': EntryFeeMetadata,
    'prize': PrizeMetadata,
}


def metadata_to_dict(metadata: Optional[TransactionMetadata]) -> Optional[dict]:
    if metadata is None:
        return None
    return asdict(metadata)


def metadata_from_dict(data: Optional[dict]) -> Optional[TransactionMetadata]:
    if data is None:
        return None

    kind = data.get('kind')
    cls = METADATA_TYPES.get(kind)
    if cls is None:
        raise ValidationError(f"Unknown transaction metadata kind: {kind!r}")

    allowed = {f.name for f in fields(cls)}
    try:
        return cls(**{k: v for k, v in data.items() if k in allowed})
    except TypeError as e:
        raise ValidationError(f"Malformed {kind} metadata: {e}") from e


def check_metadata_matches(transaction_type: str, metadata: Optional[TransactionMetadata]):
    """A payload, when present, must be the variant of its transaction type."""
    if metadata is None:
        return
    expected = METADATA_TYPES.get(transaction_type)
    if not isinstance(metadata, expected):
        raise ValidationError(
            f"{type(metadata).__name__} cannot be attached to a {transaction_type} transaction"
        )
