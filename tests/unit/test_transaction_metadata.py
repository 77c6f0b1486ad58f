"""
Unit tests for typed transaction metadata.
"""
import pytest

from arena.errors import ValidationError
from arena.transaction_metadata import (
    DepositMetadata,
    EntryFeeMetadata,
    PrizeMetadata,
    metadata_from_dict,
    check_metadata_matches,
)


class TestMetadataFromDict:

    def test_prize_payload(self):
        metadata = metadata_from_dict({'kind': 'prize', 'registration_id': 7, 'placement': 3})
        assert metadata == PrizeMetadata(registration_id=7, placement=3)

    def test_none(self):
        assert metadata_from_dict(None) is None

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            metadata_from_dict({'kind': 'bonus'})

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            metadata_from_dict({'kind': 'entry_fee'})


class TestCheckMetadataMatches:

    def test_matching_variant(self):
        check_metadata_matches('deposit', DepositMetadata('upi'))
        check_metadata_matches('prize', None)

    def test_mismatched_variant(self):
        with pytest.raises(ValidationError):
            check_metadata_matches('withdrawal', EntryFeeMetadata('Cup'))


def test_transaction_details(ledger, make_user):
    user = make_user()
    transaction = ledger.deposit(user.id, 10, 'upi')
    assert transaction.details == DepositMetadata(method='upi')
