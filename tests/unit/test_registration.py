"""
Unit tests for RegistrationWorkflow.
Tests: register, list_user_registrations, list_tournament_registrations,
       update_status
"""
import gc

import pytest

from arena.errors import (
    NotFoundError,
    ValidationError,
    CapacityError,
    DuplicateRegistrationError,
    InsufficientBalanceError,
)
from arena.models import User, Tournament, Registration, Transaction


class TestRegister:

    def test_free_registration(self, registrations, make_user, free_tournament, reload_entity):
        user = make_user()
        registration = registrations.register(user.id, free_tournament.id)

        assert registration.status == 'registered'
        assert registration.placement is None
        assert str(registration.earnings) == '0.00'
        assert registration.registered_at is not None
        assert reload_entity(Tournament, free_tournament.id).current_players == 1
        assert Transaction.query.filter_by(user_id=user.id).count() == 0

    def test_paid_registration(self, registrations, make_user, paid_tournament, reload_entity, money):
        user = make_user(balance=150)
        registration = registrations.register(user.id, paid_tournament.id)

        fee = Transaction.query.filter_by(user_id=user.id, type='entry_fee').one()
        assert fee.amount == money(-100)
        assert fee.tournament_id == paid_tournament.id
        assert fee.metadata_ == {'tournament_title': 'Free Fire Pro League', 'kind': 'entry_fee'}
        assert reload_entity(User, user.id).balance == money(50)
        assert reload_entity(Tournament, paid_tournament.id).current_players == 1
        assert registration.tournament_id == paid_tournament.id

    def test_exact_balance_is_enough(self, registrations, make_user, paid_tournament, reload_entity):
        user = make_user(balance=100)
        registrations.register(user.id, paid_tournament.id)
        assert str(reload_entity(User, user.id).balance) == '0.00'

    def test_insufficient_balance(self, registrations, make_user, paid_tournament, reload_entity, money):
        """Balance 50 vs entry fee 100: rejected, nothing changes."""
        user = make_user(balance=50)

        with pytest.raises(InsufficientBalanceError):
            registrations.register(user.id, paid_tournament.id)

        assert reload_entity(User, user.id).balance == money(50)
        assert Transaction.query.filter_by(user_id=user.id, type='entry_fee').count() == 0
        assert Registration.query.count() == 0
        assert reload_entity(Tournament, paid_tournament.id).current_players == 0

    def test_full_tournament(self, registrations, make_user, make_tournament, reload_entity):
        """maxPlayers=1 with one seat taken rejects regardless of balance."""
        tournament = make_tournament(entry_fee=10, max_players=1)
        registrations.register(make_user(balance=10).id, tournament.id)
        rich = make_user(balance=10000)

        with pytest.raises(CapacityError):
            registrations.register(rich.id, tournament.id)

        assert reload_entity(Tournament, tournament.id).current_players == 1
        assert Transaction.query.filter_by(user_id=rich.id, type='entry_fee').count() == 0

    def test_duplicate_registration(self, registrations, make_user, paid_tournament, reload_entity, money):
        """Second attempt fails; the fee is charged and the count bumped once."""
        user = make_user(balance=500)
        registrations.register(user.id, paid_tournament.id)

        with pytest.raises(DuplicateRegistrationError):
            registrations.register(user.id, paid_tournament.id)

        assert Registration.query.filter_by(user_id=user.id).count() == 1
        assert reload_entity(Tournament, paid_tournament.id).current_players == 1
        assert reload_entity(User, user.id).balance == money(400)

    def test_unknown_tournament(self, registrations, make_user):
        user = make_user(balance=100)
        with pytest.raises(NotFoundError):
            registrations.register(user.id, 999)

    def test_unknown_user(self, registrations, paid_tournament, free_tournament, reload_entity):
        with pytest.raises(NotFoundError):
            registrations.register(999, paid_tournament.id)
        with pytest.raises(NotFoundError):
            registrations.register(999, free_tournament.id)
        assert reload_entity(Tournament, free_tournament.id).current_players == 0

    def test_failed_insert_rolls_back_fee(self, registrations, make_user, paid_tournament, mocker,
                                          reload_entity, money):
        """A failure after the fee charge leaves no trace."""
        user = make_user(balance=100)
        original_insert = registrations.store.insert

        def failing_insert(entity):
            if isinstance(entity, Registration):
                raise RuntimeError("disk full")
            return original_insert(entity)

        mocker.patch.object(registrations.store, 'insert', side_effect=failing_insert)

        with pytest.raises(RuntimeError):
            registrations.register(user.id, paid_tournament.id)

        assert reload_entity(User, user.id).balance == money(100)
        assert Transaction.query.filter_by(user_id=user.id, type='entry_fee').count() == 0
        assert Registration.query.count() == 0
        assert reload_entity(Tournament, paid_tournament.id).current_players == 0

    def test_events_published(self, registrations, make_user, paid_tournament, mocker):
        user = make_user(balance=100)
        publish = mocker.patch.object(registrations.publisher, 'publish')

        registrations.register(user.id, paid_tournament.id)

        published = [c[0][0].type for c in publish.call_args_list]
        assert published == ['transaction.recorded', 'registration.created']

    def test_player_count_tracks_registrations(self, registrations, make_user, free_tournament, reload_entity):
        for _ in range(5):
            registrations.register(make_user().id, free_tournament.id)

        tournament = reload_entity(Tournament, free_tournament.id)
        assert tournament.current_players == 5
        assert len(registrations.list_tournament_registrations(free_tournament.id)) == 5


class TestListUserRegistrations:

    def test_pairs_with_tournaments(self, registrations, make_user, free_tournament, paid_tournament):
        user = make_user(balance=100)
        first = registrations.register(user.id, free_tournament.id)
        second = registrations.register(user.id, paid_tournament.id)

        pairs = registrations.list_user_registrations(user.id)

        assert [r.id for r, _ in pairs] == [second.id, first.id]
        assert pairs[0][1].id == paid_tournament.id
        assert pairs[1][1].title == free_tournament.title

    def test_empty(self, registrations, make_user):
        assert registrations.list_user_registrations(make_user().id) == []


class TestUpdateStatus:

    def test_check_in_and_finish(self, registrations, make_user, free_tournament):
        user = make_user()
        registration = registrations.register(user.id, free_tournament.id)

        registrations.update_status(registration.id, 'playing')
        finished = registrations.update_status(registration.id, 'completed', placement=2)

        assert finished.status == 'completed'
        assert finished.placement == 2

    def test_cannot_reopen(self, registrations, make_user, free_tournament):
        registration = registrations.register(make_user().id, free_tournament.id)
        registrations.update_status(registration.id, 'completed')

        with pytest.raises(ValidationError):
            registrations.update_status(registration.id, 'playing')

    def test_bad_placement(self, registrations, make_user, free_tournament):
        registration = registrations.register(make_user().id, free_tournament.id)
        with pytest.raises(ValidationError):
            registrations.update_status(registration.id, 'completed', placement=0)

    def test_placement_only_on_completion(self, registrations, make_user, free_tournament):
        registration = registrations.register(make_user().id, free_tournament.id)
        with pytest.raises(ValidationError):
            registrations.update_status(registration.id, 'playing', placement=1)

    def test_unknown_status(self, registrations, make_user, free_tournament):
        registration = registrations.register(make_user().id, free_tournament.id)
        with pytest.raises(ValidationError):
            registrations.update_status(registration.id, 'disqualified')

    def test_missing_registration(self, registrations, db_session):
        with pytest.raises(NotFoundError):
            registrations.update_status(999, 'playing')


class TestLockLifetime:

    def test_unknown_users_do_not_accumulate_locks(self, registrations, free_tournament):
        for user_id in range(1000, 1500):
            with pytest.raises(NotFoundError):
                registrations.register(user_id, free_tournament.id)

        gc.collect()
        assert len(registrations.store.locks) == 0
