import logging
from typing import List, Tuple

from sqlalchemy.exc import IntegrityError

from shared.events import registration_created_event, registration_status_event
from shared.pubsub import EventPublisher
from shared.state_machine import RegistrationStateMachine, RegistrationState, TransitionError
from .entity_store import EntityStore, tournament_key, user_key
from .errors import (
    NotFoundError,
    ValidationError,
    CapacityError,
    DuplicateRegistrationError,
    InsufficientBalanceError,
)
from .ledger import Ledger
from .models import db, User, Tournament, Registration, REGISTRATION_STATUSES

logger = logging.getLogger(__name__)


class RegistrationWorkflow:
    """
    Seats users in tournaments.

    ``register`` checks capacity, duplicates and balance, charges the entry
    fee, inserts the registration and bumps the player count as one unit of
    work, holding the tournament lock and then the user lock throughout.
    """

    def __init__(self, store: EntityStore, ledger: Ledger, publisher: EventPublisher = None):
        self.store = store
        self.ledger = ledger
        self.publisher = publisher or EventPublisher(None)

    def register(self, user_id: int, tournament_id: int) -> Registration:
        try:
            with self.store.atomic(tournament_key(tournament_id), user_key(user_id)):
                registration = self._register(user_id, tournament_id)
        except IntegrityError as e:
            # the unique index caught a registration our check could not see
            logger.warning(f"Duplicate registration for user {user_id} in tournament {tournament_id}")
            raise DuplicateRegistrationError() from e

        logger.info(
            f"User {user_id} registered for tournament {tournament_id} (registration {registration.id})"
        )
        return registration

    def _register(self, user_id: int, tournament_id: int) -> Registration:
        tournament = self.store.get_for_update(Tournament, tournament_id)
        if tournament is None:
            raise NotFoundError("Tournament not found")

        if tournament.current_players >= tournament.max_players:
            logger.warning(f"Tournament {tournament_id} is full ({tournament.max_players} players)")
            raise CapacityError()

        if self.store.exists(Registration, user_id=user_id, tournament_id=tournament_id):
            raise DuplicateRegistrationError()

        user = self.store.get_for_update(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        if tournament.entry_fee > 0:
            if user.balance < tournament.entry_fee:
                logger.warning(
                    f"User {user_id} cannot afford entry fee {tournament.entry_fee} "
                    f"for tournament {tournament_id}: balance {user.balance}"
                )
                raise InsufficientBalanceError()
            self.ledger.charge_entry_fee(
                user_id,
                tournament_id,
                tournament.entry_fee,
                tournament.title
            )

        registration = Registration(
            user_id=user_id,
            tournament_id=tournament_id,
            status=RegistrationState.REGISTERED.value,
            placement=None
        )
        self.store.insert(registration)
        tournament.current_players = tournament.current_players + 1
        db.session.flush()

        event = registration_created_event(registration)
        self.store.on_commit(lambda: self.publisher.publish(event))
        return registration

    def list_user_registrations(self, user_id: int) -> List[Tuple[Registration, Tournament]]:
        """A user's registrations with their tournaments, newest first."""
        registrations = self.store.find(
            Registration,
            user_id=user_id,
            order_by=(Registration.registered_at.desc(), Registration.id.desc())
        )
        return [(r, r.tournament) for r in registrations]

    def list_tournament_registrations(self, tournament_id: int) -> List[Registration]:
        return self.store.find(Registration, tournament_id=tournament_id, order_by=Registration.id)

    def update_status(self, registration_id: int, status: str, placement: int = None) -> Registration:
        """Advance a registration through registered -> playing -> completed."""
        if status not in REGISTRATION_STATUSES:
            raise ValidationError(f"Unknown registration status '{status}'")
        if placement is not None and status != RegistrationState.COMPLETED.value:
            raise ValidationError("placement can only be set when completing a registration")

        registration = self.store.get(Registration, registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")

        with self.store.atomic(user_key(registration.user_id)):
            registration = self.store.get_for_update(Registration, registration_id)
            sm = RegistrationStateMachine.from_state_string(registration.status)
            old_state = sm.state.value
            try:
                sm.transition_to(status, guard_context={'placement': placement})
            except TransitionError as e:
                raise ValidationError(str(e)) from e

            registration.status = sm.state.value
            if placement is not None:
                registration.placement = placement

            event = registration_status_event(registration, old_state)
            self.store.on_commit(lambda: self.publisher.publish(event))

        logger.info(f"Registration {registration_id} moved from {old_state} to {status}")
        return registration
