import logging
from datetime import datetime, timezone
from typing import List, Optional

from shared.events import tournament_status_event
from shared.pubsub import EventPublisher
from shared.state_machine import TournamentStateMachine, TransitionError
from .entity_store import EntityStore, tournament_key
from .errors import NotFoundError, ValidationError
from .models import Game, Tournament, TOURNAMENT_STATUSES, to_money

logger = logging.getLogger(__name__)

TOURNAMENT_FILTERS = ('all', 'by_game', 'featured', 'upcoming', 'live', 'completed', 'free')
TOURNAMENT_TYPES = ('solo', 'duo', 'squad', 'team')


def _parse_datetime(value, field: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be an ISO 8601 timestamp")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class Catalog:
    """
    Games and tournaments:
    - Browse games and filtered tournament lists
    - Create reference data
    - Move tournaments through upcoming -> live -> completed
    """

    def __init__(self, store: EntityStore, publisher: EventPublisher = None):
        self.store = store
        self.publisher = publisher or EventPublisher(None)

    # ==================== Games ====================

    def list_games(self) -> List[Game]:
        return self.store.find(Game, order_by=Game.id)

    def get_game(self, game_id: int) -> Game:
        game = self.store.get(Game, game_id)
        if game is None:
            raise NotFoundError("Game not found")
        return game

    def create_game(self, name: str, image_url: str) -> Game:
        if not name or not image_url:
            raise ValidationError("Game name and image_url are required")
        game = self.store.insert(Game(name=name, image_url=image_url))
        logger.info(f"Created game {game.id} ({name})")
        return game

    # ==================== Tournaments ====================

    def list_tournaments(self, filter: str = 'all', game_id: int = None) -> List[Tournament]:
        """List tournaments matching one of TOURNAMENT_FILTERS, soonest first."""
        if game_id is not None and filter == 'all':
            filter = 'by_game'

        order = (Tournament.start_time, Tournament.id)

        if filter == 'all':
            return self.store.find(Tournament, order_by=order)
        if filter == 'by_game':
            if game_id is None:
                raise ValidationError("game_id is required for the by_game filter")
            return self.store.find(Tournament, game_id=game_id, order_by=order)
        if filter == 'featured':
            return self.store.find(Tournament, featured=True, order_by=order)
        if filter in TOURNAMENT_STATUSES:
            return self.store.find(Tournament, status=filter, order_by=order)
        if filter == 'free':
            return self.store.find(Tournament, Tournament.entry_fee == 0, order_by=order)

        raise ValidationError(f"Unknown tournament filter '{filter}'")

    def get_tournament(self, tournament_id: int) -> Tournament:
        tournament = self.store.get(Tournament, tournament_id)
        if tournament is None:
            raise NotFoundError("Tournament not found")
        return tournament

    def create_tournament(
        self,
        title: str,
        game_id: int,
        start_time,
        prize_pool,
        max_players: int,
        tournament_type: str = 'solo',
        entry_fee=0,
        end_time=None,
        description: str = None,
        status: str = 'upcoming',
        featured: bool = False,
        image_url: str = None
    ) -> Tournament:
        if not title:
            raise ValidationError("Tournament title is required")
        if start_time is None:
            raise ValidationError("start_time is required")
        start_time = _parse_datetime(start_time, 'start_time')
        end_time = _parse_datetime(end_time, 'end_time')
        if end_time is not None and end_time < start_time:
            raise ValidationError("end_time cannot be before start_time")

        entry_fee = to_money(entry_fee, 'entry_fee')
        if entry_fee < 0:
            raise ValidationError("entry_fee cannot be negative")
        prize_pool = to_money(prize_pool, 'prize_pool')
        if prize_pool < 0:
            raise ValidationError("prize_pool cannot be negative")
        if not isinstance(max_players, int) or isinstance(max_players, bool) or max_players < 1:
            raise ValidationError("max_players must be a positive integer")
        if status not in TOURNAMENT_STATUSES:
            raise ValidationError(f"Unknown tournament status '{status}'")
        if tournament_type not in TOURNAMENT_TYPES:
            raise ValidationError(f"Unknown tournament type '{tournament_type}'")
        self.get_game(game_id)

        tournament = Tournament(
            title=title,
            game_id=game_id,
            description=description,
            start_time=start_time,
            end_time=end_time,
            prize_pool=prize_pool,
            entry_fee=entry_fee,
            max_players=max_players,
            current_players=0,
            status=status,
            tournament_type=tournament_type,
            featured=bool(featured),
            image_url=image_url
        )
        self.store.insert(tournament)
        logger.info(f"Created tournament {tournament.id} ({title})")
        return tournament

    def transition_tournament(self, tournament_id: int, action: str) -> Tournament:
        """Apply a lifecycle action (start, complete) to a tournament."""
        with self.store.atomic(tournament_key(tournament_id)):
            tournament = self.store.get_for_update(Tournament, tournament_id)
            if tournament is None:
                raise NotFoundError("Tournament not found")

            sm = TournamentStateMachine.from_state_string(tournament.status)
            if not sm.can_transition(action):
                raise ValidationError(
                    f"Cannot {action} tournament in {tournament.status} state"
                )

            old_state = sm.state.value
            try:
                new_state = sm.transition(action)
            except TransitionError as e:
                raise ValidationError(str(e)) from e

            tournament.status = new_state.value
            event = tournament_status_event(tournament_id, old_state, new_state.value)
            self.store.on_commit(lambda: self.publisher.publish(event))

        logger.info(f"Tournament {tournament_id} moved from {old_state} to {new_state.value}")
        return tournament
