"""
Pytest configuration and fixtures for arena tests.
"""
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from arena.app import create_app
from arena.models import db, User, Game, Tournament


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Give each test empty tables and a fresh session."""
    db.session.remove()

    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    db.session.remove()


@pytest.fixture
def store(app):
    return app.store


@pytest.fixture
def ledger(app):
    return app.ledger


@pytest.fixture
def catalog(app):
    return app.catalog


@pytest.fixture
def registrations(app):
    return app.registrations


def reload(model, entity_id):
    """Read the committed row, ignoring anything cached in the session."""
    db.session.expire_all()
    return db.session.get(model, entity_id)


@pytest.fixture
def reload_entity():
    return reload


@pytest.fixture
def make_user(app, db_session):
    """Factory creating users with an optional opening deposit."""
    counter = {'n': 0}

    def _make_user(balance=0, username=None):
        counter['n'] += 1
        name = username or f"player{counter['n']}"
        user = app.store.create_user(
            username=name,
            email=f"{name}@example.com",
            password='secret-pass'
        )
        if balance:
            app.ledger.deposit(user.id, balance, 'card')
        return reload(User, user.id)

    return _make_user


@pytest.fixture
def sample_user(make_user):
    """A user holding 100.00."""
    return make_user(balance=100)


@pytest.fixture
def sample_game(app, db_session):
    return app.catalog.create_game('Free Fire', 'https://example.com/ff.png')


@pytest.fixture
def make_tournament(app, sample_game):
    """Factory creating upcoming tournaments for the sample game."""

    counter = {'n': 0}

    def _make_tournament(entry_fee=0, max_players=100, **fields):
        counter['n'] += 1
        values = dict(
            title=f"Cup {counter['n']}",
            game_id=sample_game.id,
            start_time=datetime.now(timezone.utc) + timedelta(days=1),
            prize_pool=1000,
            entry_fee=entry_fee,
            max_players=max_players,
            tournament_type='solo'
        )
        values.update(fields)
        tournament = app.catalog.create_tournament(**values)
        return reload(Tournament, tournament.id)

    return _make_tournament


@pytest.fixture
def paid_tournament(make_tournament):
    """An upcoming tournament with a 100.00 entry fee."""
    return make_tournament(entry_fee=100, title='Free Fire Pro League')


@pytest.fixture
def free_tournament(make_tournament):
    return make_tournament(entry_fee=0, title='Beginners Cup')


@pytest.fixture
def money():
    return lambda value: Decimal(str(value)).quantize(Decimal('0.01'))
