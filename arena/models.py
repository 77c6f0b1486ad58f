from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

from .errors import ValidationError
from .transaction_metadata import metadata_from_dict

db = SQLAlchemy()

CENT = Decimal('0.01')
MONEY = db.Numeric(12, 2)
# largest magnitude a Numeric(12, 2) column holds, exclusive
MONEY_LIMIT = Decimal('10000000000')

TRANSACTION_TYPES = ('deposit', 'withdrawal', 'entry_fee', 'prize')
TRANSACTION_STATUSES = ('pending', 'completed', 'failed')
TOURNAMENT_STATUSES = ('upcoming', 'live', 'completed')
REGISTRATION_STATUSES = ('registered', 'playing', 'completed')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value, field: str = 'amount') -> Decimal:
    """Coerce a user-supplied number to a two-place Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        # str() keeps floats like 0.1 from dragging in binary noise
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    out_of_range = ValidationError(f"{field} must be less than {MONEY_LIMIT:,} in magnitude")
    if abs(amount) >= MONEY_LIMIT:
        raise out_of_range
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    # rounding can carry 9999999999.995 up to the limit
    if abs(amount) >= MONEY_LIMIT:
        raise out_of_range
    return amount


def _iso(value):
    return value.isoformat() if value else None


def _money_str(value):
    return str(value) if value is not None else None


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    mobile_no = db.Column(db.String(30), nullable=True)
    balance = db.Column(MONEY, nullable=False, default=Decimal('0.00'))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    registrations = db.relationship('Registration', back_populates='user')
    transactions = db.relationship('Transaction', back_populates='user')

    __table_args__ = (
        db.CheckConstraint('balance >= 0', name='chk_user_balance_nonneg'),
    )

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'mobile_no': self.mobile_no,
            'balance': _money_str(self.balance),
            'created_at': _iso(self.created_at),
        }


class Game(db.Model):
    __tablename__ = 'games'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    image_url = db.Column(db.String(500), nullable=False)

    tournaments = db.relationship('Tournament', back_populates='game')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'image_url': self.image_url,
        }


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey('games.id'), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    prize_pool = db.Column(MONEY, nullable=False)
    entry_fee = db.Column(MONEY, nullable=False, default=Decimal('0.00'))
    max_players = db.Column(db.Integer, nullable=False)
    current_players = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='upcoming')  # upcoming, live, completed
    tournament_type = db.Column(db.String(20), nullable=False)  # solo, duo, squad, team
    featured = db.Column(db.Boolean, nullable=False, default=False)
    image_url = db.Column(db.String(500), nullable=True)

    game = db.relationship('Game', back_populates='tournaments')
    registrations = db.relationship('Registration', back_populates='tournament')

    __table_args__ = (
        db.CheckConstraint('entry_fee >= 0', name='chk_tournament_fee_nonneg'),
        db.CheckConstraint('current_players >= 0', name='chk_tournament_players_nonneg'),
        db.CheckConstraint('current_players <= max_players', name='chk_tournament_capacity'),
    )

    @property
    def capacity(self) -> int:
        return self.max_players - self.current_players

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'game_id': self.game_id,
            'description': self.description,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'prize_pool': _money_str(self.prize_pool),
            'entry_fee': _money_str(self.entry_fee),
            'max_players': self.max_players,
            'current_players': self.current_players,
            'capacity': self.capacity,
            'status': self.status,
            'tournament_type': self.tournament_type,
            'featured': self.featured,
            'image_url': self.image_url,
        }


class Registration(db.Model):
    __tablename__ = 'registrations'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False, index=True)
    registered_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    status = db.Column(db.String(20), nullable=False, default='registered')  # registered, playing, completed
    placement = db.Column(db.Integer, nullable=True)
    earnings = db.Column(MONEY, nullable=False, default=Decimal('0.00'))

    user = db.relationship('User', back_populates='registrations')
    tournament = db.relationship('Tournament', back_populates='registrations')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'tournament_id', name='unique_registration_per_tournament'),
        db.CheckConstraint('earnings >= 0', name='chk_registration_earnings_nonneg'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'tournament_id': self.tournament_id,
            'registered_at': _iso(self.registered_at),
            'status': self.status,
            'placement': self.placement,
            'earnings': _money_str(self.earnings),
        }


class Transaction(db.Model):
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    amount = db.Column(MONEY, nullable=False)  # positive credits, negative debits
    type = db.Column(db.String(20), nullable=False)  # deposit, withdrawal, entry_fee, prize
    description = db.Column(db.String(300), nullable=False)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    status = db.Column(db.String(20), nullable=False, default='completed')  # pending, completed, failed
    # "metadata" is reserved on declarative classes
    metadata_ = db.Column('metadata', db.JSON, nullable=True)

    user = db.relationship('User', back_populates='transactions')

    @property
    def details(self):
        """The metadata payload as its typed variant, or None."""
        return metadata_from_dict(self.metadata_)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'amount': _money_str(self.amount),
            'type': self.type,
            'description': self.description,
            'tournament_id': self.tournament_id,
            'timestamp': _iso(self.timestamp),
            'status': self.status,
            'metadata': self.metadata_,
        }
