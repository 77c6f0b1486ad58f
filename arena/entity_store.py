import logging
import threading
from contextlib import contextmanager
from typing import Callable, List, Optional, Type

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from .errors import ConflictError, ValidationError
from .locks import LockRegistry
from .models import db, User, Tournament, Registration, Transaction

logger = logging.getLogger(__name__)

# Fields that only the ledger and registration workflow may change
PROTECTED_FIELDS = {
    User: {'id', 'balance'},
    Tournament: {'id', 'current_players'},
    Registration: {'id', 'earnings', 'status'},
}


def user_key(user_id: int) -> tuple:
    return ('user', user_id)


def tournament_key(tournament_id: int) -> tuple:
    return ('tournament', tournament_id)


class EntityStore:
    """
    Keyed storage for users, games, tournaments, registrations and transactions.

    All writes happen inside ``atomic()`` units of work. A unit of work holds
    the requested application locks for its whole duration, commits once at the
    outermost level and rolls back everything on any exception. Nested units
    join the enclosing one.
    """

    def __init__(self, locks: LockRegistry = None):
        self.locks = locks or LockRegistry()
        self._local = threading.local()

    @property
    def session(self):
        return db.session

    @property
    def in_unit_of_work(self) -> bool:
        return getattr(self._local, 'depth', 0) > 0

    @contextmanager
    def atomic(self, *lock_keys):
        """Run a block as one all-or-nothing unit of work."""
        depth = getattr(self._local, 'depth', 0)
        outermost = depth == 0

        with self.locks.hold(*lock_keys):
            if outermost:
                self._local.callbacks = []
            self._local.depth = depth + 1
            try:
                yield db.session
                if outermost:
                    db.session.commit()
            except Exception:
                if outermost:
                    db.session.rollback()
                    self._local.callbacks = []
                raise
            finally:
                self._local.depth = depth

        if outermost:
            callbacks, self._local.callbacks = self._local.callbacks, []
            for callback in callbacks:
                self._run_callback(callback)

    @staticmethod
    def _run_callback(callback: Callable[[], None]):
        # the unit of work already committed; a failing callback cannot undo it
        try:
            callback()
        except Exception:
            logger.exception("Post-commit callback failed")

    def on_commit(self, callback: Callable[[], None]):
        """Run ``callback`` once the enclosing unit of work has committed."""
        if not self.in_unit_of_work:
            self._run_callback(callback)
            return
        self._local.callbacks.append(callback)

    # ==================== Generic operations ====================

    def get(self, model: Type[db.Model], entity_id: int):
        return db.session.get(model, entity_id)

    def get_for_update(self, model: Type[db.Model], entity_id: int):
        """Fetch with a row lock, bypassing any stale copy in the identity map."""
        return db.session.get(
            model,
            entity_id,
            with_for_update=True,
            populate_existing=True
        )

    def find(self, model: Type[db.Model], *criteria, order_by=None, **filters) -> List:
        query = model.query
        if criteria:
            query = query.filter(*criteria)
        if filters:
            query = query.filter_by(**filters)
        if order_by is not None:
            if isinstance(order_by, (list, tuple)):
                query = query.order_by(*order_by)
            else:
                query = query.order_by(order_by)
        return query.all()

    def exists(self, model: Type[db.Model], *criteria, **filters) -> bool:
        query = model.query
        if criteria:
            query = query.filter(*criteria)
        if filters:
            query = query.filter_by(**filters)
        return db.session.query(query.exists()).scalar()

    def insert(self, entity):
        with self.atomic():
            db.session.add(entity)
            db.session.flush()
        logger.debug(f"Inserted {type(entity).__name__} {entity.id}")
        return entity

    def update(self, model: Type[db.Model], entity_id: int, **patch) -> Optional[object]:
        if model is Transaction:
            raise ValidationError("Transactions are immutable")

        columns = {attr.key for attr in inspect(model).column_attrs}
        protected = PROTECTED_FIELDS.get(model, {'id'})
        for field in patch:
            if field not in columns:
                raise ValidationError(f"{model.__name__} has no field '{field}'")
            if field in protected:
                raise ValidationError(f"{model.__name__}.{field} cannot be updated directly")

        with self.atomic():
            entity = self.get(model, entity_id)
            if entity is None:
                return None
            for field, value in patch.items():
                setattr(entity, field, value)
            db.session.flush()
        return entity

    # ==================== Users ====================

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        mobile_no: str = None
    ) -> User:
        """Create a user with a zero balance; username and email must be unused."""
        if not username or not email or not password:
            raise ValidationError("username, email and password are required")
        if '@' not in email:
            raise ValidationError("email is not a valid address")

        try:
            with self.atomic():
                if self.exists(User, username=username):
                    raise ConflictError("Username already exists")
                if self.exists(User, email=email):
                    raise ConflictError("Email already registered")

                user = User(username=username, email=email, mobile_no=mobile_no)
                user.set_password(password)
                self.insert(user)
        except IntegrityError as e:
            # lost a race with a concurrent signup
            raise ConflictError("Username or email already exists") from e

        logger.info(f"Created user {user.id} ({username})")
        return user

    def get_user_by_username(self, username: str) -> Optional[User]:
        return User.query.filter_by(username=username).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return User.query.filter_by(email=email).first()

    def verify_credentials(self, username: str, password: str) -> Optional[User]:
        user = self.get_user_by_username(username)
        if user and user.check_password(password):
            return user
        return None
