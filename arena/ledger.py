import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func

from shared.events import transaction_recorded_event
from shared.pubsub import EventPublisher
from .entity_store import EntityStore, user_key
from .errors import NotFoundError, ValidationError, InsufficientBalanceError
from .models import (
    db, User, Registration, Transaction, TRANSACTION_TYPES, TRANSACTION_STATUSES, MONEY_LIMIT,
    to_money, utcnow
)
from .transaction_metadata import (
    TransactionMetadata,
    DepositMetadata,
    WithdrawalMetadata,
    EntryFeeMetadata,
    PrizeMetadata,
    check_metadata_matches,
    metadata_to_dict,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


class Ledger:
    """
    The only code path that changes a user's balance.

    Every balance change is recorded as one immutable Transaction, and the
    balance update and the Transaction insert commit together.
    """

    def __init__(self, store: EntityStore, publisher: EventPublisher = None):
        self.store = store
        self.publisher = publisher or EventPublisher(None)

    @staticmethod
    def _check_sign(transaction_type: str, amount: Decimal):
        if transaction_type == 'deposit' and amount <= 0:
            raise ValidationError("Deposit amount must be positive")
        if transaction_type == 'prize' and amount < 0:
            raise ValidationError("Prize amount cannot be negative")
        if transaction_type in ('withdrawal', 'entry_fee') and amount >= 0:
            raise ValidationError(f"A {transaction_type} must be recorded as a negative amount")

    @staticmethod
    def _require_method(method: str) -> str:
        if not isinstance(method, str) or not method.strip():
            raise ValidationError("method is required")
        return method.strip()

    def _locked_user(self, user_id: int) -> User:
        user = self.store.get_for_update(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def apply_transaction(
        self,
        user_id: int,
        amount,
        transaction_type: str,
        description: str,
        tournament_id: int = None,
        metadata: Optional[TransactionMetadata] = None,
        status: str = 'completed'
    ) -> Transaction:
        """Record a transaction and move the user's balance by its amount.

        Only completed transactions move the balance; pending and failed ones
        are recorded as-is.
        """
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type '{transaction_type}'")
        if status not in TRANSACTION_STATUSES:
            raise ValidationError(f"Unknown transaction status '{status}'")
        amount = to_money(amount)
        self._check_sign(transaction_type, amount)
        check_metadata_matches(transaction_type, metadata)

        with self.store.atomic(user_key(user_id)):
            user = self._locked_user(user_id)

            # re-checked under the lock: callers validated against an earlier read
            new_balance = user.balance + amount if status == 'completed' else user.balance
            if new_balance < 0:
                logger.warning(
                    f"Rejected {transaction_type} of {amount} for user {user_id}: balance {user.balance}"
                )
                raise InsufficientBalanceError(
                    f"Insufficient balance: {user.balance} available, {-amount} required"
                )
            if new_balance >= MONEY_LIMIT:
                raise ValidationError(f"Balance cannot reach {MONEY_LIMIT:,}")

            transaction = Transaction(
                user_id=user_id,
                amount=amount,
                type=transaction_type,
                description=description,
                tournament_id=tournament_id,
                timestamp=utcnow(),
                status=status,
                metadata_=metadata_to_dict(metadata)
            )
            self.store.insert(transaction)
            user.balance = new_balance
            db.session.flush()

            event = transaction_recorded_event(transaction)
            self.store.on_commit(lambda: self.publisher.publish(event))

        logger.info(
            f"Recorded {transaction_type} {transaction.id} of {amount} for user {user_id}"
        )
        return transaction

    def deposit(self, user_id: int, amount, method: str) -> Transaction:
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Deposit amount must be positive")
        method = self._require_method(method)

        return self.apply_transaction(
            user_id,
            amount,
            'deposit',
            f"Deposit via {method}",
            metadata=DepositMetadata(method=method)
        )

    def withdraw(self, user_id: int, amount, method: str) -> Transaction:
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Withdrawal amount must be positive")
        method = self._require_method(method)

        with self.store.atomic(user_key(user_id)):
            user = self._locked_user(user_id)
            if user.balance < amount:
                logger.warning(f"Rejected withdrawal of {amount} for user {user_id}: balance {user.balance}")
                raise InsufficientBalanceError(
                    f"Insufficient balance: {user.balance} available, {amount} requested"
                )
            return self.apply_transaction(
                user_id,
                -amount,
                'withdrawal',
                f"Withdrawal to {method}",
                metadata=WithdrawalMetadata(method=method)
            )

    def charge_entry_fee(self, user_id: int, tournament_id: int, fee, title: str) -> Transaction:
        fee = to_money(fee, 'fee')
        if fee <= 0:
            raise ValidationError("Entry fee must be positive")

        with self.store.atomic(user_key(user_id)):
            user = self._locked_user(user_id)
            if user.balance < fee:
                raise InsufficientBalanceError(
                    f"Insufficient balance: {user.balance} available, entry fee is {fee}"
                )
            return self.apply_transaction(
                user_id,
                -fee,
                'entry_fee',
                f"Entry fee for {title}",
                tournament_id=tournament_id,
                metadata=EntryFeeMetadata(tournament_title=title)
            )

    def credit_earnings(
        self,
        registration_id: int,
        user_id: int,
        amount,
        placement: int = None
    ) -> Transaction:
        """Pay out prize money for a registration and add it to its earnings."""
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("Earnings cannot be negative")
        if placement is not None and placement < 1:
            raise ValidationError("placement must be 1 or greater")

        with self.store.atomic(user_key(user_id)):
            registration = self.store.get_for_update(Registration, registration_id)
            if registration is None or registration.user_id != user_id:
                raise NotFoundError(f"Registration {registration_id} not found for user {user_id}")

            if registration.earnings + amount >= MONEY_LIMIT:
                raise ValidationError(f"Earnings cannot reach {MONEY_LIMIT:,}")
            if placement is not None:
                registration.placement = placement

            transaction = self.apply_transaction(
                user_id,
                amount,
                'prize',
                f"Prize for {registration.tournament.title}",
                tournament_id=registration.tournament_id,
                metadata=PrizeMetadata(registration_id=registration_id, placement=registration.placement)
            )
            registration.earnings = registration.earnings + amount

        return transaction

    def list_user_transactions(self, user_id: int) -> List[Transaction]:
        """Transactions of a user, newest first."""
        return self.store.find(
            Transaction,
            user_id=user_id,
            order_by=(Transaction.timestamp.desc(), Transaction.id.desc())
        )

    def ledger_total(self, user_id: int) -> Decimal:
        total = db.session.query(
            func.coalesce(func.sum(Transaction.amount), 0)
        ).filter(
            Transaction.user_id == user_id,
            Transaction.status == 'completed'
        ).scalar()
        return to_money(total)

    def balance_matches_ledger(self, user_id: int) -> bool:
        user = self.store.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return to_money(user.balance) == self.ledger_total(user_id)
