class ArenaError(Exception):
    """Base class for failures reported to API callers."""

    status_code = 400
    code = "arena_error"

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class NotFoundError(ArenaError):
    """Entity not found."""

    status_code = 404
    code = "not_found"


class ValidationError(ArenaError):
    """Invalid input."""

    status_code = 400
    code = "validation_error"


class ConflictError(ArenaError):
    """Conflicts with an existing record."""

    status_code = 409
    code = "conflict"


class DuplicateRegistrationError(ArenaError):
    """Already registered for this tournament."""

    status_code = 409
    code = "duplicate_registration"


class CapacityError(ArenaError):
    """Tournament is full."""

    status_code = 409
    code = "tournament_full"


class InsufficientBalanceError(ArenaError):
    """Insufficient balance."""

    status_code = 400
    code = "insufficient_balance"
