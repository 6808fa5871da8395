"""
Custom exception classes

All ledger errors live here so the API layer can map them in one place.

Four kinds, each recoverable at the call site:
- ValidationError: malformed input (non-positive amount, bad table reference)
- StateError: operation illegal in the current game/seat state
- NotFoundError: passcode or identifier does not resolve
- ConflictError: an atomic conditional write lost a race
"""


class LedgerException(Exception):
    """Base class for all ledger errors"""
    pass


class ValidationError(LedgerException):
    pass


class StateError(LedgerException):
    pass


class NotFoundError(LedgerException):
    pass


class ConflictError(LedgerException):
    pass


# ============ Validation errors ============

class InvalidAmountError(ValidationError):
    """Amount is not a valid whole number for this operation"""
    def __init__(self, amount, reason="must be a positive integer"):
        self.amount = amount
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class InvalidTableReference(ValidationError):
    """Game creation referenced a table that does not exist"""
    def __init__(self, table_id):
        self.table_id = table_id
        super().__init__(f"Table {table_id} does not exist")


# ============ Lookup errors ============

class TableNotFound(NotFoundError):
    def __init__(self, table_id):
        self.table_id = table_id
        super().__init__(f"Table {table_id} not found")


class GameNotFound(NotFoundError):
    def __init__(self, game_id):
        self.game_id = game_id
        super().__init__(f"Game {game_id} not found")


class PlayerNotFound(NotFoundError):
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class PasscodeNotFound(NotFoundError):
    """No live game uses this passcode"""
    def __init__(self, passcode):
        self.passcode = passcode
        super().__init__(f"No live game with passcode {passcode}")


# ============ State errors ============

class InvalidStateTransition(StateError):
    pass


class GameAlreadyEnded(StateError):
    def __init__(self, game_id):
        self.game_id = game_id
        super().__init__(f"Game {game_id} has already ended")


class PlayerAlreadyCashedOut(StateError):
    """Seat is settled; rebuys and second cashouts are rejected"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} has already cashed out")


class PlayerNotCashedOut(StateError):
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} has not cashed out yet")


class LedgerInvariantViolation(StateError):
    """A seat or pot ended up in a state the ledger never allows"""
    pass


# ============ Conflict errors ============

class PasscodeSpaceExhausted(ConflictError):
    """Could not find a passcode unused by live games"""
    def __init__(self, attempts):
        self.attempts = attempts
        super().__init__(f"No free passcode found after {attempts} attempts")
