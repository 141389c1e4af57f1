"""Game errors.

Every rule violation raised by the game engine derives from BingoError so
the socket layer can turn it into an `error` event in one place.
"""


class BingoError(Exception):
    """Base class for all game errors."""

    def __init__(self, message: str = ''):
        self.message = message
        super().__init__(message)


class ValidationError(BingoError):
    """Malformed or out-of-range input. No state was changed."""
    pass


class InvalidState(BingoError):
    """Operation not allowed in the current round phase."""
    pass


class DrawExhausted(BingoError):
    """No unused number could be drawn for the current round."""

    def __init__(self, max_number: int, attempts: int):
        self.max_number = max_number
        self.attempts = attempts
        super().__init__('Failed to generate unique number')


class NotFound(BingoError):
    """Unknown player id."""

    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__('Player not found')
