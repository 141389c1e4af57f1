import logging
import random
from typing import Collection, Optional

from bingo.errors import DrawExhausted
from bingo.models import BoardType

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 100
LETTERS = 'BINGO'
DEFAULT_MAX_NUMBER = 75


class DrawEngine:
    """Draws the next unused ball for a round."""

    def __init__(self, rng: Optional[random.Random] = None, max_attempts: int = MAX_ATTEMPTS):
        self.rng = rng or random.SystemRandom()
        self.max_attempts = max_attempts

    def draw_next(self, exclude: Collection[int], max_number: int) -> int:
        """Pick a number in [1, max_number] that is not in ``exclude``.

        Uses rejection sampling and gives up with DrawExhausted after
        ``max_attempts`` collisions rather than looping forever.
        """
        for _ in range(self.max_attempts):
            number = self.rng.randint(1, max_number)
            if number not in exclude:
                return number
        logger.warning(f"[draw-exhausted] max={max_number} called={len(exclude)} attempts={self.max_attempts}")
        raise DrawExhausted(max_number, self.max_attempts)


def max_number_for(board_type: Optional[BoardType]) -> int:
    return board_type.max_number if board_type else DEFAULT_MAX_NUMBER


def format_number(number: int, board_type: Optional[BoardType]) -> str:
    """Render a called number, e.g. ``N-42`` on 5x5 cards and ``42`` otherwise."""
    if board_type is None or not board_type.is_grid:
        return str(number)
    column_size = 10 if board_type is BoardType.BALL_50 else 15
    letter = LETTERS[min((number - 1) // column_size, len(LETTERS) - 1)]
    return f"{letter}-{number}"
