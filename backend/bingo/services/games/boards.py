import logging
import random
from typing import Optional, Tuple

from bingo.models import BoardType

logger = logging.getLogger(__name__)

GRID_SIZE = 5
FREE_CELL = 12

COLUMN_RANGES = {
    BoardType.BALL_75: [(1, 15), (16, 30), (31, 45), (46, 60), (61, 75)],
    BoardType.BALL_50: [(1, 10), (11, 20), (21, 30), (31, 40), (41, 50)],
}


class BoardGenerator:
    """Builds the fixed number card for a (board type, board number) pair.

    Cards are derived from a seeded RNG, so asking twice for the same board
    gives the same numbers. The seed lets a deployment reshuffle every card
    without changing board numbers.
    """

    def __init__(self, seed: Optional[str] = None):
        self.seed = seed or ''

    def generate(self, board_type, board_number: int) -> Tuple[int, ...]:
        parsed = BoardType.parse(board_type)
        if parsed is None:
            logger.warning(f"[board-fallback] unknown board type {board_type!r}, using 75ball")
            parsed = BoardType.BALL_75
        rng = random.Random(f"{self.seed}:{parsed.value}:{int(board_number)}")

        if parsed is BoardType.BALL_90:
            return tuple(sorted(rng.sample(range(1, 91), 15)))
        if parsed is BoardType.BALL_30:
            return tuple(sorted(rng.sample(range(1, 31), 9)))
        if parsed is BoardType.BALL_50:
            return _grid(rng, COLUMN_RANGES[BoardType.BALL_50])
        # 75ball, pattern and coverall share the 75-ball card
        return _grid(rng, COLUMN_RANGES[BoardType.BALL_75])


def _grid(rng: random.Random, ranges) -> Tuple[int, ...]:
    columns = [rng.sample(range(low, high + 1), GRID_SIZE) for low, high in ranges]
    # row-major: index = row * 5 + col
    return tuple(columns[col][row] for row in range(GRID_SIZE) for col in range(GRID_SIZE))
