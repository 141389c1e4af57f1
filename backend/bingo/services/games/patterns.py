"""Winning-pattern checks.

All checks are pure: they read a player's cached card and marked numbers
and never touch game state.

Cards for the 5x5 board types are stored row-major, so cell ``row * 5 + col``
holds the number in that row and column. Cell 12 is the free space.

90-ball cards are a flat list of 15 numbers with no row layout, so "lines"
are counted rather than located: 5 marks is one line, 10 is two lines and
15 is a full house. Any of them wins.
"""
from typing import Collection, Optional, Sequence

from bingo.models import BoardType

from .boards import FREE_CELL, GRID_SIZE

ROWS = [[row * GRID_SIZE + col for col in range(GRID_SIZE)] for row in range(GRID_SIZE)]
COLUMNS = [[row * GRID_SIZE + col for row in range(GRID_SIZE)] for col in range(GRID_SIZE)]
DIAGONALS = [
    [i * GRID_SIZE + i for i in range(GRID_SIZE)],
    [i * GRID_SIZE + (GRID_SIZE - 1 - i) for i in range(GRID_SIZE)],
]
FOUR_CORNERS = [0, 4, 20, 24]
X_PATTERN = [0, 6, 12, 18, 24]

NINETY_BALL_THRESHOLDS = [(15, 'full_house'), (10, 'two_lines'), (5, 'one_line')]


def _covered(cells, grid: Sequence[int], marked: Collection[int]) -> bool:
    return all(index == FREE_CELL or grid[index] in marked for index in cells)


def _match_grid(grid, marked) -> Optional[str]:
    for cells in ROWS:
        if _covered(cells, grid, marked):
            return 'row'
    for cells in COLUMNS:
        if _covered(cells, grid, marked):
            return 'column'
    for cells in DIAGONALS:
        if _covered(cells, grid, marked):
            return 'diagonal'
    if _covered(FOUR_CORNERS, grid, marked):
        return 'four_corners'
    if _covered(range(len(grid)), grid, marked):
        return 'full_house'
    return None


def _match_pattern(grid, marked) -> Optional[str]:
    return 'x' if _covered(X_PATTERN, grid, marked) else None


def _match_coverall(grid, marked) -> Optional[str]:
    return 'coverall' if all(number in marked for number in grid) else None


def _match_ninety(grid, marked) -> Optional[str]:
    count = len(set(grid) & set(marked))
    for threshold, name in NINETY_BALL_THRESHOLDS:
        if count >= threshold:
            return name
    return None


def _match_thirty(grid, marked) -> Optional[str]:
    return 'full_house' if all(number in marked for number in grid) else None


_MATCHERS = {
    BoardType.BALL_75: _match_grid,
    BoardType.BALL_50: _match_grid,
    BoardType.PATTERN: _match_pattern,
    BoardType.COVERALL: _match_coverall,
    BoardType.BALL_90: _match_ninety,
    BoardType.BALL_30: _match_thirty,
}


class PatternEvaluator:

    def match(self, board_type, grid: Sequence[int], marked: Collection[int]) -> Optional[str]:
        """Return the name of the first winning pattern found, or None."""
        parsed = BoardType.parse(board_type)
        if parsed is None or not grid:
            return None
        return _MATCHERS[parsed](grid, marked)

    def is_winner(self, board_type, grid: Sequence[int], marked: Collection[int]) -> bool:
        return self.match(board_type, grid, marked) is not None
