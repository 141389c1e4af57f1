import itertools

import pytest

from bingo.services.games.patterns import PatternEvaluator

# row-major 5x5 card with distinct numbers; cell i holds i + 1
GRID = list(range(1, 26))


def marks(*indexes):
    return {GRID[i] for i in indexes}


@pytest.fixture()
def evaluator():
    return PatternEvaluator()


@pytest.mark.parametrize('board_type', ['75ball', '50ball'])
def test_top_row_wins(evaluator, board_type):
    assert evaluator.is_winner(board_type, GRID, marks(0, 1, 2, 3, 4))
    assert evaluator.match(board_type, GRID, marks(0, 1, 2, 3, 4)) == 'row'


@pytest.mark.parametrize('missing', range(5))
def test_four_of_top_row_does_not_win(evaluator, missing):
    cells = [i for i in range(5) if i != missing]
    assert not evaluator.is_winner('75ball', GRID, marks(*cells))


def test_free_cell_counts_as_marked(evaluator):
    assert evaluator.match('75ball', GRID, marks(10, 11, 13, 14)) == 'row'
    assert evaluator.match('75ball', GRID, marks(2, 7, 17, 22)) == 'column'
    assert evaluator.match('75ball', GRID, marks(0, 6, 18, 24)) == 'diagonal'
    assert evaluator.match('75ball', GRID, marks(4, 8, 16, 20)) == 'diagonal'


def test_column_and_corners(evaluator):
    assert evaluator.match('75ball', GRID, marks(0, 5, 10, 15, 20)) == 'column'
    assert evaluator.match('75ball', GRID, marks(0, 4, 20, 24)) == 'four_corners'
    assert not evaluator.is_winner('75ball', GRID, marks(0, 4, 20))


def test_scattered_marks_do_not_win(evaluator):
    assert not evaluator.is_winner('75ball', GRID, marks(0, 7, 14, 16, 23))
    assert not evaluator.is_winner('75ball', GRID, set())


def test_pattern_needs_the_x_cells(evaluator):
    assert evaluator.match('pattern', GRID, marks(0, 6, 18, 24)) == 'x'
    # a full row is not enough on a pattern board
    assert not evaluator.is_winner('pattern', GRID, marks(0, 1, 2, 3, 4))
    assert not evaluator.is_winner('pattern', GRID, marks(0, 6, 18))


def test_coverall_needs_every_number(evaluator):
    assert not evaluator.is_winner('coverall', GRID, marks(*[i for i in range(25) if i != 12]))
    assert not evaluator.is_winner('coverall', GRID, marks(*range(24)))
    assert evaluator.match('coverall', GRID, set(GRID)) == 'coverall'


def test_ninety_ball_counts_marks_on_the_card(evaluator):
    card = list(range(10, 25))
    assert not evaluator.is_winner('90ball', card, set(card[:4]))
    assert evaluator.match('90ball', card, set(card[:5])) == 'one_line'
    assert evaluator.match('90ball', card, set(card[:10])) == 'two_lines'
    assert evaluator.match('90ball', card, set(card)) == 'full_house'
    # numbers that are not on the card do not count
    assert not evaluator.is_winner('90ball', card, set(card[:4]) | {80, 81, 82})


def test_thirty_ball_is_full_house_only(evaluator):
    card = [2, 5, 8, 11, 14, 17, 20, 23, 26]
    for subset in itertools.combinations(card, 8):
        assert not evaluator.is_winner('30ball', card, set(subset))
    assert evaluator.match('30ball', card, set(card)) == 'full_house'


def test_unknown_board_type_never_wins(evaluator):
    assert not evaluator.is_winner('bogus', GRID, set(GRID))
