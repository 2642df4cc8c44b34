"""Bingo engine: board dealing, tile toggling and line detection.

The board is an implicit 4x4 grid in row-major order. Completed lines are
append-only; once any line completes the board has bingo for good, even
if tiles are later unmarked. The LPC reward is gated by the board's
reward_issued latch, so it fires at most once per board.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from pydantic import BaseModel

from party.logic.enums import Diagonal
from party.logic.exceptions import InsufficientTilesError, TileIndexError
from party.logic.state import BOARD_SIZE, BingoBoard

if TYPE_CHECKING:
    from collections.abc import Sequence

    from party.logic.state import BingoTile

GRID_WIDTH = 4

ROW_LINES: dict[int, tuple[int, ...]] = {
    r: tuple(range(r * GRID_WIDTH, r * GRID_WIDTH + GRID_WIDTH)) for r in range(GRID_WIDTH)
}
COL_LINES: dict[int, tuple[int, ...]] = {c: tuple(c + GRID_WIDTH * i for i in range(GRID_WIDTH)) for c in range(GRID_WIDTH)}
DIAGONAL_LINES: dict[Diagonal, tuple[int, ...]] = {
    Diagonal.MAIN: (0, 5, 10, 15),
    Diagonal.ANTI: (3, 6, 9, 12),
}


class WinEvaluation(BaseModel, frozen=True):
    """Outcome of re-checking a board after a toggle."""

    board: BingoBoard
    new_rows: tuple[int, ...] = ()
    new_cols: tuple[int, ...] = ()
    new_diagonals: tuple[Diagonal, ...] = ()
    # hasBingo went from false to true on this evaluation
    first_bingo: bool = False

    @property
    def has_new_lines(self) -> bool:
        return bool(self.new_rows or self.new_cols or self.new_diagonals)


def generate_board(pool: Sequence[BingoTile], rng: random.Random | None = None) -> BingoBoard:
    """Deal 16 distinct tiles from pool by shuffle-and-take."""
    unique = list({tile.id: tile for tile in pool}.values())
    if len(unique) < BOARD_SIZE:
        raise InsufficientTilesError(f"bingo needs at least {BOARD_SIZE} distinct tiles, pool has {len(unique)}")
    shuffler = rng or random.Random()  # noqa: S311
    shuffler.shuffle(unique)
    return BingoBoard(tiles=tuple(unique[:BOARD_SIZE]))


def toggle_tile(board: BingoBoard, index: int) -> BingoBoard:
    if not 0 <= index < BOARD_SIZE:
        raise TileIndexError(f"tile index must be between 0 and {BOARD_SIZE - 1}, got {index}")
    marked = list(board.marked)
    marked[index] = not marked[index]
    return board.model_copy(update={"marked": tuple(marked)})


def _complete(board: BingoBoard, indices: tuple[int, ...]) -> bool:
    return all(board.marked[i] for i in indices)


def evaluate_wins(board: BingoBoard) -> WinEvaluation:
    """Append every newly completed line to the board's completion sets."""
    new_rows = tuple(r for r, line in ROW_LINES.items() if r not in board.completed_rows and _complete(board, line))
    new_cols = tuple(c for c, line in COL_LINES.items() if c not in board.completed_cols and _complete(board, line))
    new_diagonals = tuple(
        d for d, line in DIAGONAL_LINES.items() if d not in board.completed_diagonals and _complete(board, line)
    )
    if not (new_rows or new_cols or new_diagonals):
        return WinEvaluation(board=board)

    updated = board.model_copy(
        update={
            "completed_rows": board.completed_rows + new_rows,
            "completed_cols": board.completed_cols + new_cols,
            "completed_diagonals": board.completed_diagonals + new_diagonals,
        },
    )
    return WinEvaluation(
        board=updated,
        new_rows=new_rows,
        new_cols=new_cols,
        new_diagonals=new_diagonals,
        first_bingo=not board.has_bingo and updated.has_bingo,
    )


def claim_reward(board: BingoBoard) -> tuple[BingoBoard, bool]:
    """Latch reward_issued on a winning board. Returns (board, reward_due)."""
    if not board.has_bingo or board.reward_issued:
        return board, False
    return board.model_copy(update={"reward_issued": True}), True


def mark_tile(board: BingoBoard, index: int) -> tuple[WinEvaluation, bool]:
    """Toggle a tile, re-evaluate lines and latch the reward if one is due.

    Returns the evaluation (whose board already carries the latch) and
    whether the caller should credit the reward now.
    """
    evaluation = evaluate_wins(toggle_tile(board, index))
    latched, reward_due = claim_reward(evaluation.board)
    return evaluation.model_copy(update={"board": latched}), reward_due
