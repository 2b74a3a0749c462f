"""Drop Four: a two-player game of dropping discs into a grid of columns."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Union

from apersync.core import (
    PlayerID,
    StateProgram,
    Transition,
    TransitionEvent,
    decode_value,
    encode_value,
)
from apersync.server import ServerBuilder

BOARD_ROWS = 6
BOARD_COLS = 7
NEEDED_IN_A_ROW = 4

_DIRECTIONS = ((1, 0), (0, 1), (1, 1), (1, -1))


class PlayerColor(Enum):
    """The colour of a player's discs; the value is its display name."""

    BROWN = "Brown"
    TEAL = "Teal"

    def other(self) -> PlayerColor:
        """The opposing colour."""
        return PlayerColor.TEAL if self is PlayerColor.BROWN else PlayerColor.BROWN


def _empty_cells() -> list[list[Optional[PlayerColor]]]:
    return [[None] * BOARD_COLS for _ in range(BOARD_ROWS)]


@dataclass
class Board:
    """The grid of discs; row 0 is the top and row ``BOARD_ROWS - 1`` the bottom."""

    cells: list[list[Optional[PlayerColor]]] = field(default_factory=_empty_cells)

    def __getitem__(self, position: tuple[int, int]) -> Optional[PlayerColor]:
        row, col = position
        return self.cells[row][col]

    def __setitem__(self, position: tuple[int, int], color: Optional[PlayerColor]) -> None:
        row, col = position
        self.cells[row][col] = color

    def lowest_open_row(self, col: int) -> Optional[int]:
        """The lowest empty row in column ``col``, or None if the column is full."""
        if not 0 <= col < BOARD_COLS:
            raise IndexError(f"column {col} is outside the board")
        return next(
            (row for row in reversed(range(BOARD_ROWS)) if self.cells[row][col] is None),
            None,
        )

    def _in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < BOARD_ROWS and 0 <= col < BOARD_COLS

    def _count_same_from(self, row: int, col: int, row_d: int, col_d: int) -> int:
        value = self.cells[row][col]
        for i in range(1, NEEDED_IN_A_ROW):
            rr, cc = row + i * row_d, col + i * col_d
            if not self._in_bounds(rr, cc) or self.cells[rr][cc] != value:
                return i - 1
        return NEEDED_IN_A_ROW

    def _count_same_bidirectional(self, row: int, col: int, row_d: int, col_d: int) -> int:
        return (
            1
            + self._count_same_from(row, col, row_d, col_d)
            + self._count_same_from(row, col, -row_d, -col_d)
        )

    def check_winner_at(self, row: int, col: int) -> Optional[PlayerColor]:
        """The colour at ``(row, col)`` if it is part of four in a line, else None."""
        if any(
            self._count_same_bidirectional(row, col, row_d, col_d) >= NEEDED_IN_A_ROW
            for row_d, col_d in _DIRECTIONS
        ):
            return self.cells[row][col]
        return None


@dataclass(frozen=True)
class PlayerMap:
    """Which player plays which colour."""

    teal_player: PlayerID
    brown_player: PlayerID

    def id_of_color(self, color: PlayerColor) -> PlayerID:
        return self.brown_player if color is PlayerColor.BROWN else self.teal_player

    def color_of_player(self, player_id: PlayerID) -> Optional[PlayerColor]:
        if self.brown_player == player_id:
            return PlayerColor.BROWN
        if self.teal_player == player_id:
            return PlayerColor.TEAL
        return None


@dataclass
class Waiting:
    """No game in progress; at most one player is waiting for an opponent."""

    waiting_player: Optional[PlayerID] = None


@dataclass
class Playing:
    """A game in progress, or finished if ``winner`` is set."""

    next_player: PlayerColor
    board: Board
    player_map: PlayerMap
    winner: Optional[PlayerColor] = None


PlayState = Union[Waiting, Playing]

_PLAY_STATES = {cls.__name__: cls for cls in (Waiting, Playing)}


class GameTransition(Transition):
    """Base for the transitions of a :class:`DropFourGame`."""


@dataclass(frozen=True)
class Join(GameTransition):
    """Join the game, or wait for an opponent."""


@dataclass(frozen=True)
class DropDisc(GameTransition):
    """Drop a disc into ``column``."""

    column: int


@dataclass(frozen=True)
class ResetGame(GameTransition):
    """Start a new game once the current one has a winner."""


@dataclass
class DropFourGame(StateProgram):
    """The shared state of a Drop Four game."""

    state: PlayState = field(default_factory=Waiting)
    transition_type = TransitionEvent[GameTransition]

    def apply(self, event: TransitionEvent) -> None:
        transition = event.transition
        if isinstance(transition, Join):
            self._join(event.player)
        elif isinstance(transition, DropDisc):
            self._drop(event.player, transition.column)
        elif isinstance(transition, ResetGame):
            self._reset()
        else:
            raise TypeError(f"DropFourGame cannot apply {type(transition).__name__}")

    def _join(self, player: Optional[PlayerID]) -> None:
        state = self.state
        if not isinstance(state, Waiting):
            return
        if state.waiting_player is None:
            self.state = Waiting(player)
            return
        if player is None:
            raise ValueError("a join that starts a game must come from a player")
        self.state = Playing(
            next_player=PlayerColor.TEAL,
            board=Board(),
            player_map=PlayerMap(teal_player=state.waiting_player, brown_player=player),
        )

    def _drop(self, player: Optional[PlayerID], column: int) -> None:
        state = self.state
        if not isinstance(state, Playing) or state.winner is not None:
            return
        if player is None:
            raise ValueError("a disc must be dropped by a player")
        if state.player_map.id_of_color(state.next_player) != player:
            return
        row = state.board.lowest_open_row(column)
        if row is None:
            return
        state.board[row, column] = state.next_player
        state.winner = state.board.check_winner_at(row, column)
        state.next_player = state.next_player.other()

    def _reset(self) -> None:
        state = self.state
        if isinstance(state, Playing) and state.winner is not None:
            self.state = Playing(
                next_player=state.winner.other(),
                board=Board(),
                player_map=state.player_map,
            )

    def to_wire(self) -> Any:
        return {type(self.state).__name__: encode_value(self.state)}

    @classmethod
    def from_wire(cls, data: Any) -> DropFourGame:
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(f"malformed game state: {data!r}")
        ((name, payload),) = data.items()
        try:
            state_type = _PLAY_STATES[name]
        except KeyError:
            raise ValueError(f"unknown play state {name!r}") from None
        return cls(decode_value(payload, state_type))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve a game of Drop Four."""
    parser = argparse.ArgumentParser(description="Serve a game of Drop Four.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)
    ServerBuilder(DropFourGame()).serve_on(args.host, args.port)
    return 0