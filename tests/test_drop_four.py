import pytest

from apersync.core import PlayerID, ReplaceState, TransitionEvent, millis_to_timestamp
from apersync.drop_four import (
    Board,
    DropDisc,
    DropFourGame,
    GameTransition,
    Join,
    PlayerColor,
    PlayerMap,
    Playing,
    ResetGame,
    Waiting,
)
from apersync.wire import decode_event, decode_update, encode_event, encode_update

TS = millis_to_timestamp(0)
P1 = PlayerID(1)
P2 = PlayerID(2)


def event(player, transition):
    return TransitionEvent(player, TS, transition)


def started_game():
    game = DropFourGame()
    game.apply(event(P1, Join()))
    game.apply(event(P2, Join()))
    return game


def disc(game, row, col):
    return game.state.board[row, col]


def test_game():
    game = DropFourGame()
    assert game.state == Waiting(None)
    game.apply(event(P1, Join()))
    assert game.state == Waiting(P1)
    game.apply(event(P2, Join()))
    assert isinstance(game.state, Playing)
    assert game.state.next_player is PlayerColor.TEAL

    moves = [
        (P1, 4, 5, 4, PlayerColor.TEAL, PlayerColor.BROWN),
        (P2, 4, 4, 4, PlayerColor.BROWN, PlayerColor.TEAL),
        (P1, 3, 5, 3, PlayerColor.TEAL, PlayerColor.BROWN),
        (P2, 5, 5, 5, PlayerColor.BROWN, PlayerColor.TEAL),
        (P1, 2, 5, 2, PlayerColor.TEAL, PlayerColor.BROWN),
        (P2, 2, 4, 2, PlayerColor.BROWN, PlayerColor.TEAL),
    ]
    for player, col, row, disc_col, color, next_player in moves:
        game.apply(event(player, DropDisc(col)))
        assert game.state.next_player is next_player
        assert disc(game, row, disc_col) is color
        assert game.state.winner is None

    game.apply(event(P1, DropDisc(1)))
    assert game.state.winner is PlayerColor.TEAL
    assert disc(game, 5, 1) is PlayerColor.TEAL

    game.apply(event(P1, ResetGame()))
    assert game.state.winner is None
    assert game.state.next_player is PlayerColor.BROWN
    assert game.state.board == Board()


def test_player_map_assigns_colours():
    game = started_game()
    assert game.state.player_map == PlayerMap(teal_player=P1, brown_player=P2)


def test_out_of_turn_drop_is_ignored():
    game = started_game()
    game.apply(event(P2, DropDisc(0)))
    assert game.state.board == Board()
    assert game.state.next_player is PlayerColor.TEAL


def test_drop_after_win_is_ignored():
    game = started_game()
    for _ in range(3):
        game.apply(event(P1, DropDisc(0)))
        game.apply(event(P2, DropDisc(1)))
    game.apply(event(P1, DropDisc(0)))
    assert game.state.winner is PlayerColor.TEAL
    game.apply(event(P2, DropDisc(3)))
    assert disc(game, 5, 3) is None


def test_full_column_is_ignored():
    game = started_game()
    players = [P1, P2]
    for i in range(6):
        game.apply(event(players[i % 2], DropDisc(6)))
    assert game.state.board.lowest_open_row(6) is None
    before = game.clone()
    game.apply(event(P1, DropDisc(6)))
    assert game == before


def test_column_outside_board_raises():
    game = started_game()
    with pytest.raises(IndexError):
        game.apply(event(P1, DropDisc(7)))


def test_second_join_without_player_raises():
    game = DropFourGame()
    game.apply(event(P1, Join()))
    with pytest.raises(ValueError):
        game.apply(event(None, Join()))


def test_join_while_playing_is_ignored():
    game = started_game()
    game.apply(event(PlayerID(3), Join()))
    assert game.state.player_map == PlayerMap(teal_player=P1, brown_player=P2)


def test_reset_without_winner_is_ignored():
    game = started_game()
    game.apply(event(P1, DropDisc(2)))
    game.apply(event(P1, ResetGame()))
    assert disc(game, 5, 2) is PlayerColor.TEAL


def test_lowest_open_row():
    board = Board()
    assert board.lowest_open_row(0) == 5
    board[5, 0] = PlayerColor.BROWN
    assert board.lowest_open_row(0) == 4


def test_diagonal_winner():
    board = Board()
    for row, col in [(5, 0), (4, 1), (3, 2), (2, 3)]:
        board[row, col] = PlayerColor.TEAL
    assert board.check_winner_at(2, 3) is PlayerColor.TEAL
    assert board.check_winner_at(4, 1) is PlayerColor.TEAL


def test_three_in_a_row_is_not_a_win():
    board = Board()
    for col in range(3):
        board[5, col] = PlayerColor.BROWN
    assert board.check_winner_at(5, 1) is None


def test_color_helpers():
    assert PlayerColor.TEAL.other() is PlayerColor.BROWN
    assert PlayerColor.BROWN.other() is PlayerColor.TEAL
    assert PlayerColor.TEAL.value == "Teal"
    pm = PlayerMap(teal_player=P1, brown_player=P2)
    assert pm.id_of_color(PlayerColor.BROWN) == P2
    assert pm.color_of_player(P1) is PlayerColor.TEAL
    assert pm.color_of_player(PlayerID(9)) is None


def test_state_wire_round_trip():
    game = started_game()
    game.apply(event(P1, DropDisc(3)))
    assert DropFourGame.from_wire(game.to_wire()) == game
    waiting = DropFourGame(Waiting(P1))
    assert DropFourGame.from_wire(waiting.to_wire()) == waiting


def test_update_round_trip_over_wire():
    game = started_game()
    game.apply(event(P1, DropDisc(3)))
    for binary in (False, True):
        data = encode_update(ReplaceState(game, TS, P2), binary)
        wrapped = decode_update(data, DropFourGame)
        assert wrapped.binary is binary
        assert wrapped.value.state == game
        assert wrapped.value.player == P2


def test_event_round_trip_over_wire():
    original = event(P1, DropDisc(3))
    decoded = decode_event(encode_event(original, False), GameTransition)
    assert decoded == original


def test_malformed_state_raises():
    with pytest.raises(ValueError):
        DropFourGame.from_wire({"Finished": {}})