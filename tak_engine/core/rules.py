"""Move legality: validation of single moves and canonical move generation.

Generation order is fixed so that search and tests are reproducible:

1. placements, empty squares in index order (a1, b1, ... then rank 2),
   each as Flat, Wall, Capstone where allowed;
2. spreads, for each stack topped by the mover in index order:
   carry 1..min(height, size), direction UP, DOWN, LEFT, RIGHT,
   distance 1..carry, drop partitions in lexicographic order.
"""

from functools import lru_cache
from typing import List, Tuple

from tak_engine.core.errors import IllegalMove, IllegalMoveReason
from tak_engine.core.types import (
    DIRECTIONS,
    Move,
    PieceKind,
    Place,
    Player,
    Spread,
    Square,
)

OPENING_PLIES = 2


@lru_cache(maxsize=None)
def partitions(total: int, parts: int) -> Tuple[Tuple[int, ...], ...]:
    """All ordered splits of ``total`` into ``parts`` positive counts, lexicographic."""
    if parts <= 0 or total < parts:
        return ()
    if parts == 1:
        return ((total,),)
    result = []
    for first in range(1, total - parts + 2):
        for rest in partitions(total - first, parts - 1):
            result.append((first,) + rest)
    return tuple(result)


def placing_player(state) -> Player:
    """Owner of a piece placed this ply (swapped during the opening)."""
    if state.ply < OPENING_PLIES:
        return state.side_to_move.opponent
    return state.side_to_move


def validate(state, move: Move) -> bool:
    """Raise IllegalMove unless ``move`` is legal. Returns True when a spread flattens a wall."""
    if state.status.is_terminal:
        raise IllegalMove(IllegalMoveReason.GAME_OVER, move)
    if isinstance(move, Place):
        _validate_place(state, move)
        return False
    if isinstance(move, Spread):
        return _validate_spread(state, move)
    raise TypeError(f"Not a move: {move!r}")


def is_legal(state, move: Move) -> bool:
    try:
        validate(state, move)
    except IllegalMove:
        return False
    return True


def _validate_place(state, move: Place) -> None:
    size = state.size
    if not move.square.on_board(size):
        raise IllegalMove(IllegalMoveReason.OFF_BOARD, move)
    if state.stack(move.square):
        raise IllegalMove(IllegalMoveReason.OCCUPIED_TARGET, move)
    if state.ply < OPENING_PLIES and move.kind is not PieceKind.FLAT:
        raise IllegalMove(IllegalMoveReason.OPENING_RULE, move,
                          "only flats may be placed on the first two plies")
    if not state.reserve(placing_player(state)).has(move.kind):
        raise IllegalMove(IllegalMoveReason.RESERVE_EXHAUSTED, move)


def _validate_spread(state, move: Spread) -> bool:
    size = state.size
    if state.ply < OPENING_PLIES:
        raise IllegalMove(IllegalMoveReason.OPENING_RULE, move,
                          "stacks cannot move on the first two plies")
    if not move.origin.on_board(size):
        raise IllegalMove(IllegalMoveReason.OFF_BOARD, move)
    stack = state.stack(move.origin)
    if not stack:
        raise IllegalMove(IllegalMoveReason.EMPTY_ORIGIN, move)
    top = stack[-1]
    if top.owner is not state.side_to_move:
        raise IllegalMove(IllegalMoveReason.NOT_OWNER, move)
    if not move.drops or any(d < 1 for d in move.drops):
        raise IllegalMove(IllegalMoveReason.INVALID_CARRY, move, "drops must be positive")
    if move.carry > min(size, len(stack)):
        raise IllegalMove(IllegalMoveReason.INVALID_CARRY, move,
                          f"cannot carry {move.carry} from a stack of {len(stack)}")

    last = len(move.drops) - 1
    for i, square in enumerate(move.path()):
        if not square.on_board(size):
            raise IllegalMove(IllegalMoveReason.OFF_BOARD, move)
        target = state.top(square)
        if target is None or target.kind is PieceKind.FLAT:
            continue
        if (target.kind is PieceKind.WALL and i == last
                and move.drops[-1] == 1 and top.kind is PieceKind.CAPSTONE):
            return True
        raise IllegalMove(IllegalMoveReason.BLOCKED, move)
    return False


def legal_moves(state) -> List[Move]:
    if state.status.is_terminal:
        return []
    size = state.size
    opening = state.ply < OPENING_PLIES
    reserve = state.reserve(placing_player(state))
    moves: List[Move] = []

    for index, stack in enumerate(state.board):
        if stack:
            continue
        square = Square.from_index(index, size)
        if reserve.stones > 0:
            moves.append(Place(square, PieceKind.FLAT))
            if not opening:
                moves.append(Place(square, PieceKind.WALL))
        if reserve.capstones > 0 and not opening:
            moves.append(Place(square, PieceKind.CAPSTONE))

    if opening:
        return moves

    mover = state.side_to_move
    for index, stack in enumerate(state.board):
        if not stack or stack[-1].owner is not mover:
            continue
        origin = Square.from_index(index, size)
        is_capstone = stack[-1].kind is PieceKind.CAPSTONE
        for carry in range(1, min(len(stack), size) + 1):
            for direction in DIRECTIONS:
                for distance in range(1, carry + 1):
                    target = origin.step(direction, distance)
                    if not target.on_board(size):
                        break
                    top = state.top(target)
                    blocking = top is not None and top.kind is not PieceKind.FLAT
                    for drops in partitions(carry, distance):
                        if not blocking:
                            moves.append(Spread(origin, direction, drops))
                        elif top.kind is PieceKind.WALL and is_capstone and drops[-1] == 1:
                            moves.append(Spread(origin, direction, drops, flatten=True))
                    if blocking:
                        break
    return moves


def has_legal_move(state) -> bool:
    """Cheap existence check used by the default-win rule."""
    size = state.size
    reserve = state.reserve(placing_player(state))
    if reserve.stones > 0 or (reserve.capstones > 0 and state.ply >= OPENING_PLIES):
        if any(not stack for stack in state.board):
            return True
    if state.ply < OPENING_PLIES:
        return False
    mover = state.side_to_move
    for index, stack in enumerate(state.board):
        if not stack or stack[-1].owner is not mover:
            continue
        origin = Square.from_index(index, size)
        for direction in DIRECTIONS:
            target = origin.step(direction)
            if not target.on_board(size):
                continue
            top = state.top(target)
            if top is None or top.kind is PieceKind.FLAT:
                return True
            if top.kind is PieceKind.WALL and stack[-1].kind is PieceKind.CAPSTONE:
                return True
    return False
