"""Immutable game state: stacks, reserves, ply and move history."""

from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import List, Optional, Tuple

from tak_engine.core import rules, win
from tak_engine.core.errors import IllegalMove, IllegalMoveReason
from tak_engine.core.types import (
    RESERVES_BY_SIZE,
    Move,
    Piece,
    PieceKind,
    Place,
    Player,
    Reserve,
    Spread,
    Square,
    Status,
)

Stack = Tuple[Piece, ...]


@dataclass(frozen=True)
class GameState:
    size: int
    board: Tuple[Stack, ...]
    reserves: Tuple[Reserve, Reserve]
    ply: int = 0
    komi: float = 0.0
    history: Tuple[Move, ...] = ()
    previous: Optional["GameState"] = field(default=None, compare=False, repr=False)
    status: Status = field(init=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "status", win.status(self))

    @classmethod
    def new(cls, size: int = 5, komi: float = 0.0,
            reserve: Optional[Reserve] = None) -> "GameState":
        """Empty board with full reserves.

        ``reserve`` overrides the per-size piece counts for both players.
        """
        if size not in RESERVES_BY_SIZE:
            raise ValueError(f"Unsupported board size: {size}")
        if komi < 0 or (komi * 2) != int(komi * 2):
            raise ValueError(f"Komi must be a non-negative multiple of 0.5, got {komi}")
        if reserve is None:
            reserve = Reserve.for_size(size)
        elif reserve.stones < 1 or reserve.capstones < 0:
            raise ValueError(f"Invalid reserve: {reserve.stones} stones, {reserve.capstones} capstones")
        return cls(size, ((),) * (size * size), (reserve, reserve), 0, komi)

    # -- accessors ---------------------------------------------------------

    @property
    def side_to_move(self) -> Player:
        return Player.WHITE if self.ply % 2 == 0 else Player.BLACK

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_full(self) -> bool:
        return all(self.board)

    def stack(self, square: Square) -> Stack:
        return self.board[square.index(self.size)]

    def top(self, square: Square) -> Optional[Piece]:
        stack = self.board[square.index(self.size)]
        return stack[-1] if stack else None

    def reserve(self, player: Player) -> Reserve:
        return self.reserves[player.value]

    @cached_property
    def piece_totals(self) -> Reserve:
        """Pieces each player started with: what is left in reserve plus what is on the board."""
        stones = capstones = 0
        for player in Player:
            on_board = [p for stack in self.board for p in stack if p.owner is player]
            caps = sum(1 for p in on_board if p.kind is PieceKind.CAPSTONE)
            reserve = self.reserves[player.value]
            stones = max(stones, len(on_board) - caps + reserve.stones)
            capstones = max(capstones, caps + reserve.capstones)
        return Reserve(stones, capstones)

    def empty_squares(self) -> List[Square]:
        return [Square.from_index(i, self.size) for i, s in enumerate(self.board) if not s]

    def legal_moves(self) -> List[Move]:
        return rules.legal_moves(self)

    def signature(self):
        """Everything that decides future moves and evaluation; history is excluded."""
        return self.board, self.reserves, min(self.ply, rules.OPENING_PLIES), self.ply % 2

    # -- transitions -------------------------------------------------------

    def apply(self, move: Move, validate: bool = True) -> "GameState":
        """Return the state after ``move``; ``self`` is left untouched.

        Raises IllegalMove when ``validate`` is set and the move is not legal.
        Pass ``validate=False`` only for moves produced by ``legal_moves``.
        """
        if validate:
            flattens = rules.validate(self, move)
        else:
            flattens = isinstance(move, Spread) and self._lands_on_wall(move)

        board = list(self.board)
        reserves = list(self.reserves)
        if isinstance(move, Place):
            owner = rules.placing_player(self)
            board[move.square.index(self.size)] = (Piece(owner, move.kind),)
            reserves[owner.value] = reserves[owner.value].take(move.kind)
        else:
            self._spread_onto(board, move, flattens)
            if flattens != move.flatten:
                move = replace(move, flatten=flattens)

        return GameState(
            self.size,
            tuple(board),
            (reserves[0], reserves[1]),
            self.ply + 1,
            self.komi,
            self.history + (move,),
            previous=self,
        )

    def undo(self) -> "GameState":
        if self.previous is None:
            raise IllegalMove(IllegalMoveReason.NOTHING_TO_UNDO)
        return self.previous

    def _lands_on_wall(self, move: Spread) -> bool:
        last = move.origin.step(move.direction, len(move.drops))
        top = self.top(last)
        return top is not None and top.kind is PieceKind.WALL

    def _spread_onto(self, board: List[Stack], move: Spread, flattens: bool) -> None:
        size = self.size
        origin = move.origin.index(size)
        stack = board[origin]
        carried = stack[-move.carry:]
        board[origin] = stack[:-move.carry]

        offset = 0
        path = move.path()
        for i, (square, count) in enumerate(zip(path, move.drops)):
            index = square.index(size)
            target = board[index]
            if flattens and i == len(path) - 1:
                wall = target[-1]
                target = target[:-1] + (Piece(wall.owner, PieceKind.FLAT),)
            board[index] = target + carried[offset:offset + count]
            offset += count
