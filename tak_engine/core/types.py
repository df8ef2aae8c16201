"""Basic value types shared by the rules, notation and search modules."""

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Tuple, Union

MIN_SIZE = 3
MAX_SIZE = 8

# (stones, capstones) per player for each board size
RESERVES_BY_SIZE = {
    3: (10, 0),
    4: (15, 0),
    5: (21, 1),
    6: (30, 1),
    7: (40, 2),
    8: (50, 2),
}


class Player(Enum):
    WHITE = 0
    BLACK = 1

    @property
    def opponent(self) -> "Player":
        return Player.BLACK if self is Player.WHITE else Player.WHITE

    @property
    def digit(self) -> str:
        """TPS digit: '1' for White, '2' for Black."""
        return "1" if self is Player.WHITE else "2"


class PieceKind(Enum):
    FLAT = "F"
    WALL = "S"
    CAPSTONE = "C"

    @property
    def is_road(self) -> bool:
        return self is not PieceKind.WALL


class Piece(NamedTuple):
    owner: Player
    kind: PieceKind


class Direction(Enum):
    UP = "+"
    DOWN = "-"
    LEFT = "<"
    RIGHT = ">"

    @property
    def delta(self) -> Tuple[int, int]:
        return _DELTAS[self]


_DELTAS = {
    Direction.UP: (0, 1),
    Direction.DOWN: (0, -1),
    Direction.LEFT: (-1, 0),
    Direction.RIGHT: (1, 0),
}

# Canonical generation order
DIRECTIONS = (Direction.UP, Direction.DOWN, Direction.LEFT, Direction.RIGHT)


class Square(NamedTuple):
    file: int
    rank: int

    def on_board(self, size: int) -> bool:
        return 0 <= self.file < size and 0 <= self.rank < size

    def index(self, size: int) -> int:
        return self.rank * size + self.file

    def step(self, direction: Direction, count: int = 1) -> "Square":
        dx, dy = direction.delta
        return Square(self.file + dx * count, self.rank + dy * count)

    @staticmethod
    def from_index(index: int, size: int) -> "Square":
        return Square(index % size, index // size)


@dataclass(frozen=True)
class Reserve:
    stones: int
    capstones: int

    @property
    def is_empty(self) -> bool:
        return self.stones == 0 and self.capstones == 0

    def has(self, kind: PieceKind) -> bool:
        if kind is PieceKind.CAPSTONE:
            return self.capstones > 0
        return self.stones > 0

    def take(self, kind: PieceKind) -> "Reserve":
        if kind is PieceKind.CAPSTONE:
            return Reserve(self.stones, self.capstones - 1)
        return Reserve(self.stones - 1, self.capstones)

    @staticmethod
    def for_size(size: int) -> "Reserve":
        stones, capstones = RESERVES_BY_SIZE[size]
        return Reserve(stones, capstones)


@dataclass(frozen=True)
class Place:
    square: Square
    kind: PieceKind = PieceKind.FLAT


@dataclass(frozen=True)
class Spread:
    origin: Square
    direction: Direction
    drops: Tuple[int, ...]
    # Informational only; a spread is identified by origin, direction and drops.
    flatten: bool = field(default=False, compare=False)

    @property
    def carry(self) -> int:
        return sum(self.drops)

    def path(self):
        """Squares receiving drops, in drop order."""
        return [self.origin.step(self.direction, i + 1) for i in range(len(self.drops))]


Move = Union[Place, Spread]


class WinKind(Enum):
    ROAD = "road"
    FLAT = "flat"
    DEFAULT = "default"


@dataclass(frozen=True)
class Ongoing:
    is_terminal = False


@dataclass(frozen=True)
class Win:
    player: Player
    kind: WinKind
    is_terminal = True


@dataclass(frozen=True)
class Draw:
    is_terminal = True


Status = Union[Ongoing, Win, Draw]

ONGOING = Ongoing()
DRAW = Draw()
