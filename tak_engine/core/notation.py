"""Portable Tak Notation (PTN) for moves and games, TPS for positions.

Moves::

    a1   Sc3   Cd4          placements (F prefix accepted, never written)
    a1>  3c3+12  2b2<*      spreads: [count]<square><dir>[drops][*]

Positions (TPS), rows from the top rank down::

    x3/x,1,2S/12C,x2 2 4
"""

import re
from typing import Dict, List, Optional

from tak_engine.core.board import GameState
from tak_engine.core.errors import MalformedNotation
from tak_engine.core.types import (
    RESERVES_BY_SIZE,
    Direction,
    Draw,
    Move,
    Piece,
    PieceKind,
    Place,
    Player,
    Reserve,
    Spread,
    Square,
    Win,
    WinKind,
)

FILES = "abcdefgh"

_PLACE_RE = re.compile(r"^([FSC]?)([a-h])([1-8])$")
_SPREAD_RE = re.compile(r"^([1-8]?)([a-h])([1-8])([-+<>])([1-8]*)(\*?)$")
_TAG_RE = re.compile(r'^\[(\w+)\s+"([^"]*)"\]$')
_COMMENT_RE = re.compile(r"\{[^}]*\}")

RESULT_TOKENS = {
    "R-0": Win(Player.WHITE, WinKind.ROAD),
    "0-R": Win(Player.BLACK, WinKind.ROAD),
    "F-0": Win(Player.WHITE, WinKind.FLAT),
    "0-F": Win(Player.BLACK, WinKind.FLAT),
    "1-0": Win(Player.WHITE, WinKind.DEFAULT),
    "0-1": Win(Player.BLACK, WinKind.DEFAULT),
    "1/2-1/2": Draw(),
}


# -- squares & moves -----------------------------------------------------------

def encode_square(square: Square) -> str:
    return f"{FILES[square.file]}{square.rank + 1}"


def encode_move(move: Move) -> str:
    if isinstance(move, Place):
        prefix = "" if move.kind is PieceKind.FLAT else move.kind.value
        return prefix + encode_square(move.square)
    if isinstance(move, Spread):
        count = "" if move.carry == 1 else str(move.carry)
        drops = "" if len(move.drops) == 1 else "".join(str(d) for d in move.drops)
        star = "*" if move.flatten else ""
        return f"{count}{encode_square(move.origin)}{move.direction.value}{drops}{star}"
    raise TypeError(f"Not a move: {move!r}")


def decode_move(text: str, size: Optional[int] = None) -> Move:
    """Parse one PTN move. Legality is not checked here."""
    token = text.strip().rstrip("'!?\"")
    match = _PLACE_RE.match(token)
    if match:
        kind = PieceKind(match.group(1)) if match.group(1) else PieceKind.FLAT
        square = _square(match.group(2), match.group(3), text, size)
        return Place(square, kind)

    match = _SPREAD_RE.match(token)
    if not match:
        raise MalformedNotation(text)
    count_str, file_ch, rank_ch, dir_ch, drops_str, star = match.groups()
    count = int(count_str) if count_str else 1
    drops = tuple(int(c) for c in drops_str) if drops_str else (count,)
    if sum(drops) != count:
        raise MalformedNotation(text, f"drops {drops_str} do not add up to {count}")
    if size is not None and count > size:
        raise MalformedNotation(text, f"cannot carry {count} on a {size}x{size} board")
    square = _square(file_ch, rank_ch, text, size)
    return Spread(square, Direction(dir_ch), drops, flatten=bool(star))


def _square(file_ch: str, rank_ch: str, text: str, size: Optional[int]) -> Square:
    square = Square(FILES.index(file_ch), int(rank_ch) - 1)
    if size is not None and not square.on_board(size):
        raise MalformedNotation(text, f"square outside a {size}x{size} board")
    return square


# -- positions ---------------------------------------------------------------

def encode_tps(state: GameState) -> str:
    size = state.size
    rows = []
    for rank in range(size - 1, -1, -1):
        cells: List[str] = []
        empty = 0
        for file in range(size):
            stack = state.stack(Square(file, rank))
            if not stack:
                empty += 1
                continue
            if empty:
                cells.append("x" if empty == 1 else f"x{empty}")
                empty = 0
            top = stack[-1].kind
            cells.append("".join(p.owner.digit for p in stack) + ("" if top is PieceKind.FLAT else top.value))
        if empty:
            cells.append("x" if empty == 1 else f"x{empty}")
        rows.append(",".join(cells))
    return f"{'/'.join(rows)} {state.side_to_move.digit} {state.ply // 2 + 1}"


def _piece_set(size: int, stones: Optional[int], capstones: Optional[int]) -> Reserve:
    standard = Reserve.for_size(size)
    return Reserve(standard.stones if stones is None else stones,
                   standard.capstones if capstones is None else capstones)


def decode_tps(text: str, komi: float = 0.0, stones: Optional[int] = None,
               capstones: Optional[int] = None) -> GameState:
    """Build a GameState from TPS; reserves are what the pieces on board leave over.

    ``stones``/``capstones`` replace the standard piece counts for the board size.
    """
    parts = text.split()
    if len(parts) != 3 or parts[1] not in ("1", "2") or not parts[2].isdigit() or parts[2] == "0":
        raise MalformedNotation(text)
    rows = parts[0].split("/")
    size = len(rows)
    if size not in RESERVES_BY_SIZE:
        raise MalformedNotation(text, f"unsupported board size {size}")

    board: List[tuple] = [()] * (size * size)
    for row_number, row in enumerate(rows):
        rank = size - 1 - row_number
        file = 0
        for cell in row.split(","):
            if re.fullmatch(r"x[1-8]?", cell):
                file += int(cell[1:] or 1)
                continue
            match = re.fullmatch(r"([12]+)([SC]?)", cell)
            if not match or file >= size:
                raise MalformedNotation(text, f"bad cell {cell!r}")
            owners = [Player.WHITE if c == "1" else Player.BLACK for c in match.group(1)]
            kind = PieceKind(match.group(2)) if match.group(2) else PieceKind.FLAT
            stack = [Piece(o, PieceKind.FLAT) for o in owners[:-1]]
            stack.append(Piece(owners[-1], kind))
            board[Square(file, rank).index(size)] = tuple(stack)
            file += 1
        if file != size:
            raise MalformedNotation(text, f"row {row!r} does not have {size} squares")

    reserves = []
    full = _piece_set(size, stones, capstones)
    for player in Player:
        pieces = [p for stack in board for p in stack if p.owner is player]
        caps_on_board = sum(1 for p in pieces if p.kind is PieceKind.CAPSTONE)
        flats_on_board = len(pieces) - caps_on_board
        if flats_on_board > full.stones or caps_on_board > full.capstones:
            raise MalformedNotation(text, f"too many pieces for {player.name.lower()}")
        reserves.append(Reserve(full.stones - flats_on_board, full.capstones - caps_on_board))

    ply = (int(parts[2]) - 1) * 2 + (0 if parts[1] == "1" else 1)
    return GameState(size, tuple(board), (reserves[0], reserves[1]), ply, komi)


# -- games -------------------------------------------------------------------

def result_token(state: GameState) -> Optional[str]:
    for token, status in RESULT_TOKENS.items():
        if state.status == status:
            return token
    return None


def _format_komi(komi: float) -> str:
    return str(int(komi)) if komi == int(komi) else str(komi)


def encode_game(state: GameState) -> str:
    """PTN for the whole game leading to ``state``."""
    root = state
    while root.previous is not None:
        root = root.previous
    moves = state.history[len(root.history):]

    lines = [f'[Size "{state.size}"]', f'[Komi "{_format_komi(state.komi)}"]']
    pieces = root.piece_totals
    if pieces != Reserve.for_size(root.size):
        lines.append(f'[Flats "{pieces.stones}"]')
        lines.append(f'[Caps "{pieces.capstones}"]')
    if root.ply != 0 or any(root.board):
        lines.append(f'[TPS "{encode_tps(root)}"]')

    tokens = [encode_move(m) for m in moves]
    if root.ply % 2 == 1:
        tokens.insert(0, "--")
    number = root.ply // 2 + 1
    turns = []
    for i in range(0, len(tokens), 2):
        turns.append(f"{number}. " + " ".join(tokens[i:i + 2]))
        number += 1
    result = result_token(state)
    if result:
        if turns:
            turns[-1] += f" {result}"
        else:
            turns.append(result)
    return "\n".join(lines + turns) + "\n"


def _count_tag(tags: Dict[str, str], name: str) -> Optional[int]:
    value = tags.get(name)
    if value is None:
        return None
    if not value.isdigit():
        raise MalformedNotation(value, f"bad {name} tag")
    return int(value)


def decode_game(text: str) -> GameState:
    """Parse PTN and replay its moves; illegal moves raise IllegalMove."""
    tags: Dict[str, str] = {}
    move_tokens: List[str] = []
    for raw in _COMMENT_RE.sub(" ", text).splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith("["):
            match = _TAG_RE.match(line)
            if not match:
                raise MalformedNotation(line, "bad tag")
            tags[match.group(1)] = match.group(2)
            continue
        for token in line.split():
            if re.fullmatch(r"\d+\.", token) or token in ("--", "*") or token in RESULT_TOKENS:
                continue
            move_tokens.append(token)

    try:
        komi = float(tags.get("Komi", "0"))
    except ValueError:
        raise MalformedNotation(tags["Komi"], "bad komi")
    stones, capstones = _count_tag(tags, "Flats"), _count_tag(tags, "Caps")
    if "TPS" in tags:
        state = decode_tps(tags["TPS"], komi, stones, capstones)
    else:
        size_tag = tags.get("Size")
        if size_tag is None or not size_tag.isdigit() or int(size_tag) not in RESERVES_BY_SIZE:
            raise MalformedNotation(size_tag or "", "missing or unsupported Size tag")
        size = int(size_tag)
        try:
            state = GameState.new(size, komi, _piece_set(size, stones, capstones))
        except ValueError as e:
            raise MalformedNotation(text, str(e))

    for token in [decode_move(t, state.size) for t in move_tokens]:
        state = state.apply(token)
    return state
