"""Terminal-state detection: roads, flat counts and the default win."""

from typing import Dict, List, Set

from tak_engine.core.rules import has_legal_move
from tak_engine.core.types import DRAW, ONGOING, Player, Status, Win, WinKind


def road_groups(state, player: Player) -> List[Set[int]]:
    """4-connected groups of squares whose top is a road piece of ``player``."""
    size = state.size
    board = state.board
    seen: Set[int] = set()
    groups: List[Set[int]] = []
    for start, stack in enumerate(board):
        if start in seen or not _is_road(stack, player):
            continue
        group = set()
        frontier = [start]
        seen.add(start)
        while frontier:
            index = frontier.pop()
            group.add(index)
            file, rank = index % size, index // size
            for nf, nr in ((file + 1, rank), (file - 1, rank), (file, rank + 1), (file, rank - 1)):
                if not (0 <= nf < size and 0 <= nr < size):
                    continue
                neighbour = nr * size + nf
                if neighbour not in seen and _is_road(board[neighbour], player):
                    seen.add(neighbour)
                    frontier.append(neighbour)
        groups.append(group)
    return groups


def _is_road(stack, player: Player) -> bool:
    return bool(stack) and stack[-1].owner is player and stack[-1].kind.is_road


def is_road(group: Set[int], size: int) -> bool:
    files = {i % size for i in group}
    ranks = {i // size for i in group}
    last = size - 1
    return (0 in files and last in files) or (0 in ranks and last in ranks)


def has_road(state, player: Player) -> bool:
    return any(is_road(group, state.size) for group in road_groups(state, player))


def flat_counts(state) -> Dict[Player, int]:
    """Road-eligible (flat or capstone) tops per player."""
    counts = {Player.WHITE: 0, Player.BLACK: 0}
    for stack in state.board:
        if stack and stack[-1].kind.is_road:
            counts[stack[-1].owner] += 1
    return counts


def flat_winner(state) -> Status:
    counts = flat_counts(state)
    white = counts[Player.WHITE]
    black = counts[Player.BLACK] + state.komi
    if white > black:
        return Win(Player.WHITE, WinKind.FLAT)
    if black > white:
        return Win(Player.BLACK, WinKind.FLAT)
    return DRAW


def status(state) -> Status:
    # The player who just moved wins a double road.
    mover = state.side_to_move.opponent
    for player in (mover, mover.opponent):
        if has_road(state, player):
            return Win(player, WinKind.ROAD)

    if state.is_full or any(state.reserve(p).is_empty for p in Player):
        return flat_winner(state)

    if not has_legal_move(state):
        return Win(state.side_to_move.opponent, WinKind.DEFAULT)
    return ONGOING
