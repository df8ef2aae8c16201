"""
Static evaluation of Tak positions.

The score is a weighted sum of white-minus-black terms, flipped for Black:

    - road potential: squared span of each colour's best road group, with a
      small penalty for every extra disjoint group;
    - flat differential (komi included), scaled up by reserve scarcity as
      the game nears a flat count;
    - mobility: placement options plus open spread directions, capped;
    - capstone centrality.

Weights live in ``CONFIG.eval``. The result is clamped below the search's
win scores so a heuristic can never look like a proven result.
"""

from typing import Optional

from tak_engine.config import CONFIG, EvalConfig
from tak_engine.core.types import DIRECTIONS, Draw, PieceKind, Player, Square, Win
from tak_engine.core.win import flat_counts, road_groups


class Evaluator:
    def __init__(self, cfg: Optional[EvalConfig] = None):
        self.cfg = cfg or CONFIG.eval
        self.max_eval = self.cfg.max_eval

    def evaluate(self, state, perspective: Optional[Player] = None) -> int:
        """Score ``state`` for ``perspective`` (side to move by default)."""
        if perspective is None:
            perspective = state.side_to_move

        status = state.status
        if isinstance(status, Win):
            return self.max_eval if status.player is perspective else -self.max_eval
        if isinstance(status, Draw):
            return 0

        score = self.evaluate_white(state)
        if perspective is Player.BLACK:
            score = -score
        return max(-self.max_eval, min(self.max_eval, int(round(score))))

    def evaluate_white(self, state) -> float:
        w = self.cfg.weights
        counts = flat_counts(state)
        flat_diff = counts[Player.WHITE] - counts[Player.BLACK] - state.komi

        score = w["FLAT"] * flat_diff
        score += w["SCARCITY"] * flat_diff * self.scarcity(state)
        score += w["ROAD"] * (self.road_potential(state, Player.WHITE)
                              - self.road_potential(state, Player.BLACK))
        score += w["MOBILITY"] * (self.mobility(state, Player.WHITE)
                                  - self.mobility(state, Player.BLACK))
        score += w["CAPSTONE_CENTER"] * (self.capstone_centrality(state, Player.WHITE)
                                         - self.capstone_centrality(state, Player.BLACK))
        return score

    def road_potential(self, state, player: Player) -> float:
        size = state.size
        groups = road_groups(state, player)
        if not groups:
            return 0.0
        best = 0
        for group in groups:
            span = max(len({i % size for i in group}), len({i // size for i in group}))
            best = max(best, span)
        penalty = self.cfg.weights["GROUP"] / max(1, self.cfg.weights["ROAD"])
        return best * best - penalty * (len(groups) - 1)

    def scarcity(self, state) -> float:
        """0 at the start of the game, approaching 1 as a flat count nears."""
        full = state.piece_totals
        total = full.stones + full.capstones
        left = min(r.stones + r.capstones for r in state.reserves)
        reserve_pressure = 1.0 - left / total
        filled = sum(1 for stack in state.board if stack) / len(state.board)
        return max(reserve_pressure, filled) ** 2

    def mobility(self, state, player: Player) -> int:
        size = state.size
        count = 0
        if state.reserve(player).stones or state.reserve(player).capstones:
            count += sum(1 for stack in state.board if not stack)
        for index, stack in enumerate(state.board):
            if not stack or stack[-1].owner is not player:
                continue
            origin = Square.from_index(index, size)
            carry = min(len(stack), size)
            for direction in DIRECTIONS:
                target = origin.step(direction)
                if not target.on_board(size):
                    continue
                top = state.top(target)
                if top is None or top.kind is PieceKind.FLAT or (
                        top.kind is PieceKind.WALL and stack[-1].kind is PieceKind.CAPSTONE):
                    count += carry
        return min(count, self.cfg.mobility_cap)

    def capstone_centrality(self, state, player: Player) -> float:
        size = state.size
        center = (size - 1) / 2
        total = 0.0
        for index, stack in enumerate(state.board):
            if stack and stack[-1].owner is player and stack[-1].kind is PieceKind.CAPSTONE:
                square = Square.from_index(index, size)
                total += (size - 1) - (abs(square.file - center) + abs(square.rank - center))
        return total
