import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from tak_engine.config import CONFIG, SearchConfig
from tak_engine.core import rules
from tak_engine.core.errors import SearchExhausted
from tak_engine.core.evaluator import Evaluator
from tak_engine.core.transposition import TT_EXACT, TT_LOWER, TT_UPPER, TranspositionTable
from tak_engine.core.types import DIRECTIONS, Move, PieceKind, Place, Spread, Win
from tak_engine.core.utils import format_info

logger = logging.getLogger(__name__)

INF = 10_000_000
WIN_SCORE = 1_000_000
WIN_THRESHOLD = WIN_SCORE - 1000
MAX_PLY = 128

# expected cost ratio between consecutive iterations
BRANCHING_ESTIMATE = 4


@dataclass
class SearchResult:
    best_move: Move
    score: int
    depth: int
    nodes: int
    pv: List[Move] = field(default_factory=list)
    elapsed_ms: float = 0.0


class _OutOfBudget(Exception):
    pass


class _Cancelled(Exception):
    pass


def _to_tt(score: int, ply: int) -> int:
    if score >= WIN_THRESHOLD:
        return score + ply
    if score <= -WIN_THRESHOLD:
        return score - ply
    return score


def _from_tt(score: int, ply: int) -> int:
    if score >= WIN_THRESHOLD:
        return score - ply
    if score <= -WIN_THRESHOLD:
        return score + ply
    return score


class SearchEngine:
    def __init__(self, evaluator: Optional[Evaluator] = None, depth: Optional[int] = None,
                 config: Optional[SearchConfig] = None):
        self.config = config or CONFIG.search
        self.evaluator = evaluator or Evaluator()
        self.max_depth = depth or self.config.depth
        # Created per search and dropped when it returns.
        self.tt: Optional[TranspositionTable] = None
        self.history = defaultdict(int)
        self.killers = [[None] * 2 for _ in range(MAX_PLY + 1)]

        self._stop_event = threading.Event()
        self._stop = self._stop_event
        self._deadline: Optional[float] = None
        self._node_budget: Optional[int] = None
        self._budget_armed = False
        self.nodes = 0

    def stop(self):
        """Cancel the search in progress at its next check point."""
        self._stop.set()

    def search_best_move(self, state) -> Tuple[Optional[Move], int]:
        result = self.search(state)
        if result is None:
            return None, 0
        return result.best_move, result.score

    def search(self, state, time_budget_ms: Optional[int] = None, node_budget: Optional[int] = None,
               max_depth: Optional[int] = None, stop_event: Optional[threading.Event] = None,
               on_progress: Optional[Callable[[SearchResult], None]] = None) -> Optional[SearchResult]:
        """Iterative deepening negamax.

        Returns the result of the deepest completed iteration, or None when
        cancelled through ``stop_event`` / ``stop()``. Depth 1 always
        completes unless cancelled, so the returned move is always legal.
        """
        if state.is_terminal:
            raise SearchExhausted(f"game is over: {state.status}")
        root_moves = state.legal_moves()
        if not root_moves:
            raise SearchExhausted("no legal moves")

        if stop_event is None:
            self._stop_event.clear()
            self._stop = self._stop_event
        else:
            self._stop = stop_event
        target_depth = min(max_depth or self.max_depth, MAX_PLY)

        self.tt = TranspositionTable(state.size, self.config.tt_entries, self.config.tt_seed,
                                     state.piece_totals)
        self.history = defaultdict(int)
        self.killers = [[None] * 2 for _ in range(MAX_PLY + 1)]
        self.nodes = 0
        self._node_budget = node_budget if node_budget is not None else self.config.node_budget
        self._budget_armed = False

        start_time = time.monotonic()
        self._deadline = start_time + time_budget_ms / 1000 if time_budget_ms is not None else None
        best: Optional[SearchResult] = None

        try:
            for d in range(1, target_depth + 1):
                iteration_start = time.monotonic()
                try:
                    score, move = self._search_root(state, root_moves, d,
                                                    best.best_move if best else None)
                except _OutOfBudget:
                    logger.debug("Budget exhausted during depth %d after %d nodes", d, self.nodes)
                    break

                now = time.monotonic()
                pv_moves = self._get_pv_line(state, move, d)
                elapsed = (now - start_time) * 1000
                best = SearchResult(move, score, d, self.nodes, pv_moves, elapsed)
                logger.debug(format_info(d, score, self.nodes, elapsed, pv_moves,
                                         WIN_THRESHOLD, WIN_SCORE))
                if on_progress:
                    on_progress(best)
                self._budget_armed = True

                if abs(score) >= WIN_THRESHOLD or len(root_moves) == 1:
                    break
                if self._node_budget is not None and self.nodes >= self._node_budget:
                    break
                if self._deadline is not None:
                    projected = now + (now - iteration_start) * BRANCHING_ESTIMATE
                    if projected > self._deadline:
                        logger.debug("Not enough time left for depth %d", d + 1)
                        break
        except _Cancelled:
            logger.debug("Search cancelled after %d nodes", self.nodes)
            return None
        finally:
            self.tt = None
        return best

    def _check_limits(self):
        if self._stop.is_set():
            raise _Cancelled()
        if not self._budget_armed:
            return
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise _OutOfBudget()
        if self._node_budget is not None and self.nodes >= self._node_budget:
            raise _OutOfBudget()

    def _search_root(self, state, moves: List[Move], depth: int,
                     prev_best: Optional[Move]) -> Tuple[int, Move]:
        ordered = self._order_moves(state, moves, prev_best, 0)
        alpha, beta = -INF, INF
        best_score = -INF
        best_move = ordered[0]
        for move in ordered:
            child = state.apply(move, validate=False)
            score = -self._negamax(child, depth - 1, -beta, -alpha, 1)
            if score > best_score:
                best_score = score
                best_move = move
            if score > alpha:
                alpha = score
        self.tt.store(state, depth, best_score, TT_EXACT, best_move)
        return best_score, best_move

    def _get_pv_line(self, state, first_move: Move, depth: int) -> List[Move]:
        pv_moves = [first_move]
        curr = state.apply(first_move, validate=False)

        # Avoid cycles (stack moves can repeat positions)
        seen = {curr.signature()}

        for _ in range(depth - 1):
            if curr.is_terminal:
                break
            entry = self.tt.get(curr)
            if not entry or entry.best_move is None:
                break

            move = entry.best_move
            if not rules.is_legal(curr, move):
                break

            pv_moves.append(move)
            curr = curr.apply(move, validate=False)

            signature = curr.signature()
            if signature in seen:
                break
            seen.add(signature)

        return pv_moves

    def _terminal_score(self, state, ply: int) -> int:
        status = state.status
        if isinstance(status, Win):
            if status.player is state.side_to_move:
                return WIN_SCORE - ply
            return -(WIN_SCORE - ply)
        return 0

    def _negamax(self, state, depth: int, alpha: int, beta: int, ply: int) -> int:
        self.nodes += 1
        if self.nodes % self.config.check_interval == 0:
            self._check_limits()

        if state.is_terminal:
            return self._terminal_score(state, ply)
        if depth <= 0 or ply >= MAX_PLY:
            return self.evaluator.evaluate(state)

        alpha_orig = alpha

        # TT Lookup
        key = self.tt.key(state)
        tt_entry = self.tt.get(state, key)
        tt_move = None

        if tt_entry:
            tt_move = tt_entry.best_move
            if tt_entry.depth >= depth:
                value = _from_tt(tt_entry.value, ply)
                if tt_entry.flag == TT_EXACT:
                    return value
                elif tt_entry.flag == TT_LOWER:
                    alpha = max(alpha, value)
                elif tt_entry.flag == TT_UPPER:
                    beta = min(beta, value)
                if alpha >= beta:
                    return value

        moves = self._order_moves(state, state.legal_moves(), tt_move, ply)
        best_score = -INF
        best_move_found = None

        for move in moves:
            child = state.apply(move, validate=False)
            score = -self._negamax(child, depth - 1, -beta, -alpha, ply + 1)

            if score > best_score:
                best_score = score
                best_move_found = move

            if score > alpha:
                alpha = score
                if alpha >= beta:
                    if not self._is_capture(state, move):
                        self.history[move] += depth * depth
                        if move != self.killers[ply][0]:
                            self.killers[ply][1] = self.killers[ply][0]
                            self.killers[ply][0] = move
                    break

        if best_score <= alpha_orig:
            flag = TT_UPPER
        elif best_score >= beta:
            flag = TT_LOWER
        else:
            flag = TT_EXACT

        self.tt.store(state, depth, _to_tt(best_score, ply), flag, best_move_found, key)
        return best_score

    def _order_moves(self, state, moves: List[Move], tt_move: Optional[Move], ply: int) -> List[Move]:
        killers = self.killers[ply]
        scores = []
        for move in moves:
            if move == tt_move:
                scores.append(2000000)
            elif isinstance(move, Spread) and move.flatten:
                scores.append(150000)
            elif self._is_capture(state, move):
                scores.append(100000 + move.carry)
            elif move == killers[0]:
                scores.append(90000)
            elif move == killers[1]:
                scores.append(80000)
            elif isinstance(move, Place) and move.kind is not PieceKind.WALL:
                scores.append(self._road_contacts(state, move) * 10000 + self.history[move])
            else:
                scores.append(self.history[move])

        # sort is stable: equal scores keep generation order
        order = sorted(range(len(moves)), key=lambda i: -scores[i])
        return [moves[i] for i in order]

    def _is_capture(self, state, move: Move) -> bool:
        """A spread that covers at least one opponent-topped stack."""
        if not isinstance(move, Spread):
            return False
        mover = state.side_to_move
        for square in move.path():
            top = state.top(square)
            if top is not None and top.owner is not mover:
                return True
        return False

    def _road_contacts(self, state, move: Place) -> int:
        if state.ply < rules.OPENING_PLIES:
            return 0
        mover = state.side_to_move
        contacts = 0
        for neighbour in (move.square.step(d) for d in DIRECTIONS):
            if not neighbour.on_board(state.size):
                continue
            top = state.top(neighbour)
            if top is not None and top.owner is mover and top.kind.is_road:
                contacts += 1
        return contacts

