from tak_engine.config import CONFIG
from tak_engine.core.board import GameState
from tak_engine.core.errors import TakError
from tak_engine.core.evaluator import Evaluator
from tak_engine.core.notation import FILES, decode_move, encode_move, encode_tps
from tak_engine.core.search import SearchEngine
from tak_engine.core.types import PieceKind, Square


class Engine:
    def __init__(self, depth=None, size=None, komi=None):
        self.state = GameState.new(size or CONFIG.game.size,
                                   CONFIG.game.komi if komi is None else komi)
        self.search = SearchEngine(Evaluator(), depth=depth or CONFIG.search.depth)

    def get_best_move(self, time_budget_ms=None):
        result = self.search.search(self.state, time_budget_ms=time_budget_ms)
        return encode_move(result.best_move), result.score

    def make_move(self, move_ptn: str) -> bool:
        """Play a PTN move. Returns True if it was legal."""
        try:
            self.state = self.state.apply(decode_move(move_ptn, self.state.size))
        except TakError:
            return False
        return True

    def undo_move(self) -> bool:
        try:
            self.state = self.state.undo()
        except TakError:
            return False
        return True

    def get_tps(self) -> str:
        return encode_tps(self.state)

    def print_board(self):
        print(render_board(self.state))


def render_board(state: GameState) -> str:
    """Plain-text board, top rank first; each cell shows its stack bottom to top."""
    size = state.size
    cells = {}
    for index, stack in enumerate(state.board):
        text = "".join(p.owner.digit for p in stack)
        if stack and stack[-1].kind is not PieceKind.FLAT:
            text += stack[-1].kind.value
        cells[index] = text or "."
    width = max(4, max(len(c) for c in cells.values()) + 1)
    lines = []
    for rank in range(size - 1, -1, -1):
        row = "".join(cells[Square(f, rank).index(size)].ljust(width) for f in range(size))
        lines.append(f"{rank + 1} {row.rstrip()}")
    lines.append("  " + "".join(FILES[f].ljust(width) for f in range(size)).rstrip())
    return "\n".join(lines)
