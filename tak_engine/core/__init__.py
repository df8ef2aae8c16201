"""Core engine components: board, rules, win detection, notation, evaluation, search."""

from .board import GameState
from .errors import IllegalMove, IllegalMoveReason, MalformedNotation, SearchExhausted, TakError
from .evaluator import Evaluator
from .search import SearchEngine, SearchResult
from .transposition import TranspositionTable
