"""Zobrist position keys and a bounded transposition table.

This module provides two main classes:

- Zobrist: random 64-bit keys per (square, height, owner), per top-piece
  kind, per reserve count and for side to move / opening phase. Keys are
  computed from scratch for every position, which is simple and safe. Tables
  are drawn from a seeded generator so the same position always gets the same
  key, run after run.

- TranspositionTable: a slot array indexed by ``key % capacity``. Each entry
  keeps the position signature for collision detection, the search depth,
  stored value and flag, plus the best move. A table belongs to exactly one
  search and is thrown away with it, so it has no lock.

Usage (example):

    from tak_engine.core.transposition import TranspositionTable

    tt = TranspositionTable(state.size)
    tt.store(state, depth=3, value=123, flag=TT_EXACT, best_move=move)
    entry = tt.get(state)
    if entry is not None:
        print(entry.depth, entry.value, entry.flag, entry.best_move)
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

from tak_engine.core.types import Move, PieceKind, Reserve

TT_EXACT = 0
TT_LOWER = 1  # fail-high: value is a lower bound
TT_UPPER = 2  # fail-low: value is an upper bound

DEFAULT_SEED = 0x7A6B


@dataclass
class TTEntry:
    signature: tuple
    depth: int
    value: int
    flag: int
    best_move: Optional[Move]

    def __iter__(self):
        return iter((self.signature, self.depth, self.value, self.flag, self.best_move))


@lru_cache(maxsize=None)
def make_zobrist_table(size: int, seed: int = DEFAULT_SEED, stones: Optional[int] = None,
                       capstones: Optional[int] = None) -> Dict[str, object]:
    """Create the zobrist table for one board size and piece set.

    ``stones``/``capstones`` default to the standard counts for ``size``.

    Structure returned (read-only once built):
      {
        "stack": [square][height] -> (white key, black key),
        "kind": [square] -> {WALL: key, CAPSTONE: key},
        "stones": [player][count], "capstones": [player][count],
        "side": int,
        "opening": [3 ints]
      }
    """
    rng = random.Random(seed * 131 + size)
    standard = Reserve.for_size(size)
    stones = standard.stones if stones is None else stones
    capstones = standard.capstones if capstones is None else capstones
    max_height = 2 * (stones + capstones)
    squares = size * size
    stack_table: List[List[Tuple[int, int]]] = [
        [(rng.getrandbits(64), rng.getrandbits(64)) for _ in range(max_height)]
        for _ in range(squares)
    ]
    kind_table = [
        {PieceKind.WALL: rng.getrandbits(64), PieceKind.CAPSTONE: rng.getrandbits(64)}
        for _ in range(squares)
    ]
    return {
        "stack": stack_table,
        "kind": kind_table,
        "stones": [[rng.getrandbits(64) for _ in range(stones + 1)] for _ in range(2)],
        "capstones": [[rng.getrandbits(64) for _ in range(capstones + 1)] for _ in range(2)],
        "side": rng.getrandbits(64),
        "opening": [rng.getrandbits(64) for _ in range(3)],
    }


class Zobrist:
    """Zobrist hash utilities for one board size."""

    def __init__(self, size: int, seed: int = DEFAULT_SEED, pieces: Optional[Reserve] = None):
        self.size = size
        pieces = pieces or Reserve.for_size(size)
        self.table = make_zobrist_table(size, seed, pieces.stones, pieces.capstones)

    def hash(self, state) -> int:
        t = self.table
        h = 0
        stack_keys = t["stack"]
        for index, stack in enumerate(state.board):
            if not stack:
                continue
            column = stack_keys[index]
            for height, piece in enumerate(stack):
                h ^= column[height][piece.owner.value]
            top = stack[-1].kind
            if top is not PieceKind.FLAT:
                h ^= t["kind"][index][top]
        for player, reserve in enumerate(state.reserves):
            h ^= t["stones"][player][reserve.stones]
            h ^= t["capstones"][player][reserve.capstones]
        # side: xor when black to move (convention)
        if state.ply % 2 == 1:
            h ^= t["side"]
        h ^= t["opening"][min(state.ply, 2)]
        return h


class TranspositionTable:
    """Depth-preferred transposition table keyed by zobrist hash.

    Methods:
      - get(state, key=None) -> Optional[TTEntry]
      - store(state, depth, value, flag, best_move, key=None)
      - clear()
      - key(state) -> int  (zobrist key)
    """

    def __init__(self, size: int, max_entries: int = 1 << 18, seed: int = DEFAULT_SEED,
                 pieces: Optional[Reserve] = None):
        self.z = Zobrist(size, seed, pieces)
        self.max_entries = max(1, max_entries)
        self._slots: List[Optional[Tuple[int, TTEntry]]] = [None] * self.max_entries
        self.hits = 0
        self.stores = 0

    def key(self, state) -> int:
        return self.z.hash(state)

    def get(self, state, key: Optional[int] = None) -> Optional[TTEntry]:
        k = self.key(state) if key is None else key
        slot = self._slots[k % self.max_entries]
        if slot is None or slot[0] != k:
            return None
        entry = slot[1]
        # verify the signature to avoid rare collisions
        if entry.signature != state.signature():
            return None
        self.hits += 1
        return entry

    def store(self, state, depth: int, value: int, flag: int, best_move: Optional[Move],
              key: Optional[int] = None):
        k = self.key(state) if key is None else key
        index = k % self.max_entries
        slot = self._slots[index]
        # shallower entries give way; equal depth means newer information
        if slot is not None and slot[1].depth > depth:
            return
        self._slots[index] = (k, TTEntry(state.signature(), depth, value, flag, best_move))
        self.stores += 1

    def clear(self):
        self._slots = [None] * self.max_entries
        self.hits = 0
        self.stores = 0

    def __len__(self) -> int:
        return sum(1 for slot in self._slots if slot is not None)
