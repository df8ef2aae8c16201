"""FastAPI REST interface for the engine."""

import threading

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional

from tak_engine.bridge import Aborted, Failed, Progress, Result, SearchBridge
from tak_engine.config import CONFIG, configure_logging
from tak_engine.core.board import GameState
from tak_engine.core.errors import IllegalMove, MalformedNotation, SearchExhausted, TakError
from tak_engine.core.notation import (
    decode_move,
    decode_tps,
    encode_game,
    encode_move,
    encode_tps,
    result_token,
)
from tak_engine.core.search import SearchEngine
from tak_engine.core.utils import allot_time_ms

configure_logging()

app = FastAPI(title=CONFIG.ui.engine_name, version="1.0.0")

bridge = SearchBridge()
state = GameState.new(CONFIG.game.size, CONFIG.game.komi)
_board_lock = threading.Lock()


class ResetRequest(BaseModel):
    size: int = Field(default=CONFIG.game.size, ge=3, le=8)
    komi: float = Field(default=CONFIG.game.komi, ge=0)


class PositionRequest(BaseModel):
    tps: str
    komi: float = Field(default=0.0, ge=0)


class MoveRequest(BaseModel):
    move: str  # PTN e.g. "a1", "Sc3", "3c3+12"


class SearchRequest(BaseModel):
    depth: Optional[int] = Field(default=None, ge=1, le=64)
    time_ms: Optional[int] = Field(default=None, ge=1)
    nodes: Optional[int] = Field(default=None, ge=1)
    # game clock, used to pick time_ms when it is not given
    time_remaining_ms: Optional[int] = Field(default=None, ge=0)
    increment_ms: int = Field(default=0, ge=0)


class CancelRequest(BaseModel):
    search_id: Optional[int] = None


def _set_state(new_state: GameState):
    global state
    state = new_state


def _describe(s: GameState) -> dict:
    return {
        "tps": encode_tps(s),
        "size": s.size,
        "komi": s.komi,
        "ply": s.ply,
        "turn": "white" if s.side_to_move.value == 0 else "black",
        "reserves": {
            "white": {"stones": s.reserves[0].stones, "capstones": s.reserves[0].capstones},
            "black": {"stones": s.reserves[1].stones, "capstones": s.reserves[1].capstones},
        },
        "legal_moves": [encode_move(m) for m in s.legal_moves()],
        "is_game_over": s.is_terminal,
        "result": result_token(s),
    }


def _time_budget(req: SearchRequest, ply: int) -> Optional[int]:
    if req.time_ms is not None:
        return req.time_ms
    if req.time_remaining_ms is not None:
        return allot_time_ms(ply, req.time_remaining_ms, req.increment_ms,
                             CONFIG.search.max_clock_ms)
    return CONFIG.search.time_limit_ms


def _message_json(message) -> dict:
    if isinstance(message, Progress):
        return {"type": "progress", "search_id": message.search_id, "depth": message.depth,
                "score": message.score, "best_move": encode_move(message.best_move),
                "nodes": message.node_count}
    if isinstance(message, Result):
        return {"type": "result", "search_id": message.search_id,
                "best_move": encode_move(message.best_move), "score": message.score,
                "depth": message.depth_reached, "nodes": message.node_count,
                "pv": [encode_move(m) for m in message.pv]}
    if isinstance(message, Aborted):
        return {"type": "aborted", "search_id": message.search_id}
    if isinstance(message, Failed):
        return {"type": "failed", "search_id": message.search_id, "error": message.error}
    return {"type": "unknown"}


@app.get("/board")
def get_board():
    with _board_lock:
        return _describe(state)


@app.post("/position")
def set_position(req: PositionRequest):
    with _board_lock:
        try:
            new_state = decode_tps(req.tps, req.komi)
        except MalformedNotation as e:
            raise HTTPException(status_code=400, detail=f"Invalid TPS: {e}")
        _set_state(new_state)
        return {"tps": encode_tps(state)}


@app.post("/move")
def make_move(req: MoveRequest):
    with _board_lock:
        try:
            move = decode_move(req.move, state.size)
        except MalformedNotation:
            raise HTTPException(status_code=400, detail=f"Invalid PTN move: {req.move}")
        try:
            new_state = state.apply(move)
        except IllegalMove as e:
            raise HTTPException(status_code=400, detail=f"Illegal move {req.move}: {e}")
        _set_state(new_state)
        return {"tps": encode_tps(state), "move": encode_move(state.history[-1]),
                "result": result_token(state)}


@app.post("/undo")
def undo_move():
    with _board_lock:
        try:
            _set_state(state.undo())
        except IllegalMove as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"tps": encode_tps(state)}


@app.post("/reset")
def reset_board(req: ResetRequest = ResetRequest()):
    with _board_lock:
        bridge.cancel()
        _set_state(GameState.new(req.size, req.komi))
        return {"tps": encode_tps(state)}


@app.get("/ptn")
def get_ptn():
    with _board_lock:
        return {"ptn": encode_game(state)}


@app.post("/search")
def search_move(req: SearchRequest = SearchRequest()):
    with _board_lock:
        if state.is_terminal:
            raise HTTPException(status_code=400, detail="Game is already over")
        snapshot = state

    # search tables live on the engine, so each request gets its own
    engine = SearchEngine(depth=CONFIG.search.depth)
    try:
        result = engine.search(snapshot, time_budget_ms=_time_budget(req, snapshot.ply),
                               node_budget=req.nodes, max_depth=req.depth)
    except SearchExhausted as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=409, detail="Search was cancelled")
    return {
        "best_move": encode_move(result.best_move),
        "score": result.score,
        "depth": result.depth,
        "nodes": result.nodes,
        "pv": [encode_move(m) for m in result.pv],
        "tps": encode_tps(snapshot),
    }


@app.post("/search/start")
def start_search(req: SearchRequest = SearchRequest()):
    with _board_lock:
        if state.is_terminal:
            raise HTTPException(status_code=400, detail="Game is already over")
        snapshot = state
    search_id = bridge.start_search(snapshot, _time_budget(req, snapshot.ply),
                                    req.nodes, req.depth)
    return {"search_id": search_id}


@app.get("/search/messages")
def search_messages() -> dict:
    messages: List[dict] = [_message_json(m) for m in bridge.drain()]
    return {"messages": messages, "busy": bridge.busy}


@app.post("/search/cancel")
def cancel_search(req: CancelRequest = CancelRequest()):
    try:
        bridge.cancel(req.search_id)
    except TakError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"cancelled": req.search_id}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=CONFIG.ui.api_port)
