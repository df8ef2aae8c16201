"""Message-passing host for the search engine.

The host sends ``StartSearch`` / ``Cancel`` messages and reads ``Progress``,
``Result``, ``Aborted`` and ``Failed`` messages back. Searches run one at a
time on a single background worker so the caller never blocks:

    bridge = SearchBridge()
    search_id = bridge.start_search(state, time_budget_ms=1000)
    while True:
        message = bridge.receive(timeout=5)
        if isinstance(message, (Result, Aborted, Failed)):
            break
    bridge.close()

Once ``Cancel`` has been sent for a search, no ``Progress`` or ``Result`` of
that search is handed out any more, even if the worker had already produced
them; the host gets ``Aborted`` instead. Every started search ends with
exactly one ``Result``, ``Aborted`` or ``Failed``.
"""

import itertools
import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from tak_engine.core.errors import TakError
from tak_engine.core.search import SearchEngine, SearchResult
from tak_engine.core.types import Move

logger = logging.getLogger(__name__)

_search_ids = itertools.count(1)


def next_search_id() -> int:
    return next(_search_ids)


@dataclass(frozen=True)
class StartSearch:
    game_state: object
    time_budget_ms: Optional[int] = None
    node_budget: Optional[int] = None
    max_depth: Optional[int] = None
    search_id: int = field(default_factory=next_search_id)


@dataclass(frozen=True)
class Cancel:
    search_id: Optional[int] = None  # None cancels whatever is running


@dataclass(frozen=True)
class Progress:
    search_id: int
    depth: int
    score: int
    best_move: Move
    node_count: int


@dataclass(frozen=True)
class Result:
    search_id: int
    best_move: Move
    score: int
    depth_reached: int
    node_count: int
    pv: tuple = ()


@dataclass(frozen=True)
class Aborted:
    search_id: int


@dataclass(frozen=True)
class Failed:
    search_id: int
    error: str


class _Job:
    def __init__(self, request: StartSearch):
        self.request = request
        self.stop_event = threading.Event()


class SearchBridge:
    """Runs searches off the caller's thread and reports back through messages."""

    def __init__(self, engine_factory: Callable[[], SearchEngine] = SearchEngine,
                 listener: Optional[Callable[[object], None]] = None):
        self._engine_factory = engine_factory
        self._listener = listener
        self._inbox: "queue.Queue[object]" = queue.Queue()
        self._outbox: "queue.Queue[object]" = queue.Queue()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tak-search")
        self._lock = threading.Lock()
        self._jobs: Dict[int, _Job] = {}
        self._current: Optional[int] = None
        self._cancelled: Set[int] = set()
        # started searches whose final message has not been handed to the host yet
        self._live: Set[int] = set()
        self._closed = False
        self._dispatcher = threading.Thread(target=self._dispatch, name="tak-bridge", daemon=True)
        self._dispatcher.start()

    # -- host side -------------------------------------------------------

    def send(self, message):
        if self._closed:
            raise RuntimeError("bridge is closed")
        if isinstance(message, Cancel):
            # Recorded right away so nothing of this search is delivered afterwards.
            with self._lock:
                self._mark_cancelled(message.search_id)
        elif isinstance(message, StartSearch):
            with self._lock:
                self._jobs[message.search_id] = _Job(message)
                self._live.add(message.search_id)
        else:
            raise TypeError(f"unsupported message: {message!r}")
        self._inbox.put(message)

    def start_search(self, game_state, time_budget_ms: Optional[int] = None,
                     node_budget: Optional[int] = None, max_depth: Optional[int] = None) -> int:
        request = StartSearch(game_state, time_budget_ms, node_budget, max_depth)
        self.send(request)
        return request.search_id

    def cancel(self, search_id: Optional[int] = None):
        self.send(Cancel(search_id))

    def receive(self, timeout: Optional[float] = None):
        """Next outgoing message, or None when ``timeout`` expires."""
        while True:
            try:
                message = self._outbox.get(timeout=timeout)
            except queue.Empty:
                return None
            message = self._deliver(message)
            if message is not None:
                return message

    def drain(self) -> List[object]:
        messages = []
        while True:
            try:
                message = self._outbox.get_nowait()
            except queue.Empty:
                return messages
            message = self._deliver(message)
            if message is not None:
                messages.append(message)

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._current is not None

    def close(self):
        if self._closed:
            return
        with self._lock:
            self._mark_cancelled(None)
        self._closed = True
        self._inbox.put(None)
        self._dispatcher.join(timeout=2)
        self._executor.shutdown(wait=True)

    # -- worker side -----------------------------------------------------

    def _mark_cancelled(self, search_id: Optional[int]):
        if search_id is None:
            # the running search plus anything queued but not started yet
            targets = list(self._jobs)
        else:
            targets = [search_id]
        for sid in targets:
            # ids whose final message was already handed out have nothing left to stop
            if sid not in self._live:
                continue
            self._cancelled.add(sid)
            job = self._jobs.get(sid)
            if job is not None:
                job.stop_event.set()

    def _deliver(self, message):
        """Message as the host should see it, or None when it is dropped."""
        search_id = message.search_id
        with self._lock:
            cancelled = search_id in self._cancelled
            if isinstance(message, Progress):
                return None if cancelled else message
            # final message: nothing of this search can follow it in the outbox
            self._live.discard(search_id)
            self._cancelled.discard(search_id)
        if cancelled and isinstance(message, Result):
            return Aborted(search_id)
        return message

    def _dispatch(self):
        while True:
            message = self._inbox.get()
            if message is None:
                return
            if isinstance(message, StartSearch):
                with self._lock:
                    # one search at a time: a new request preempts older ones
                    for sid in list(self._jobs):
                        if sid == message.search_id:
                            break
                        self._mark_cancelled(sid)
                    job = self._jobs.get(message.search_id)
                if job is not None:
                    self._executor.submit(self._run, job)
            elif isinstance(message, Cancel):
                logger.debug("Cancel processed for %s", message.search_id or "current search")

    def _run(self, job: _Job):
        request = job.request
        search_id = request.search_id
        with self._lock:
            skipped = search_id in self._cancelled
            if skipped:
                self._finish(search_id)
            else:
                self._current = search_id
        if skipped:
            self._emit(Aborted(search_id))
            return

        def on_progress(result: SearchResult):
            self._emit(Progress(search_id, result.depth, result.score,
                                result.best_move, result.nodes))

        result = None
        outcome = None
        try:
            engine = self._engine_factory()
            result = engine.search(
                request.game_state,
                time_budget_ms=request.time_budget_ms,
                node_budget=request.node_budget,
                max_depth=request.max_depth,
                stop_event=job.stop_event,
                on_progress=on_progress,
            )
        except TakError as e:
            logger.warning("Search %d failed: %s", search_id, e)
            outcome = Failed(search_id, str(e))
        except Exception as e:
            logger.exception("Search %d crashed", search_id)
            outcome = Failed(search_id, f"{type(e).__name__}: {e}")
        finally:
            with self._lock:
                self._finish(search_id)
                cancelled = search_id in self._cancelled

        if outcome is None:
            if result is None or cancelled:
                outcome = Aborted(search_id)
            else:
                outcome = Result(search_id, result.best_move, result.score, result.depth,
                                 result.nodes, tuple(result.pv))
        self._emit(outcome)

    def _finish(self, search_id: int):
        self._jobs.pop(search_id, None)
        if self._current == search_id:
            self._current = None

    def _emit(self, message):
        with self._lock:
            cancelled = message.search_id in self._cancelled
        if cancelled and isinstance(message, Progress):
            return
        if cancelled and isinstance(message, Result):
            message = Aborted(message.search_id)
        if self._listener is not None:
            self._listener(message)
        self._outbox.put(message)
