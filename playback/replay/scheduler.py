"""
Playback scheduler: paced delivery of commits to a graph consumer.

The scheduler is a single asyncio task running a five-state machine:

    IDLE -> FETCHING_BATCH -> DELIVERING_COMMIT -> ... -> IDLE -> FETCHING_BATCH
    FETCHING_BATCH -> WAITING_BACKOFF -> FETCHING_BATCH   (empty batch or store error)
    any -> PAUSED -> FETCHING_BATCH                       (on resume)

Control requests (pause, resume, load_commit, stop) are queued and handled by
the run loop between suspension points, so reducer calls never overlap.
Waits (pacing delay, backoff) listen on the control queue: a load_commit or
stop ends the wait at once, and during backoff any control does.

Pause policy: a pause stops new batch fetches but the batch being delivered
drains to its end, keeping its pacing. A resume is accepted only once that
drain has finished. A load_commit request is serviced immediately, even while
paused, and discards whatever is left of the current batch.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Awaitable, Callable, List, Optional

from .. import metrics
from ..config import PlaybackConfig
from ..core.errors import InvalidDiffBase, MalformedPayload, RecordNotFound, StoreUnavailable
from ..core.records import CommitChanges, CommitRecord
from ..core.reducer import apply_diff, apply_full
from ..logging_config import get_logger
from ..store.base import CommitStore, Projection
from .consumer import GraphConsumer, GraphSnapshot
from .cursor import CommitLookup, PlaybackMode, RangeQuery
from .state import EngineState

Sleep = Callable[[float], Awaitable[None]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    FETCHING_BATCH = "fetching_batch"
    DELIVERING_COMMIT = "delivering_commit"
    WAITING_BACKOFF = "waiting_backoff"
    PAUSED = "paused"


class ControlKind(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    LOAD = "load"
    STOP = "stop"


@dataclass(frozen=True)
class Control:
    kind: ControlKind
    sha: Optional[str] = None


_JUMP_OR_STOP = frozenset({ControlKind.LOAD, ControlKind.STOP})


class PlaybackScheduler:
    """
    Drives playback from a CommitStore into a GraphConsumer.

    Usage:
        scheduler = PlaybackScheduler(store, consumer, config)
        task = asyncio.create_task(scheduler.run())
        scheduler.pause()
        scheduler.load_commit("deadbeef")
        scheduler.resume()
        scheduler.stop()
        await task
    """

    def __init__(
        self,
        store: CommitStore,
        consumer: GraphConsumer,
        config: PlaybackConfig,
        state: Optional[EngineState] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.store = store
        self.consumer = consumer
        self.config = config
        self.engine_state = state or EngineState.initial(config)
        self.state = SchedulerState.IDLE
        self._sleep = sleep or asyncio.sleep
        self._controls: "asyncio.Queue[Control]" = asyncio.Queue()
        self._stopped = False
        self._max_commits: Optional[int] = None
        self.logger = get_logger(__name__, trace_id=config.repo)

        if config.start_hash:
            self.engine_state.cursor.request_commit(config.start_hash)

    # Control surface (safe to call from consumer callbacks)

    def pause(self) -> None:
        self._controls.put_nowait(Control(ControlKind.PAUSE))

    def resume(self) -> None:
        self._controls.put_nowait(Control(ControlKind.RESUME))

    def load_commit(self, sha: str) -> None:
        self._controls.put_nowait(Control(ControlKind.LOAD, sha=sha))

    def stop(self) -> None:
        self._controls.put_nowait(Control(ControlKind.STOP))

    # Run loop

    async def run(self, max_commits: Optional[int] = None) -> EngineState:
        """
        Run until stop() is called or max_commits commits were delivered.

        Returns:
            The engine state at exit
        """
        es = self.engine_state
        self._max_commits = max_commits
        self.logger.info(
            f"Playback starting at latest_time={es.cursor.latest_time} "
            f"(auto_play={self.config.auto_play}, delay_ms={self.config.delay_ms})"
        )

        while True:
            self._drain_controls()
            if self._done():
                break

            if es.cursor.mode is PlaybackMode.SINGLE_COMMIT:
                await self._load_single(es.cursor.next_query())
                continue

            if es.paused:
                self.state = SchedulerState.PAUSED
                self._handle_control(await self._controls.get())
                continue

            query = es.cursor.next_query()
            if not isinstance(query, RangeQuery):
                await self._load_single(query)
                continue

            batch = await self._fetch(query)
            if batch:
                await self._deliver_batch(batch)
                continue

            if batch is not None and self._should_seed():
                await self._seed_from_latest()
                continue

            self.state = SchedulerState.WAITING_BACKOFF
            self.logger.debug(f"No commits from {query.from_time}, retrying in {self.config.backoff_ms}ms")
            await self._wait(self.config.backoff_ms / 1000, interrupt_on=set(ControlKind))

        self.state = SchedulerState.IDLE
        self.logger.info(f"Playback stopped after {es.delivered} commits ({es.skipped} skipped)")
        return es

    def _done(self) -> bool:
        if self._stopped:
            return True
        return self._max_commits is not None and self.engine_state.delivered >= self._max_commits

    async def _wait(self, seconds: float, interrupt_on: AbstractSet[ControlKind] = _JUMP_OR_STOP) -> None:
        """
        Sleep for `seconds` while handling control requests as they arrive.

        The wait ends early when a control of a kind in interrupt_on arrives.
        Other controls are handled and the wait continues.
        """
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        getter: Optional["asyncio.Future[Control]"] = None
        try:
            while not sleeper.done():
                getter = asyncio.ensure_future(self._controls.get())
                done, _ = await asyncio.wait({sleeper, getter}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    # An unconsumed get leaves its item on the queue
                    getter.cancel()
                    getter = None
                    continue
                control = getter.result()
                getter = None
                self._handle_control(control)
                if control.kind in interrupt_on:
                    return
        finally:
            sleeper.cancel()
            if getter is not None:
                getter.cancel()

    def _drain_controls(self) -> None:
        while True:
            try:
                control = self._controls.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._handle_control(control)

    def _handle_control(self, control: Control) -> None:
        es = self.engine_state
        if control.kind is ControlKind.STOP:
            self._stopped = True
        elif control.kind is ControlKind.PAUSE:
            if not es.paused:
                es.paused = True
                self.logger.info("Pause requested")
        elif control.kind is ControlKind.RESUME:
            if not es.paused:
                return
            if self.state is SchedulerState.DELIVERING_COMMIT:
                self.logger.info("Resume ignored: current batch is still draining")
                return
            es.paused = False
            # Diffs are only valid against a known base
            es.needs_full = True
            self.logger.info(f"Resuming from latest_time={es.cursor.latest_time}")
        elif control.kind is ControlKind.LOAD and control.sha:
            es.cursor.request_commit(control.sha)

    # Fetching

    def _projection(self) -> Projection:
        es = self.engine_state
        if es.needs_full or not self.config.use_changes_projection:
            return Projection.FULL
        return Projection.CHANGES

    async def _fetch(self, query: RangeQuery) -> Optional[List[CommitRecord]]:
        """
        Run a range query.

        Returns:
            The batch (possibly empty), or None if the store was unavailable
        """
        self.state = SchedulerState.FETCHING_BATCH
        projection = self._projection()
        try:
            with metrics.track_fetch_duration():
                batch = await self.store.query_range(query.from_time, query.limit, projection)
        except StoreUnavailable as e:
            metrics.track_fetch("error")
            self.logger.warning(f"Commit store unavailable, backing off: {e}")
            return None

        metrics.track_fetch("ok" if batch else "empty")
        self.logger.debug(f"Fetched {len(batch)} commits from {query.from_time} ({projection.value})")
        return batch

    def _should_seed(self) -> bool:
        es = self.engine_state
        return (
            self.config.seed_from_latest
            and not self.config.has_start_condition
            and not es.seeded
            and es.delivered == 0
        )

    async def _seed_from_latest(self) -> None:
        es = self.engine_state
        es.seeded = True
        try:
            record = await self.store.query_latest(Projection.FULL)
        except StoreUnavailable as e:
            self.logger.warning(f"Could not look up newest commit: {e}")
            return
        if record is None:
            return
        self.logger.info(f"No history from the start; seeding from newest commit {record.sha}")
        self._deliver_snapshot(record, discontinuity=False, mode="seed")

    # Delivery

    async def _deliver_batch(self, batch: List[CommitRecord]) -> None:
        es = self.engine_state
        es.authorized = {r.sha for r in batch}
        self.state = SchedulerState.DELIVERING_COMMIT

        for index, record in enumerate(batch):
            if index:
                await self._wait(self.config.delay_ms / 1000)
                self._drain_controls()
            if self._done():
                break

            if es.cursor.mode is PlaybackMode.SINGLE_COMMIT:
                await self._load_single(es.cursor.next_query())
                self.state = SchedulerState.DELIVERING_COMMIT
                if self._done():
                    break

            if record.sha not in es.authorized:
                metrics.track_skip("stale")
                self.logger.debug(f"Discarding {record.sha}: batch superseded")
                continue

            self._deliver_continuous(record)

        es.authorized = set()
        self.state = SchedulerState.IDLE

    def _deliver_continuous(self, record: CommitRecord) -> None:
        es = self.engine_state

        if es.last_delivered_date is not None and record.date < es.last_delivered_date:
            metrics.track_skip("out_of_order")
            self.logger.warning(
                f"Skipping {record.sha}: date {record.date} precedes last delivered {es.last_delivered_date}"
            )
            return

        try:
            payload = record.payload()
            if payload.has_snapshot:
                nodes = apply_full(es.nodes, payload.nodes_full)
                mode = "full"
            elif es.needs_full:
                raise InvalidDiffBase(record.sha)
            else:
                nodes = apply_diff(es.nodes, payload.changes or CommitChanges())
                mode = "diff"
        except (MalformedPayload, InvalidDiffBase) as e:
            reason = "malformed" if isinstance(e, MalformedPayload) else "invalid_base"
            metrics.track_skip(reason)
            self.logger.error(f"Skipping commit {record.sha}: {e}")
            es.skipped += 1
            # Move past the bad commit so playback cannot stall on it
            es.cursor.advance(record.date)
            metrics.set_latest_time(es.cursor.latest_time)
            return

        es.nodes = nodes
        es.edges = payload.edges
        es.needs_full = False
        es.last_delivered_date = record.date
        self._notify(record, discontinuity=False)
        es.cursor.advance(record.date)
        metrics.set_latest_time(es.cursor.latest_time)
        metrics.track_delivery(mode)

    async def _load_single(self, query) -> None:
        """Random-access load: full snapshot of one commit by hash."""
        es = self.engine_state
        if not isinstance(query, CommitLookup):
            return

        # Anything left of the current batch is stale now
        es.authorized = set()
        self.state = SchedulerState.FETCHING_BATCH
        self.logger.info(f"Loading commit {query.sha}")
        try:
            record = await self.store.get_by_hash(query.sha, Projection.FULL)
        except RecordNotFound as e:
            self.logger.warning(str(e))
            return
        except StoreUnavailable as e:
            self.logger.warning(f"Could not load commit {query.sha}: {e}")
            return
        except MalformedPayload as e:
            metrics.track_skip("malformed")
            self.logger.error(f"Cannot load commit {query.sha}: {e}")
            self.engine_state.skipped += 1
            return

        self._deliver_snapshot(record, discontinuity=True, mode="jump")

    def _deliver_snapshot(self, record: CommitRecord, discontinuity: bool, mode: str) -> None:
        es = self.engine_state
        self.state = SchedulerState.DELIVERING_COMMIT
        try:
            payload = record.payload()
            if not payload.has_snapshot:
                raise InvalidDiffBase(record.sha)
        except (MalformedPayload, InvalidDiffBase) as e:
            reason = "malformed" if isinstance(e, MalformedPayload) else "invalid_base"
            metrics.track_skip(reason)
            self.logger.error(f"Cannot load commit {record.sha}: {e}")
            es.skipped += 1
            return

        es.nodes = apply_full(es.nodes, payload.nodes_full)
        es.edges = payload.edges
        self._notify(record, discontinuity=discontinuity)
        # Forward-only: a jump into the past does not rewind playback
        es.cursor.advance(record.date)
        # The next continuous delivery may not follow this commit
        es.needs_full = True
        metrics.set_latest_time(es.cursor.latest_time)
        metrics.track_delivery(mode)

    def _notify(self, record: CommitRecord, discontinuity: bool) -> None:
        es = self.engine_state
        snapshot = GraphSnapshot(
            commit=record,
            nodes=tuple(es.nodes),
            edges=es.edges,
            node_count=record.node_count,
            first_run=es.first_run,
            discontinuity=discontinuity,
        )
        if es.first_run:
            es.first_run = False
        else:
            self.consumer.refresh_graph()
        self.consumer.initialize_graph(snapshot)

        es.current_sha = record.sha
        es.current_date = record.date
        es.delivered += 1
        self.logger.debug(f"Delivered {record.sha} ({record.formatted_date}), {len(es.nodes)} nodes")
