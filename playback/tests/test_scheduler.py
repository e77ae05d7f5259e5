"""
Tests for the playback scheduler state machine.

Pacing is observed through an injected sleep that records requested delays
instead of waiting.
"""

import asyncio
import inspect
import warnings

import pytest

from playback.config import PlaybackConfig
from playback.core.errors import MalformedPayload, StoreUnavailable
from playback.core.records import CommitRecord
from playback.replay.consumer import RecordingConsumer
from playback.replay.scheduler import PlaybackScheduler, SchedulerState
from playback.store.base import Projection
from playback.store.file_store import FileCommitStore
from playback.tests.fakes import (
    RecordingSleep,
    ScriptedStore,
    diff_doc,
    snapshot_doc,
    wait_for_state,
)


def _scheduler(store, config, consumer=None, sleep=None):
    consumer = consumer or RecordingConsumer()
    sleep = sleep or RecordingSleep()
    scheduler = PlaybackScheduler(store, consumer, config, sleep=sleep)
    return scheduler, consumer, sleep


def _flags(nodes):
    return [(n.path, n.updated) for n in nodes]


class CallbackConsumer(RecordingConsumer):
    """Runs callback(scheduler, snapshot_index) after each delivery."""

    def __init__(self, callback):
        super().__init__()
        self.callback = callback
        self.scheduler = None

    def initialize_graph(self, snapshot):
        super().initialize_graph(snapshot)
        self.callback(self.scheduler, len(self.snapshots))


class StoppingSleep(RecordingSleep):
    """Stops the scheduler once it has been asked to sleep `after` times."""

    def __init__(self, after):
        super().__init__()
        self.after = after
        self.scheduler = None

    async def __call__(self, seconds):
        await super().__call__(seconds)
        if len(self.calls) >= self.after:
            self.scheduler.stop()


async def _wait_for_deliveries(consumer, count, attempts=1000):
    for _ in range(attempts):
        if len(consumer.snapshots) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"only {len(consumer.snapshots)} deliveries")


@pytest.mark.asyncio
async def test_full_snapshot_delivery():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a", "b"]))
    scheduler, consumer, sleep = _scheduler(store, PlaybackConfig(seed_from_latest=False))

    state = await scheduler.run(max_commits=1)

    assert _flags(state.nodes) == [("a", False), ("b", False)]
    assert state.cursor.latest_time == 101
    assert [kind for kind, _ in consumer.calls] == ["initialize"]
    assert consumer.snapshots[0].first_run is True
    assert consumer.snapshots[0].node_count == 2
    assert sleep.calls == []
    assert scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_batch_is_paced_and_consumer_rebuilt_each_time():
    store = ScriptedStore()
    for i, date in enumerate([100, 200, 300]):
        store.put(snapshot_doc(f"c{i}", date, ["a"]))
    scheduler, consumer, sleep = _scheduler(store, PlaybackConfig(delay_ms=250, seed_from_latest=False))

    await scheduler.run(max_commits=3)

    assert sleep.calls == [0.25, 0.25]
    assert [kind for kind, _ in consumer.calls] == [
        "initialize",
        "refresh",
        "initialize",
        "refresh",
        "initialize",
    ]
    assert consumer.delivered_shas == ["c0", "c1", "c2"]
    assert len(store.queries) == 1


@pytest.mark.asyncio
async def test_diffs_read_from_changes_collection_after_snapshot():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a", "b", "c"]))
    store.put(diff_doc("c2", 200, added=["d"], changed=["b"], removed=["c"]), Projection.CHANGES)
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(seed_from_latest=False))

    state = await scheduler.run(max_commits=2)

    assert [q[2] for q in store.queries] == [Projection.FULL, Projection.CHANGES]
    assert store.queries[1][0] == 101
    assert _flags(state.nodes) == [("a", False), ("b", True), ("d", True)]
    assert consumer.snapshots[1].updated_paths == ["b", "d"]


@pytest.mark.asyncio
async def test_full_only_config_never_reads_changes():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    store.put(snapshot_doc("c2", 200, ["a", "b"]))
    config = PlaybackConfig(seed_from_latest=False, use_changes_projection=False, batch_size=1)
    scheduler, _, _ = _scheduler(store, config)

    await scheduler.run(max_commits=2)

    assert [q[2] for q in store.queries] == [Projection.FULL, Projection.FULL]


@pytest.mark.asyncio
async def test_empty_batch_retries_once_after_backoff_with_same_query():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    store.range_script = [[]]
    scheduler, consumer, sleep = _scheduler(store, PlaybackConfig(seed_from_latest=False))

    state = await scheduler.run(max_commits=1)

    assert sleep.calls == [5.0]
    assert store.queries == [(0, 20, Projection.FULL), (0, 20, Projection.FULL)]
    assert consumer.delivered_shas == ["c1"]
    assert state.cursor.latest_time == 101


@pytest.mark.asyncio
async def test_store_unavailable_backs_off_and_retries():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    store.range_script = [StoreUnavailable("connection reset")]
    scheduler, consumer, sleep = _scheduler(store, PlaybackConfig(backoff_ms=1500, seed_from_latest=False))

    await scheduler.run(max_commits=1)

    assert sleep.calls == [1.5]
    assert store.queries[0] == store.queries[1]
    assert consumer.delivered_shas == ["c1"]


@pytest.mark.asyncio
async def test_malformed_commit_is_skipped_and_cursor_moves_past_it():
    store = ScriptedStore()
    bad = snapshot_doc("bad", 100, ["a"])
    bad["edges"] = "not json{"
    store.put(bad)
    store.put(snapshot_doc("good", 200, ["a", "b"]))
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(delay_ms=0, seed_from_latest=False))

    state = await scheduler.run(max_commits=1)

    assert consumer.delivered_shas == ["good"]
    assert state.skipped == 1
    assert state.cursor.latest_time == 201


@pytest.mark.asyncio
async def test_out_of_order_commit_is_not_delivered():
    store = ScriptedStore()
    r200 = CommitRecord.from_document("r200", snapshot_doc("r200", 200, ["a"]))
    r100 = CommitRecord.from_document("r100", snapshot_doc("r100", 100, ["a"]))
    r300 = CommitRecord.from_document("r300", snapshot_doc("r300", 300, ["a"]))
    store.range_script = [[r200, r100], [r300]]
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(seed_from_latest=False))

    state = await scheduler.run(max_commits=2)

    assert consumer.delivered_shas == ["r200", "r300"]
    assert store.queries[1][0] == 201
    assert state.cursor.latest_time == 301


@pytest.mark.asyncio
async def test_jump_to_earlier_commit_does_not_rewind_playback():
    store = ScriptedStore()
    store.put(snapshot_doc("deadbeef", 100, ["x"]))
    store.put(snapshot_doc("c600", 600, ["a"]))
    config = PlaybackConfig(start_time=500, start_hash="deadbeef")
    scheduler, consumer, _ = _scheduler(store, config)

    state = await scheduler.run(max_commits=2)

    assert consumer.delivered_shas == ["deadbeef", "c600"]
    jump = consumer.snapshots[0]
    assert jump.discontinuity is True
    assert jump.first_run is True
    assert consumer.snapshots[1].discontinuity is False
    assert store.queries[0][0] == 500
    assert state.cursor.latest_time == 601


@pytest.mark.asyncio
async def test_jump_forces_full_snapshot_even_when_diff_exists():
    store = ScriptedStore()
    doc = snapshot_doc("deadbeef", 100, ["a", "b"])
    doc["changes"] = {"added": {"z": {"path": "z"}}, "changed": ["a"], "removed": []}
    store.put(doc)
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(start_time=500, start_hash="deadbeef"))

    state = await scheduler.run(max_commits=1)

    assert _flags(state.nodes) == [("a", False), ("b", False)]
    assert state.needs_full is True


@pytest.mark.asyncio
async def test_jump_target_without_snapshot_is_rejected():
    store = ScriptedStore()
    store.put(diff_doc("d1", 100, added=["a"]))
    store.put(snapshot_doc("c2", 200, ["a"]))
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(start_time=150, start_hash="d1"))

    state = await scheduler.run(max_commits=1)

    assert consumer.delivered_shas == ["c2"]
    assert state.skipped == 1


@pytest.mark.asyncio
async def test_jump_to_unknown_commit_is_a_noop():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(start_hash="missing"))

    state = await scheduler.run(max_commits=1)

    assert store.lookups == ["missing"]
    assert consumer.delivered_shas == ["c1"]
    assert state.skipped == 0


@pytest.mark.asyncio
async def test_jump_during_batch_discards_rest_of_batch():
    store = ScriptedStore()
    store.put(snapshot_doc("x", 50, ["x"]))
    for sha, date in [("c1", 100), ("c2", 200), ("c3", 300)]:
        store.put(snapshot_doc(sha, date, [sha]))

    def jump_after_first(scheduler, delivered):
        if delivered == 1:
            scheduler.load_commit("x")

    consumer = CallbackConsumer(jump_after_first)
    scheduler, _, _ = _scheduler(store, PlaybackConfig(start_time=100), consumer=consumer)
    consumer.scheduler = scheduler

    await scheduler.run(max_commits=4)

    assert consumer.delivered_shas == ["c1", "x", "c2", "c3"]
    assert consumer.snapshots[1].discontinuity is True
    assert [q[0] for q in store.queries] == [100, 101]
    # The jump invalidates the diff base, so the refetch reads full records
    assert store.queries[1][2] is Projection.FULL


@pytest.mark.asyncio
async def test_pause_drains_current_batch_and_stops_fetching():
    store = ScriptedStore()
    for sha, date in [("c1", 100), ("c2", 200), ("c3", 300)]:
        store.put(snapshot_doc(sha, date, [sha]))

    def pause_on_first(scheduler, delivered):
        if delivered == 1:
            scheduler.pause()

    consumer = CallbackConsumer(pause_on_first)
    scheduler, _, _ = _scheduler(store, PlaybackConfig(seed_from_latest=False), consumer=consumer)
    consumer.scheduler = scheduler

    task = asyncio.create_task(scheduler.run(max_commits=4))
    await wait_for_state(scheduler, SchedulerState.PAUSED)

    assert consumer.delivered_shas == ["c1", "c2", "c3"]
    assert len(store.queries) == 1

    store.put(snapshot_doc("c4", 400, ["c4"]))
    scheduler.resume()
    state = await asyncio.wait_for(task, timeout=5)

    assert consumer.delivered_shas[-1] == "c4"
    assert store.queries[-1] == (301, 20, Projection.FULL)
    assert state.paused is False


@pytest.mark.asyncio
async def test_resume_before_drain_finishes_is_ignored():
    store = ScriptedStore()
    for sha, date in [("c1", 100), ("c2", 200)]:
        store.put(snapshot_doc(sha, date, [sha]))

    def pause_and_resume(scheduler, delivered):
        if delivered == 1:
            scheduler.pause()
            scheduler.resume()

    consumer = CallbackConsumer(pause_and_resume)
    scheduler, _, _ = _scheduler(store, PlaybackConfig(seed_from_latest=False), consumer=consumer)
    consumer.scheduler = scheduler

    task = asyncio.create_task(scheduler.run())
    await wait_for_state(scheduler, SchedulerState.PAUSED)

    assert consumer.delivered_shas == ["c1", "c2"]
    assert len(store.queries) == 1
    assert scheduler.engine_state.paused is True

    scheduler.stop()
    await asyncio.wait_for(task, timeout=5)
    assert scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_load_while_paused_is_serviced_immediately():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    store.put(snapshot_doc("c2", 200, ["a", "b"]))
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(auto_play=False))

    task = asyncio.create_task(scheduler.run())
    await wait_for_state(scheduler, SchedulerState.PAUSED)

    scheduler.load_commit("c2")
    await _wait_for_deliveries(consumer, 1)
    await wait_for_state(scheduler, SchedulerState.PAUSED)

    assert consumer.delivered_shas == ["c2"]
    assert store.queries == []

    scheduler.stop()
    state = await asyncio.wait_for(task, timeout=5)
    assert state.cursor.latest_time == 201


@pytest.mark.asyncio
async def test_seeds_from_newest_commit_when_start_window_is_empty():
    store = ScriptedStore()
    store.put(snapshot_doc("c9", 900, ["a"]))
    store.range_script = [[]]
    scheduler, consumer, sleep = _scheduler(store, PlaybackConfig())

    state = await scheduler.run(max_commits=1)

    assert store.latest_calls == 1
    assert consumer.delivered_shas == ["c9"]
    assert consumer.snapshots[0].discontinuity is False
    assert sleep.calls == []
    assert state.cursor.latest_time == 901


@pytest.mark.asyncio
async def test_seed_lookup_happens_only_once():
    store = ScriptedStore()
    sleep = StoppingSleep(after=2)
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(), sleep=sleep)
    sleep.scheduler = scheduler

    await scheduler.run()

    assert store.latest_calls == 1
    assert sleep.calls == [5.0, 5.0]
    assert consumer.snapshots == []


@pytest.mark.asyncio
async def test_start_condition_disables_seed():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    sleep = StoppingSleep(after=1)
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(start_time=1000), sleep=sleep)
    sleep.scheduler = scheduler

    await scheduler.run()

    assert store.latest_calls == 0
    assert consumer.snapshots == []


class BlockingSleep(RecordingSleep):
    """Sleep that never finishes on its own."""

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_unreadable_store_line_does_not_stall_playback(tmp_path):
    store = FileCommitStore(str(tmp_path), "repo")
    store.append(snapshot_doc("c1", 100, ["a"]))
    with open(tmp_path / "repo.jsonl", "a") as f:
        f.write("{not json\n")
    store.append(snapshot_doc("c2", 200, ["a", "b"]))
    scheduler, consumer, sleep = _scheduler(
        store, PlaybackConfig(delay_ms=0, seed_from_latest=False, use_changes_projection=False)
    )

    state = await asyncio.wait_for(scheduler.run(max_commits=2), timeout=5)

    assert consumer.delivered_shas == ["c1", "c2"]
    assert 5.0 not in sleep.calls
    assert state.cursor.latest_time == 201


@pytest.mark.asyncio
async def test_jump_to_unreadable_commit_is_skipped():
    class UnreadableLookupStore(ScriptedStore):
        async def get_by_hash(self, sha, projection=Projection.FULL):
            raise MalformedPayload(sha, "document", "Expecting value")

    store = UnreadableLookupStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(start_hash="broken"))

    state = await scheduler.run(max_commits=1)

    assert consumer.delivered_shas == ["c1"]
    assert state.skipped == 1


@pytest.mark.asyncio
async def test_jump_during_backoff_is_serviced_immediately():
    store = ScriptedStore()
    store.put(snapshot_doc("x", 100, ["a"]))
    sleep = BlockingSleep()
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(start_time=1000), sleep=sleep)

    task = asyncio.ensure_future(scheduler.run(max_commits=1))
    await wait_for_state(scheduler, SchedulerState.WAITING_BACKOFF)
    scheduler.load_commit("x")
    state = await asyncio.wait_for(task, timeout=5)

    assert sleep.calls == [5.0]
    assert consumer.delivered_shas == ["x"]
    assert state.cursor.latest_time == 1000


@pytest.mark.asyncio
async def test_stop_during_backoff_ends_run():
    sleep = BlockingSleep()
    scheduler, _, _ = _scheduler(ScriptedStore(), PlaybackConfig(start_time=1000), sleep=sleep)

    task = asyncio.ensure_future(scheduler.run())
    await wait_for_state(scheduler, SchedulerState.WAITING_BACKOFF)
    scheduler.stop()
    await asyncio.wait_for(task, timeout=5)

    assert scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_jump_during_pacing_delay_is_serviced_immediately():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    store.put(snapshot_doc("c2", 200, ["a"]))
    store.put(snapshot_doc("x", 50, ["z"]))
    sleep = BlockingSleep()
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(start_time=100, delay_ms=60000), sleep=sleep)

    task = asyncio.ensure_future(scheduler.run(max_commits=2))
    await _wait_for_deliveries(consumer, 1)
    await wait_for_state(scheduler, SchedulerState.DELIVERING_COMMIT)
    scheduler.load_commit("x")
    await asyncio.wait_for(task, timeout=5)

    assert sleep.calls == [60.0]
    assert consumer.delivered_shas == ["c1", "x"]
    assert consumer.snapshots[1].discontinuity is True


@pytest.mark.asyncio
async def test_pause_during_pacing_delay_keeps_waiting():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a"]))
    store.put(snapshot_doc("c2", 200, ["a"]))
    sleep = BlockingSleep()
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(delay_ms=60000, seed_from_latest=False), sleep=sleep)

    task = asyncio.ensure_future(scheduler.run())
    await _wait_for_deliveries(consumer, 1)
    scheduler.pause()
    for _ in range(20):
        await asyncio.sleep(0)

    assert consumer.delivered_shas == ["c1"]
    assert scheduler.engine_state.paused is True
    assert scheduler.state is SchedulerState.DELIVERING_COMMIT

    scheduler.stop()
    await asyncio.wait_for(task, timeout=5)


def test_scheduler_source_compiles_without_warnings():
    from playback.replay import scheduler as module

    source = inspect.getsource(module)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, module.__file__, "exec")


@pytest.mark.asyncio
async def test_node_count_is_passed_through_without_root():
    store = ScriptedStore()
    store.put(snapshot_doc("c1", 100, ["a", "b"]))
    scheduler, consumer, _ = _scheduler(store, PlaybackConfig(seed_from_latest=False))

    await scheduler.run(max_commits=1)

    assert consumer.snapshots[0].node_count == 2
    assert len(consumer.snapshots[0].nodes) == 2
