"""
Unit tests for the per-collection supervisor: restart, teardown and shutdown.
"""

import asyncio

import pytest

from fakes import wait_for
from searchsync.collections.prices import transform_price
from searchsync.platform.config import Settings
from searchsync.sync.config import SyncConfig
from searchsync.sync.listener import ListenerState
from searchsync.sync.supervisor import CollectionSync, PipelineState, SyncSupervisor
from searchsync.sync.writer import IndexWriter


@pytest.fixture
def config():
    return SyncConfig(
        collection="prices",
        index="prices",
        transform=transform_price,
        settings={"searchableAttributes": ["name", "code"]},
        page_size=2,
    )


@pytest.fixture
def writer(search_store):
    return IndexWriter(search_store, "prices", max_retries=0, retry_delay=0)


def _streaming(sync: CollectionSync) -> bool:
    listener = sync.listener
    return (
        sync.state is PipelineState.STREAMING
        and listener is not None
        and listener.state is ListenerState.STREAMING
    )


async def _stop(task: asyncio.Task) -> None:
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


async def test_bulk_load_then_stream(config, source_store, search_store, writer):
    source_store.seed("prices", [{"_id": "a", "Price": 1}, {"_id": "b"}, {"_id": "c"}])
    sync = CollectionSync(config, source_store, writer, restart_delay=0)
    task = asyncio.create_task(sync.run())

    await wait_for(lambda: _streaming(sync))
    assert sync.last_bulk_count == 3
    assert search_store.indexes["prices"]["settings"] == {"searchableAttributes": ["name", "code"]}

    source_store.insert("prices", {"_id": "d", "Name": "new"})
    await wait_for(lambda: "d" in search_store.docs("prices"))

    await _stop(task)
    assert sync.state is PipelineState.STOPPED


async def test_restart_repairs_mutations_missed_during_outage(
    config, source_store, search_store, writer
):
    source_store.seed("prices", [{"_id": "a", "Price": 1}, {"_id": "b", "Price": 2}])
    sync = CollectionSync(config, source_store, writer, restart_delay=0.1)
    task = asyncio.create_task(sync.run())
    await wait_for(lambda: _streaming(sync))
    first_listener = sync.listener

    source_store.open_feed("prices").fail(ConnectionResetError("network blip"))
    await wait_for(lambda: sync.state is PipelineState.RESTARTING)

    # No feed is attached, so these mutations produce no events
    assert source_store.open_feed("prices") is None
    source_store.update("prices", "a", Price=100)
    source_store.delete("prices", "b")
    source_store.insert("prices", {"_id": "c", "Price": 3})

    await wait_for(lambda: sync.runs == 2 and _streaming(sync))

    docs = search_store.docs("prices")
    assert set(docs) == {"a", "c"}
    assert docs["a"]["price"] == 100
    assert docs["c"]["price"] == 3
    assert sync.restarts == 1
    assert "ChangeFeedError" in sync.last_error

    # The failed listener was torn down before a new one attached
    assert sync.listener is not first_listener
    assert first_listener.dispatcher.closed
    assert len(source_store.feeds["prices"]) == 2
    assert source_store.feeds["prices"][0].closed

    await _stop(task)


async def test_restart_waits_for_delay(config, source_store, writer):
    sync = CollectionSync(config, source_store, writer, restart_delay=0.3)
    task = asyncio.create_task(sync.run())
    await wait_for(lambda: _streaming(sync))

    source_store.open_feed("prices").fail(ConnectionResetError("blip"))
    await wait_for(lambda: sync.state is PipelineState.RESTARTING)
    await asyncio.sleep(0.1)
    assert sync.runs == 1
    assert sync.listener is None

    await wait_for(lambda: sync.runs == 2, timeout=2)
    await _stop(task)


async def test_bulk_failure_restarts_pipeline(config, source_store, search_store, writer):
    source_store.seed("prices", [{"_id": "a"}, {"_id": "b"}, {"_id": "c"}])
    search_store.fail_next("add_documents", ConnectionError("meilisearch down"))
    sync = CollectionSync(config, source_store, writer, restart_delay=0)
    task = asyncio.create_task(sync.run())

    await wait_for(lambda: _streaming(sync))

    assert sync.runs == 2
    assert sync.restarts == 1
    assert set(search_store.docs("prices")) == {"a", "b", "c"}
    # The failed bulk pass never attached a listener
    assert len(source_store.feeds["prices"]) == 1
    await _stop(task)


async def test_second_listener_cannot_attach(config, source_store, writer):
    sync = CollectionSync(config, source_store, writer)
    sync._attach_listener()

    with pytest.raises(RuntimeError):
        sync._attach_listener()

    await sync._teardown_listener()
    assert sync._attach_listener() is not None


async def test_shutdown_does_not_wait_for_in_flight_writes(
    config, source_store, search_store, writer
):
    never = asyncio.Event()

    async def hang_slow_record(operation, documents):
        if documents[0]["id"] == "slow":
            await never.wait()

    search_store.before_write = hang_slow_record
    sync = CollectionSync(config, source_store, writer, restart_delay=0)
    supervisor = SyncSupervisor([sync])
    supervisor.start()
    await wait_for(lambda: _streaming(sync))

    source_store.insert("prices", {"_id": "slow"})
    await wait_for(lambda: ("add_documents", "prices", ["slow"]) in search_store.calls)

    await asyncio.wait_for(supervisor.stop(), timeout=1)

    assert sync.state is PipelineState.STOPPED
    assert "slow" not in search_store.docs("prices")
    assert sync.listener is None


async def test_supervisor_runs_collections_independently(source_store, search_store):
    settings = Settings(
        SYNC_RESTART_DELAY_SECONDS=0,
        SYNC_WRITE_MAX_RETRIES=0,
        SYNC_WRITE_RETRY_DELAY_SECONDS=0,
    )
    configs = [
        SyncConfig(collection="prices", index="prices", transform=transform_price),
        SyncConfig(collection="offers", index="offers", transform=transform_price),
    ]
    source_store.seed("prices", [{"_id": "p1"}])
    source_store.seed("offers", [{"_id": "o1"}, {"_id": "o2"}])

    supervisor = SyncSupervisor.build(configs, source_store, search_store, settings)
    supervisor.start()
    await wait_for(lambda: all(_streaming(p) for p in supervisor.pipelines))

    # Breaking one feed leaves the other collection streaming
    source_store.open_feed("offers").fail(ConnectionResetError("blip"))
    await wait_for(lambda: supervisor.pipelines[1].restarts == 1)
    assert supervisor.pipelines[0].restarts == 0

    status = {s["collection"]: s for s in supervisor.status()}
    assert status["prices"]["last_bulk_count"] == 1
    assert status["offers"]["last_bulk_count"] == 2
    assert set(search_store.docs("offers")) == {"o1", "o2"}

    with pytest.raises(RuntimeError):
        supervisor.start()

    await supervisor.stop()
    assert all(s["state"] == "stopped" for s in supervisor.status())
