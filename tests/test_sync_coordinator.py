"""
Tests for the profile sync coordinator.

The remote side is a scripted FakeFetcher; storage is a real SQLite file per
test so the single-profile rule is checked against actual rows.
"""

import asyncio

import pytest

from conftest import make_snapshot, partial_snapshot
from tracker.database.models import PlayerRecord
from tracker.services.event_bus import ProfileEvent
from tracker.services.sync_coordinator import LoadState
from tracker.utils.exceptions import (
    ConcurrencyError, NetworkError, NoProfileDataError, RefreshError, SaveError
)


async def claim(store, tag='#2PP', **overrides):
    snapshot = make_snapshot(tag, **overrides)
    await store.upsert_as_my_profile(snapshot)
    return snapshot


# load_profile

@pytest.mark.asyncio
async def test_load_without_profile_skips_network(coordinator, fetcher, settings, events):
    assert await coordinator.load_profile() is None

    assert coordinator.state == LoadState.NOT_FOUND
    assert coordinator.current_snapshot is None
    assert fetcher.calls == []
    assert not settings.has_claimed_profile()
    assert events == []


@pytest.mark.asyncio
async def test_load_publishes_cached_then_fresh(coordinator, fetcher, store, settings, events):
    await claim(store, trophies=5000)
    fetcher.script('#2PP', make_snapshot(trophies=5300))
    published = []
    coordinator.add_snapshot_listener(published.append)

    snapshot = await coordinator.load_profile()

    assert [s.trophies for s in published] == [5000, 5300]
    assert snapshot.trophies == 5300
    assert coordinator.state == LoadState.READY
    assert (await store.load_my_snapshot()).trophies == 5300
    assert settings.has_claimed_profile()
    assert fetcher.ranking_calls == ['#2PP']
    assert coordinator.rankings.country_code == 'US'
    # Loading never announces changes
    assert events == []


@pytest.mark.asyncio
async def test_load_keeps_cache_when_fetch_fails(coordinator, fetcher, store):
    await claim(store, trophies=5000)
    fetcher.script('#2PP', NetworkError("connection refused"))

    snapshot = await coordinator.load_profile()

    assert snapshot.trophies == 5000
    assert coordinator.state == LoadState.READY
    assert coordinator.last_error is None


@pytest.mark.asyncio
async def test_load_fetch_is_bounded(coordinator, fetcher, store):
    await claim(store, trophies=5000)
    fetcher.gate = asyncio.Event()

    snapshot = await coordinator.load_profile()

    assert snapshot.trophies == 5000
    assert fetcher.cancelled == 1


@pytest.mark.asyncio
async def test_load_without_reconcile_uses_saved_record(coordinator, fetcher, store):
    await claim(store, trophies=5000)
    fetcher.script('#2PP', make_snapshot(trophies=5300))

    snapshot = await coordinator.load_profile(reconcile=False)

    assert snapshot.trophies == 5000
    assert coordinator.state == LoadState.READY
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_load_partial_response_keeps_units(coordinator, fetcher, store):
    await claim(store)
    fetcher.script('#2PP', partial_snapshot(trophies=4800))

    snapshot = await coordinator.load_profile()

    assert snapshot.trophies == 4800
    assert len(snapshot.troops) == 2
    assert len((await store.load_my_snapshot()).heroes) == 1


@pytest.mark.asyncio
async def test_rankings_only_for_legend_league(coordinator, fetcher, store):
    crystal = {'id': 29000013, 'name': 'Crystal League I'}
    await claim(store, league=crystal)
    fetcher.script('#2PP', make_snapshot(league=crystal))

    await coordinator.load_profile()

    assert fetcher.ranking_calls == []
    assert coordinator.rankings is None


# refresh_profile

@pytest.mark.asyncio
async def test_refresh_requires_loaded_profile(coordinator):
    with pytest.raises(NoProfileDataError):
        await coordinator.refresh_profile()


@pytest.mark.asyncio
async def test_refresh_updates_store_and_notifies(coordinator, fetcher, store, settings, clock, events):
    await claim(store, trophies=5000)
    fetcher.script('#2PP', make_snapshot(trophies=5000), make_snapshot(trophies=5400))
    await coordinator.load_profile()

    snapshot = await coordinator.refresh_profile()

    assert snapshot.trophies == 5400
    assert coordinator.current_snapshot.trophies == 5400
    assert (await store.load_my_snapshot()).trophies == 5400
    assert settings.last_refresh_at() == clock.now
    assert events == [ProfileEvent.PROFILE_UPDATED]
    assert not coordinator.is_refreshing


@pytest.mark.asyncio
async def test_second_refresh_is_rejected_while_first_runs(coordinator, fetcher, store):
    await claim(store)
    fetcher.script('#2PP', make_snapshot())
    await coordinator.load_profile()

    fetcher.gate = asyncio.Event()
    fetcher.started.clear()
    first = asyncio.ensure_future(coordinator.refresh_profile())
    await fetcher.started.wait()

    with pytest.raises(ConcurrencyError):
        await coordinator.refresh_profile()

    fetcher.gate.set()
    await first
    assert not coordinator.is_refreshing
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
async def test_refresh_timeout_reports_cause(coordinator, fetcher, store):
    await claim(store, trophies=5000)
    fetcher.script('#2PP', make_snapshot(trophies=5000))
    await coordinator.load_profile()
    fetcher.gate = asyncio.Event()

    with pytest.raises(RefreshError) as exc_info:
        await coordinator.refresh_profile()

    assert exc_info.value.cause == 'timeout'
    assert coordinator.last_error is exc_info.value
    assert coordinator.current_snapshot.trophies == 5000
    assert not coordinator.is_refreshing
    assert fetcher.cancelled == 1


@pytest.mark.asyncio
async def test_refresh_network_failure_reports_cause(coordinator, fetcher, store, events):
    await claim(store)
    fetcher.script('#2PP', make_snapshot(), NetworkError("unreachable"))
    await coordinator.load_profile()

    with pytest.raises(RefreshError) as exc_info:
        await coordinator.refresh_profile()

    assert exc_info.value.cause == 'network'
    assert events == []


@pytest.mark.asyncio
async def test_cancelled_refresh_reports_cancellation(coordinator, fetcher, store):
    await claim(store)
    fetcher.script('#2PP', make_snapshot())
    await coordinator.load_profile()

    fetcher.gate = asyncio.Event()
    fetcher.started.clear()
    task = asyncio.ensure_future(coordinator.refresh_profile())
    await fetcher.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert coordinator.last_error.cause == 'cancelled'
    assert 'cancelled' in coordinator.last_error.user_message
    assert not coordinator.is_refreshing


@pytest.mark.asyncio
async def test_refresh_store_failure_reports_cause(coordinator, fetcher, store, database):
    await claim(store)
    fetcher.script('#2PP', make_snapshot())
    await coordinator.load_profile()
    async with database.engine.begin() as conn:
        await conn.run_sync(PlayerRecord.__table__.drop)

    with pytest.raises(RefreshError) as exc_info:
        await coordinator.refresh_profile()

    assert exc_info.value.cause == 'store'


# save_as_my_profile

@pytest.mark.asyncio
async def test_save_claims_profile(coordinator, fetcher, store, settings, session_cache, events):
    fetcher.script('#BBB', make_snapshot('#BBB', 'Searched'))
    session_cache.put(partial_snapshot('#BBB', 'Searched'))

    snapshot = await coordinator.save_as_my_profile(' bbb ')

    assert snapshot.tag == '#BBB'
    assert snapshot.has_unit_data
    assert coordinator.current_snapshot.tag == '#BBB'
    assert coordinator.state == LoadState.READY
    assert await store.my_profile_tags() == ['#BBB']
    assert settings.has_claimed_profile()
    assert session_cache.get() is None
    assert events == [ProfileEvent.PROFILE_UPDATED]


@pytest.mark.asyncio
async def test_save_replaces_previous_profile(coordinator, fetcher, store):
    await claim(store, '#AAA')
    fetcher.script('#BBB', make_snapshot('#BBB'))

    await coordinator.save_as_my_profile('#BBB')

    assert await store.my_profile_tags() == ['#BBB']
    assert await store.get_by_tag('#AAA') is not None


@pytest.mark.asyncio
async def test_failed_save_leaves_store_untouched(coordinator, store, events):
    await claim(store, '#AAA')

    with pytest.raises(SaveError) as exc_info:
        await coordinator.save_as_my_profile('#BBB')

    assert exc_info.value.cause == 'not_found'
    assert await store.my_profile_tags() == ['#AAA']
    assert await store.get_by_tag('#BBB') is None
    assert events == []


@pytest.mark.asyncio
async def test_save_rejects_bad_tag_without_fetching(coordinator, fetcher):
    with pytest.raises(SaveError) as exc_info:
        await coordinator.save_as_my_profile('##')

    assert exc_info.value.cause == 'invalid_tag'
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_save_discards_background_fetch_for_previous_owner(coordinator, fetcher, store):
    await claim(store, '#AAA', trophies=5000)
    fetcher.script('#AAA', make_snapshot('#AAA', trophies=9999))
    fetcher.script('#BBB', make_snapshot('#BBB'))

    fetcher.gate = asyncio.Event()
    load = asyncio.ensure_future(coordinator.load_profile())
    await fetcher.started.wait()
    save = asyncio.ensure_future(coordinator.save_as_my_profile('#BBB'))
    await asyncio.sleep(0.01)
    fetcher.gate.set()
    await asyncio.gather(load, save)

    assert coordinator.current_snapshot.tag == '#BBB'
    assert await store.my_profile_tags() == ['#BBB']
    assert (await store.get_by_tag('#AAA')).trophies == 5000


# remove_my_profile / reset

@pytest.mark.asyncio
async def test_remove_profile(coordinator, fetcher, store, settings, events):
    fetcher.script('#2PP', make_snapshot())
    await coordinator.save_as_my_profile('#2PP')

    assert await coordinator.remove_my_profile() == 1

    assert coordinator.current_snapshot is None
    assert coordinator.state == LoadState.NOT_FOUND
    assert not await store.has_my_profile()
    assert not settings.has_claimed_profile()
    assert events == [ProfileEvent.PROFILE_UPDATED, ProfileEvent.PROFILE_REMOVED]


@pytest.mark.asyncio
async def test_remove_during_refresh_discards_refresh_result(coordinator, fetcher, store):
    await claim(store)
    fetcher.script('#2PP', make_snapshot())
    await coordinator.load_profile()

    fetcher.gate = asyncio.Event()
    fetcher.started.clear()
    refresh = asyncio.ensure_future(coordinator.refresh_profile())
    await fetcher.started.wait()
    await coordinator.remove_my_profile()
    fetcher.gate.set()

    assert await refresh is None
    assert coordinator.current_snapshot is None
    assert not await store.has_my_profile()
    assert coordinator.state == LoadState.NOT_FOUND


@pytest.mark.asyncio
async def test_remove_during_load_keeps_not_found(coordinator, fetcher, store):
    await claim(store)
    fetcher.script('#2PP', make_snapshot(trophies=9999))

    fetcher.gate = asyncio.Event()
    load = asyncio.ensure_future(coordinator.load_profile())
    await fetcher.started.wait()
    await coordinator.remove_my_profile()
    fetcher.gate.set()

    assert await load is None
    assert coordinator.state == LoadState.NOT_FOUND
    assert coordinator.current_snapshot is None
    assert not await store.has_my_profile()


@pytest.mark.asyncio
async def test_load_after_remove_skips_network(coordinator, fetcher):
    fetcher.script('#2PP', make_snapshot())
    await coordinator.save_as_my_profile('#2PP')
    await coordinator.remove_my_profile()
    fetcher.calls.clear()

    assert await coordinator.load_profile() is None

    assert coordinator.state == LoadState.NOT_FOUND
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_reset_all_data(coordinator, fetcher, store, settings, session_cache, events):
    fetcher.script('#2PP', make_snapshot())
    await coordinator.save_as_my_profile('#2PP')
    await settings.set_auto_refresh(True)
    session_cache.put(make_snapshot('#BBB'))

    await coordinator.reset_all_data()

    assert await store.get_by_tag('#2PP') is None
    assert settings.list_all() == {}
    assert coordinator.last_searched() is None
    assert coordinator.current_snapshot is None
    assert events[-1] == ProfileEvent.PROFILE_REMOVED


@pytest.mark.asyncio
async def test_last_searched_reads_session_cache(coordinator, session_cache):
    assert coordinator.last_searched() is None
    session_cache.put(make_snapshot('#BBB'))
    assert coordinator.last_searched().tag == '#BBB'


@pytest.mark.asyncio
async def test_removed_listener_is_not_called(coordinator, fetcher, store):
    await claim(store)
    fetcher.script('#2PP', make_snapshot())
    published = []
    coordinator.add_snapshot_listener(published.append)
    coordinator.remove_snapshot_listener(published.append)

    await coordinator.load_profile()

    assert published == []


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_load(coordinator, fetcher, store):
    await claim(store)
    fetcher.script('#2PP', make_snapshot(trophies=6000))

    def broken(snapshot):
        raise RuntimeError("render failed")

    coordinator.add_snapshot_listener(broken)

    snapshot = await coordinator.load_profile()

    assert snapshot.trophies == 6000
