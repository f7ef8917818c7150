import asyncio

from streamsync.pipeline.task_runner import run_bounded, run_bounded_sync
from streamsync.shared.results import Err, FailureKind, Ok, SyncFailure


async def test_concurrency_never_exceeds_limit():
    active = 0
    peak = 0

    async def op(item):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return item

    summary = await run_bounded(list(range(20)), op, max_concurrency=5, timeout=5)

    assert peak <= 5
    assert summary.total == 20
    assert summary.success_count == 20
    assert summary.failure_count == 0


async def test_timeout_is_isolated_to_one_item():
    async def op(item):
        if item == 2:
            await asyncio.sleep(1)
        return item

    summary = await run_bounded([1, 2, 3], op, max_concurrency=3, timeout=0.05)

    assert summary.success_count == 2
    assert summary.timeout_count == 1
    assert summary.failure_count == 1
    assert summary.failed_ids == [2]


async def test_err_and_exceptions_count_as_errors():
    async def op(item):
        if item == "err":
            return Err(SyncFailure(FailureKind.UPSTREAM, "down"))
        if item == "raise":
            raise ValueError("bad")
        return Ok(item.upper())

    summary = await run_bounded(["ok", "err", "raise"], op, max_concurrency=2, timeout=1)

    assert summary.success_count == 1
    assert summary.failure_count == 2
    assert sorted(summary.failed_ids) == ["err", "raise"]
    ok = [o for o in summary.outcomes if o.ok]
    assert ok[0].result == "OK"
    assert summary.failure_rate == 2 / 3


async def test_key_function_names_failed_items():
    async def op(item):
        raise RuntimeError("x")

    summary = await run_bounded([{"id": 10}, {"id": 11}], op, key=lambda i: i["id"], timeout=1)
    assert summary.failed_ids == [10, 11]


def test_sync_wrapper_runs_outside_event_loop():
    async def op(item):
        return item * 2

    summary = run_bounded_sync([1, 2, 3], op, max_concurrency=2, timeout=1)
    assert summary.success_count == 3
    assert summary.as_dict()["failed_ids"] == []
