# tests/test_locks.py
import asyncio

from marketplace.core.locks import KeyedLockRegistry, coupon_key


def test_coupon_keys_ignore_case():
    assert coupon_key("save20") == coupon_key("SAVE20")


async def test_same_key_runs_one_at_a_time():
    registry = KeyedLockRegistry()
    events = []

    async def worker(name):
        async with registry.hold("order:1"):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert len(registry) == 0


async def test_overlapping_key_sets_do_not_deadlock():
    registry = KeyedLockRegistry()

    async def worker(*keys):
        async with registry.hold(*keys):
            await asyncio.sleep(0.01)
        return keys

    done = await asyncio.wait_for(
        asyncio.gather(worker("order:1", "driver:1"), worker("driver:1", "order:1")),
        timeout=2,
    )
    assert len(done) == 2
    assert len(registry) == 0
