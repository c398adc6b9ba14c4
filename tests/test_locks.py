"""Per-conversation in-process locks."""
import asyncio

from api.features.interview.locks import ConversationLocks


async def test_same_key_is_serialised():
    locks = ConversationLocks()
    events = []

    async def turn(name):
        async with locks.hold("c1"):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(turn("a"), turn("b"))

    assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert locks.holders("c1") == 0


async def test_different_keys_do_not_block():
    locks = ConversationLocks()

    async with locks.hold("c1"):
        await asyncio.wait_for(_enter(locks, "c2"), timeout=1)
        assert locks.holders("c1") == 1


async def test_lock_released_on_error():
    locks = ConversationLocks()

    try:
        async with locks.hold("c1"):
            raise ValueError("boom")
    except ValueError:
        pass

    assert locks.holders("c1") == 0
    await asyncio.wait_for(_enter(locks, "c1"), timeout=1)


async def _enter(locks, key):
    async with locks.hold(key):
        return True
