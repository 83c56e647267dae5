"""
Tests for the in-memory conversation store and its serialization tokens.

Covers append ordering, lazy creation, eviction by first-message age and
eviction waiting for a turn that holds the conversation token.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from agenthub.domain import Message, MessageRole
from agenthub.memory import ConversationLocks, InMemoryConversationStore


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def user(content: str, timestamp: datetime = NOW) -> Message:
    return Message(role=MessageRole.USER, content=content, timestamp=timestamp)


def assistant(content: str, timestamp: datetime = NOW) -> Message:
    return Message(role=MessageRole.ASSISTANT, content=content, timestamp=timestamp)


@pytest.fixture
def store():
    return InMemoryConversationStore()


# ============================================
# Append / Read / List
# ============================================


class TestAppendAndRead:
    """Tests for transcript ordering."""

    @pytest.mark.asyncio
    async def test_read_missing_conversation_is_empty(self, store):
        assert await store.read("conv-missing") == []
        assert await store.list() == []

    @pytest.mark.asyncio
    async def test_append_returns_zero_based_positions(self, store):
        """Positions count up from 0 in append order."""
        assert await store.append("conv-1", user("hi")) == 0
        assert await store.append("conv-1", assistant("hello")) == 1
        assert await store.append("conv-1", user("again")) == 2

    @pytest.mark.asyncio
    async def test_read_preserves_append_order(self, store):
        await store.append("conv-1", user("one"))
        await store.append("conv-1", assistant("two"))

        messages = await store.read("conv-1")
        assert [m.content for m in messages] == ["one", "two"]
        assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]

    @pytest.mark.asyncio
    async def test_read_returns_copy(self, store):
        """Mutating the returned list does not touch the transcript."""
        await store.append("conv-1", user("one"))

        messages = await store.read("conv-1")
        messages.clear()

        assert len(await store.read("conv-1")) == 1

    @pytest.mark.asyncio
    async def test_list_in_creation_order(self, store):
        await store.append("conv-b", user("b"))
        await store.append("conv-a", user("a"))
        await store.append("conv-b", user("b2"))

        assert await store.list() == ["conv-b", "conv-a"]

    @pytest.mark.asyncio
    async def test_close_drops_transcripts(self, store):
        await store.append("conv-1", user("one"))
        await store.close()
        assert await store.list() == []


# ============================================
# Eviction
# ============================================


class TestEviction:
    """Tests for retention eviction."""

    @pytest.mark.asyncio
    async def test_evicts_only_conversations_started_before_cutoff(self, store):
        """Age is decided by the first message, not the latest."""
        old_start = NOW - timedelta(days=31)
        await store.append("conv-old", user("old", timestamp=old_start))
        # Recent activity does not save a conversation that started long ago
        await store.append("conv-old", assistant("recent", timestamp=NOW))
        await store.append("conv-new", user("new", timestamp=NOW - timedelta(days=1)))

        removed = await store.evict_older_than(NOW - timedelta(days=30))

        assert removed == ["conv-old"]
        assert await store.list() == ["conv-new"]
        assert await store.read("conv-old") == []

    @pytest.mark.asyncio
    async def test_cutoff_is_strict(self, store):
        """A conversation starting exactly at the cutoff is kept."""
        cutoff = NOW - timedelta(days=30)
        await store.append("conv-edge", user("edge", timestamp=cutoff))

        assert await store.evict_older_than(cutoff) == []
        assert await store.list() == ["conv-edge"]

    @pytest.mark.asyncio
    async def test_eviction_is_idempotent(self, store):
        await store.append("conv-old", user("old", timestamp=NOW - timedelta(days=40)))
        cutoff = NOW - timedelta(days=30)

        assert await store.evict_older_than(cutoff) == ["conv-old"]
        assert await store.evict_older_than(cutoff) == []

    @pytest.mark.asyncio
    async def test_eviction_waits_for_held_token(self, store):
        """A sweep cannot delete a conversation mid-turn."""
        await store.append("conv-old", user("old", timestamp=NOW - timedelta(days=40)))
        cutoff = NOW - timedelta(days=30)

        turn_holding = asyncio.Event()
        release_turn = asyncio.Event()

        async def turn():
            async with store.locks.hold("conv-old"):
                turn_holding.set()
                await release_turn.wait()
                await store.append("conv-old", assistant("reply"))

        turn_task = asyncio.create_task(turn())
        await turn_holding.wait()

        sweep_task = asyncio.create_task(store.evict_older_than(cutoff))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert not sweep_task.done()
        assert len(await store.read("conv-old")) == 1

        release_turn.set()
        await turn_task
        removed = await sweep_task

        # The turn finished its append before the conversation was removed
        assert removed == ["conv-old"]
        assert await store.read("conv-old") == []


# ============================================
# Serialization Tokens
# ============================================


class TestConversationLocks:
    """Tests for the keyed serialization tokens."""

    @pytest.mark.asyncio
    async def test_entries_dropped_when_idle(self):
        locks = ConversationLocks()

        async with locks.hold("conv-1"):
            assert locks.is_held("conv-1")
            assert len(locks) == 1

        assert not locks.is_held("conv-1")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_waiters_run_in_arrival_order(self):
        """Queued holders acquire the token first-come first-served."""
        locks = ConversationLocks()
        order: list[int] = []
        release = asyncio.Event()

        async def first():
            async with locks.hold("conv-1"):
                await release.wait()
                order.append(0)

        async def waiter(n: int):
            async with locks.hold("conv-1"):
                order.append(n)

        tasks = [asyncio.create_task(first())]
        await asyncio.sleep(0)
        for n in range(1, 4):
            tasks.append(asyncio.create_task(waiter(n)))
            await asyncio.sleep(0)

        release.set()
        await asyncio.gather(*tasks)

        assert order == [0, 1, 2, 3]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_conversations_do_not_contend(self):
        locks = ConversationLocks()
        release = asyncio.Event()

        async def hold_a():
            async with locks.hold("conv-a"):
                await release.wait()

        task = asyncio.create_task(hold_a())
        await asyncio.sleep(0)

        # Completes immediately even though conv-a is held
        await asyncio.wait_for(self._hold_briefly(locks, "conv-b"), timeout=1)

        release.set()
        await task

    @staticmethod
    async def _hold_briefly(locks: ConversationLocks, conversation_id: str) -> None:
        async with locks.hold(conversation_id):
            pass

    @pytest.mark.asyncio
    async def test_token_released_on_exception(self):
        locks = ConversationLocks()

        with pytest.raises(RuntimeError):
            async with locks.hold("conv-1"):
                raise RuntimeError("boom")

        assert not locks.is_held("conv-1")
        assert len(locks) == 0
