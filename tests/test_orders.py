from uuid import uuid4

import pytest

from bookservice import commands, orders
from bookservice.errors import Conflict, InvalidRequest, NotFound
from bookservice.models import OrderStatus


class TestCountBooks:
    def test_repeated_ids_collapse_into_counts(self):
        assert orders.count_books(["A", "A", "B"]) == {"A": 2, "B": 1}

    def test_empty(self):
        assert orders.count_books([]) == {}


class TestCreate:
    async def test_new_order_is_pending(self, session):
        order = await orders.create(session, {"A": 2, "B": 1})

        stored = await orders.get(session, order.order_id)
        assert stored.books == {"A": 2, "B": 1}
        assert stored.status == OrderStatus.PENDING
        assert stored.created_at.tzinfo is not None
        assert stored.fulfilled_at is None

    async def test_ids_are_unique(self, session):
        first = await orders.create(session, {"A": 1})
        second = await orders.create(session, {"A": 1})

        assert first.order_id != second.order_id

    async def test_rejects_empty_order(self, session):
        with pytest.raises(InvalidRequest):
            await orders.create(session, {})

    async def test_rejects_non_positive_count(self, session):
        with pytest.raises(InvalidRequest):
            await orders.create(session, {"A": 0})


class TestGet:
    async def test_unknown_order(self, session):
        with pytest.raises(NotFound):
            await orders.get(session, str(uuid4()))

    async def test_malformed_id(self, session):
        with pytest.raises(InvalidRequest):
            await orders.get(session, "not-a-uuid")


class TestListAll:
    async def test_lists_all_statuses(self, session):
        first = await orders.create(session, {"A": 1})
        second = await orders.create(session, {"B": 3})
        await orders.mark_fulfilled(session, first.order_id)

        listed = {o.order_id: o for o in await orders.list_all(session)}

        assert listed[first.order_id].status == OrderStatus.FULFILLED
        assert listed[second.order_id].status == OrderStatus.PENDING


class TestMarkFulfilled:
    async def test_transitions_once(self, session):
        order = await orders.create(session, {"A": 1})

        fulfilled_at = await orders.mark_fulfilled(session, order.order_id)

        stored = await orders.get(session, order.order_id)
        assert stored.status == OrderStatus.FULFILLED
        assert stored.fulfilled_at == fulfilled_at

    async def test_second_transition_conflicts(self, session):
        order = await orders.create(session, {"A": 1})
        first = await orders.mark_fulfilled(session, order.order_id)

        with pytest.raises(Conflict):
            await orders.mark_fulfilled(session, order.order_id)

        stored = await orders.get(session, order.order_id)
        assert stored.fulfilled_at == first

    async def test_missing_order_conflicts(self, session):
        with pytest.raises(Conflict):
            await orders.mark_fulfilled(session, str(uuid4()))


class TestCreateOrderCommand:
    async def test_counts_books_and_publishes(self, async_session, redis):
        async with async_session() as session:
            order = await commands.create_order(session, redis, ["A", "A", "B"])

        async with async_session() as session:
            stored = await orders.get(session, order.order_id)
        assert stored.books == {"A": 2, "B": 1}

        channel, message = redis.messages[-1]
        assert channel == "order_events"
        assert message["event_type"] == "OrderCreated"
        assert message["data"]["order_id"] == order.order_id
        assert message["data"]["books"] == {"A": 2, "B": 1}

    async def test_empty_order_is_rejected_without_event(self, async_session, redis):
        async with async_session() as session:
            with pytest.raises(InvalidRequest):
                await commands.create_order(session, redis, [])

        assert redis.messages == []
