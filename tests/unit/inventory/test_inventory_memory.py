"""Tests for InMemoryInventoryService counters."""

import asyncio

import pytest

from ordersaga.core.exceptions import InventoryError
from ordersaga.inventory.memory import InMemoryInventoryService


@pytest.fixture
async def inventory():
    inventory = InMemoryInventoryService(low_stock_threshold=3)
    await inventory.set_stock("p-1", 5)
    return inventory


async def counters(inventory, product_id="p-1"):
    level = await inventory.get_stock(product_id)
    return level.available, level.reserved, level.sold


class TestReserve:
    @pytest.mark.asyncio
    async def test_reserve_moves_available_to_reserved(self, inventory):
        assert await inventory.reserve_stock("p-1", 2) is True
        assert await counters(inventory) == (3, 2, 0)

    @pytest.mark.asyncio
    async def test_insufficient_stock_changes_nothing(self, inventory):
        assert await inventory.reserve_stock("p-1", 6) is False
        assert await counters(inventory) == (5, 0, 0)

    @pytest.mark.asyncio
    async def test_untracked_product_cannot_be_reserved(self, inventory):
        assert await inventory.reserve_stock("p-unknown", 1) is False

    @pytest.mark.asyncio
    async def test_quantity_must_be_positive(self, inventory):
        with pytest.raises(ValueError):
            await inventory.reserve_stock("p-1", 0)

    @pytest.mark.asyncio
    async def test_concurrent_reservations_never_oversell(self, inventory):
        results = await asyncio.gather(*(inventory.reserve_stock("p-1", 1) for _ in range(20)))

        assert results.count(True) == 5
        assert await counters(inventory) == (0, 5, 0)


class TestReleaseConfirmRestock:
    @pytest.mark.asyncio
    async def test_release(self, inventory):
        await inventory.reserve_stock("p-1", 3)

        assert await inventory.release_stock("p-1", 2) == 2
        assert await counters(inventory) == (4, 1, 0)

    @pytest.mark.asyncio
    async def test_release_is_clamped_to_reserved(self, inventory):
        await inventory.reserve_stock("p-1", 1)

        assert await inventory.release_stock("p-1", 4) == 1
        assert await counters(inventory) == (5, 0, 0)

    @pytest.mark.asyncio
    async def test_release_untracked(self, inventory):
        with pytest.raises(InventoryError):
            await inventory.release_stock("p-unknown", 1)

    @pytest.mark.asyncio
    async def test_confirm(self, inventory):
        await inventory.reserve_stock("p-1", 3)

        await inventory.confirm_reservation("p-1", 3)

        assert await counters(inventory) == (2, 0, 3)

    @pytest.mark.asyncio
    async def test_confirm_more_than_reserved(self, inventory):
        await inventory.reserve_stock("p-1", 1)

        with pytest.raises(InventoryError) as exc_info:
            await inventory.confirm_reservation("p-1", 2)

        assert exc_info.value.product_id == "p-1"
        assert await counters(inventory) == (4, 1, 0)

    @pytest.mark.asyncio
    async def test_restock(self, inventory):
        await inventory.reserve_stock("p-1", 2)
        await inventory.confirm_reservation("p-1", 2)

        assert await inventory.restock("p-1", 5) == 2
        assert await counters(inventory) == (5, 0, 0)

    @pytest.mark.asyncio
    async def test_restock_untracked(self, inventory):
        with pytest.raises(InventoryError):
            await inventory.restock("p-unknown", 1)


class TestStockLevel:
    @pytest.mark.asyncio
    async def test_get_untracked(self, inventory):
        assert await inventory.get_stock("p-unknown") is None

    @pytest.mark.asyncio
    async def test_set_stock_keeps_other_counters(self, inventory):
        await inventory.reserve_stock("p-1", 2)

        level = await inventory.set_stock("p-1", 10)

        assert (level.available, level.reserved) == (10, 2)
        assert level.total == 12

    @pytest.mark.asyncio
    async def test_set_negative_stock(self, inventory):
        with pytest.raises(ValueError):
            await inventory.set_stock("p-1", -1)

    @pytest.mark.asyncio
    async def test_flags(self, inventory):
        await inventory.reserve_stock("p-1", 2)
        level = await inventory.get_stock("p-1")

        assert level.low_stock is True
        assert level.out_of_stock is False
        assert level.to_dict() == {
            "product_id": "p-1",
            "available": 3,
            "reserved": 2,
            "sold": 0,
            "total": 5,
            "low_stock": True,
            "out_of_stock": False,
        }

        await inventory.reserve_stock("p-1", 3)
        assert (await inventory.get_stock("p-1")).out_of_stock is True
