"""
Compensation records and their executor.

Every inventory side effect an order operation performs is paired with a
serializable record describing how to undo it. When the operation fails, the
records are executed in reverse order of registration. Every record is
attempted even when an earlier one fails, so one unreachable product never
strands the stock of the others.

Example:
    >>> tx = OrderTransaction(order_id)
    >>> tx.record_reservation("p-1", 2)        # undo = release 2 x p-1
    >>> result = await CompensationExecutor(inventory).run(tx)
    >>> result.success
    True
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ordersaga.core.exceptions import InventoryError
from ordersaga.core.logger import get_logger
from ordersaga.core.types import Reservation
from ordersaga.inventory.base import InventoryService
from ordersaga.monitoring.logging import OrderLogger

logger = get_logger(__name__)


class CompensationAction(Enum):
    """How to undo one inventory side effect."""

    RELEASE_STOCK = "release_stock"
    """Undo a reservation: reserved -> available"""

    RESERVE_STOCK = "reserve_stock"
    """Undo a release: available -> reserved"""

    RECOMMIT_STOCK = "recommit_stock"
    """Undo a restock: available -> reserved -> sold"""


@dataclass(frozen=True)
class CompensationRecord:
    action: CompensationAction
    product_id: str
    quantity: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }


@dataclass
class OrderTransaction:
    """
    Side effects performed so far by one order operation.

    Records are only added after the side effect has actually happened.
    """

    order_id: str
    reservations: list[Reservation] = field(default_factory=list)
    compensations: list[CompensationRecord] = field(default_factory=list)

    def record_reservation(self, product_id: str, quantity: int) -> None:
        self.reservations.append(Reservation(product_id, quantity))
        self.compensations.append(
            CompensationRecord(CompensationAction.RELEASE_STOCK, product_id, quantity)
        )

    def record_release(self, product_id: str, quantity: int) -> None:
        self.compensations.append(
            CompensationRecord(CompensationAction.RESERVE_STOCK, product_id, quantity)
        )

    def record_restock(self, product_id: str, quantity: int) -> None:
        self.compensations.append(
            CompensationRecord(CompensationAction.RECOMMIT_STOCK, product_id, quantity)
        )

    def reserved_quantity(self, product_id: str) -> int:
        return sum(r.quantity for r in self.reservations if r.product_id == product_id)


@dataclass
class CompensationResult:
    """
    Result of compensation execution.

    Attributes:
        executed: Records that were undone successfully
        failed: Records whose undo raised, with the exception
        execution_time_ms: Total execution time in milliseconds
    """

    executed: list[CompensationRecord] = field(default_factory=list)
    failed: list[tuple[CompensationRecord, Exception]] = field(default_factory=list)
    execution_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed


class CompensationExecutor:
    """Runs compensation records against the inventory service."""

    def __init__(
        self,
        inventory: InventoryService,
        metrics: Any = None,
        order_logger: OrderLogger | None = None,
    ):
        self.inventory = inventory
        self.metrics = metrics
        self.order_logger = order_logger or OrderLogger()

    async def run(self, transaction: OrderTransaction) -> CompensationResult:
        """Execute the transaction's records newest first."""
        result = CompensationResult()
        records = list(reversed(transaction.compensations))
        if not records:
            return result

        start = time.perf_counter()
        self.order_logger.compensation_started(transaction.order_id, len(records))

        for record in records:
            try:
                await self._execute(record)
            except Exception as e:
                result.failed.append((record, e))
                self.order_logger.compensation_failed(
                    transaction.order_id, record.action.value, record.product_id, e
                )
                self._count(record, succeeded=False)
            else:
                result.executed.append(record)
                self._count(record, succeeded=True)

        result.execution_time_ms = (time.perf_counter() - start) * 1000
        if result.success:
            logger.info(
                f"Compensated {len(result.executed)} action(s) for order {transaction.order_id} "
                f"in {result.execution_time_ms:.1f}ms"
            )
        return result

    async def _execute(self, record: CompensationRecord) -> None:
        if record.action is CompensationAction.RELEASE_STOCK:
            await self.inventory.release_stock(record.product_id, record.quantity)
        elif record.action is CompensationAction.RESERVE_STOCK:
            await self._reserve(record)
        elif record.action is CompensationAction.RECOMMIT_STOCK:
            await self._reserve(record)
            await self.inventory.confirm_reservation(record.product_id, record.quantity)

    async def _reserve(self, record: CompensationRecord) -> None:
        if not await self.inventory.reserve_stock(record.product_id, record.quantity):
            raise InventoryError(
                record.product_id,
                f"Cannot re-acquire {record.quantity} units of {record.product_id}",
            )

    def _count(self, record: CompensationRecord, succeeded: bool) -> None:
        if self.metrics:
            self.metrics.record_compensation(record.action.value, succeeded)
