"""
PostgreSQL inventory reservation service

Each counter move is a single conditional UPDATE, so the row lock taken by
PostgreSQL makes it atomic across processes.

Requires: pip install asyncpg
"""

from typing import Any

from ordersaga.core.exceptions import InventoryError, MissingDependencyError
from ordersaga.core.logger import get_logger
from ordersaga.inventory.base import InventoryService, StockLevel
from ordersaga.repository.base import StorageConnectionError, StorageError

try:
    import asyncpg

    ASYNCPG_AVAILABLE = True
    _DB_ERRORS: tuple[type[Exception], ...] = (
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
        OSError,
    )
except ImportError:  # pragma: no cover
    ASYNCPG_AVAILABLE = False  # pragma: no cover
    asyncpg = None  # pragma: no cover
    _DB_ERRORS = (OSError,)  # pragma: no cover

logger = get_logger(__name__)


class PostgreSQLInventoryService(InventoryService):
    """
    Stock counters stored in the ``inventory`` table.

    A pool can be shared with :class:`PostgreSQLOrderRepository`; in that case
    the service does not close it. Driver failures are raised as StorageError.
    """

    CREATE_TABLES_SQL = """
    CREATE TABLE IF NOT EXISTS inventory (
        product_id VARCHAR(255) PRIMARY KEY,
        available INTEGER NOT NULL DEFAULT 0 CHECK (available >= 0),
        reserved INTEGER NOT NULL DEFAULT 0 CHECK (reserved >= 0),
        sold INTEGER NOT NULL DEFAULT 0 CHECK (sold >= 0),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """

    def __init__(
        self,
        connection_string: str | None = None,
        pool: Any = None,
        low_stock_threshold: int = 10,
        pool_min_size: int = 2,
        pool_max_size: int = 10,
    ):
        if not ASYNCPG_AVAILABLE:
            msg = "asyncpg"
            raise MissingDependencyError(msg, "PostgreSQL inventory")
        if connection_string is None and pool is None:
            msg = "PostgreSQLInventoryService requires a connection_string or a pool"
            raise ValueError(msg)

        self.connection_string = connection_string
        self.low_stock_threshold = low_stock_threshold
        self.pool_min_size = pool_min_size
        self.pool_max_size = pool_max_size
        self._pool = pool
        self._owns_pool = pool is None
        self._schema_ready = False

    async def _get_pool(self):
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.connection_string,
                    min_size=self.pool_min_size,
                    max_size=self.pool_max_size,
                )
            except Exception as e:
                msg = f"Failed to connect to PostgreSQL: {e}"
                raise StorageConnectionError(msg) from e

        if not self._schema_ready:
            try:
                async with self._pool.acquire() as conn:
                    await conn.execute(self.CREATE_TABLES_SQL)
            except _DB_ERRORS as e:
                msg = f"Failed to initialize inventory schema: {e}"
                raise StorageError(msg) from e
            self._schema_ready = True

        return self._pool

    async def reserve_stock(self, product_id: str, quantity: int) -> bool:
        self._check_quantity(quantity)
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE inventory
                    SET available = available - $2, reserved = reserved + $2, updated_at = NOW()
                    WHERE product_id = $1 AND available >= $2
                    RETURNING available
                    """,
                    product_id,
                    quantity,
                )
        except _DB_ERRORS as e:
            msg = f"Failed to reserve stock: {e}"
            raise StorageError(msg, {"product_id": product_id}) from e
        return row is not None

    async def release_stock(self, product_id: str, quantity: int) -> int:
        self._check_quantity(quantity)
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    reserved = await conn.fetchval(
                        "SELECT reserved FROM inventory WHERE product_id = $1 FOR UPDATE",
                        product_id,
                    )
                    if reserved is None:
                        raise InventoryError(
                            product_id, f"Product {product_id} is not tracked in inventory"
                        )
                    released = min(quantity, reserved)
                    if released:
                        await conn.execute(
                            """
                            UPDATE inventory
                            SET available = available + $2, reserved = reserved - $2,
                                updated_at = NOW()
                            WHERE product_id = $1
                            """,
                            product_id,
                            released,
                        )
        except _DB_ERRORS as e:
            msg = f"Failed to release stock: {e}"
            raise StorageError(msg, {"product_id": product_id}) from e

        if released < quantity:
            logger.warning(
                f"Release of {quantity} x {product_id} exceeds reserved {reserved}; "
                f"releasing {released}"
            )
        return released

    async def confirm_reservation(self, product_id: str, quantity: int) -> None:
        self._check_quantity(quantity)
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE inventory
                    SET reserved = reserved - $2, sold = sold + $2, updated_at = NOW()
                    WHERE product_id = $1 AND reserved >= $2
                    RETURNING reserved
                    """,
                    product_id,
                    quantity,
                )
        except _DB_ERRORS as e:
            msg = f"Failed to confirm reservation: {e}"
            raise StorageError(msg, {"product_id": product_id}) from e
        if row is None:
            raise InventoryError(
                product_id, f"Cannot confirm {quantity} units of {product_id}: not enough reserved"
            )

    async def restock(self, product_id: str, quantity: int) -> int:
        self._check_quantity(quantity)
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    sold = await conn.fetchval(
                        "SELECT sold FROM inventory WHERE product_id = $1 FOR UPDATE",
                        product_id,
                    )
                    if sold is None:
                        raise InventoryError(
                            product_id, f"Product {product_id} is not tracked in inventory"
                        )
                    restocked = min(quantity, sold)
                    if restocked:
                        await conn.execute(
                            """
                            UPDATE inventory
                            SET available = available + $2, sold = sold - $2, updated_at = NOW()
                            WHERE product_id = $1
                            """,
                            product_id,
                            restocked,
                        )
        except _DB_ERRORS as e:
            msg = f"Failed to restock: {e}"
            raise StorageError(msg, {"product_id": product_id}) from e
        return restocked

    async def get_stock(self, product_id: str) -> StockLevel | None:
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT product_id, available, reserved, sold FROM inventory "
                    "WHERE product_id = $1",
                    product_id,
                )
        except _DB_ERRORS as e:
            msg = f"Failed to read stock: {e}"
            raise StorageError(msg, {"product_id": product_id}) from e
        return self._row_to_level(row) if row else None

    async def set_stock(self, product_id: str, available: int) -> StockLevel:
        if available < 0:
            msg = "available stock cannot be negative"
            raise ValueError(msg)
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO inventory (product_id, available)
                    VALUES ($1, $2)
                    ON CONFLICT (product_id)
                    DO UPDATE SET available = EXCLUDED.available, updated_at = NOW()
                    RETURNING product_id, available, reserved, sold
                    """,
                    product_id,
                    available,
                )
        except _DB_ERRORS as e:
            msg = f"Failed to set stock: {e}"
            raise StorageError(msg, {"product_id": product_id}) from e
        return self._row_to_level(row)

    async def close(self) -> None:
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None

    def _row_to_level(self, row: Any) -> StockLevel:
        return StockLevel(
            product_id=row["product_id"],
            available=row["available"],
            reserved=row["reserved"],
            sold=row["sold"],
            low_stock_threshold=self.low_stock_threshold,
        )
