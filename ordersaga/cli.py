"""
ordersaga CLI - operator commands for the order store and inventory.

Backends come from the environment (ORDERSAGA_DATABASE_URL, ORDERSAGA_REDIS_URL,
or a .env file in the working directory). Without ORDERSAGA_DATABASE_URL the
commands run against empty in-memory stores, which is only useful for trying
the CLI out.
"""

import asyncio
import logging
import time
from datetime import datetime

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ordersaga.core.config import CoordinatorConfig
from ordersaga.core.exceptions import OrderError
from ordersaga.core.logger import configure_default_logging
from ordersaga.core.types import Order, OrderFilter, OrderStatus
from ordersaga.factory import create_inventory, create_repository
from ordersaga.repository.base import StorageError

console = Console()


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


def _config() -> CoordinatorConfig:
    return CoordinatorConfig.from_env()


def _run(coro):
    try:
        return asyncio.run(coro)
    except (StorageError, OrderError) as e:
        raise click.ClickException(str(e)) from e


def _status_style(status: OrderStatus) -> str:
    if status in (OrderStatus.CANCELLED, OrderStatus.FAILED, OrderStatus.REFUNDED):
        return "red"
    if status == OrderStatus.DELIVERED:
        return "green"
    return "yellow"


@click.group(cls=OrderedGroup)
@click.version_option(version="0.1.0", prog_name="ordersaga")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
def cli(verbose: bool, json_logs: bool):
    """
    ordersaga - order saga coordinator administration.

    \b
    Commands:
        init-db          Create database tables
        order show       Show one order with its items
        order list       List orders
        order history    Show an order's status transitions
        stats            Order statistics
        stock show       Show stock counters of a product
        stock set        Set available stock of a product
        metrics-server   Serve Prometheus metrics
    """
    configure_default_logging(
        level=logging.DEBUG if verbose else logging.WARNING, json_output=json_logs
    )


# ============================================================================
# ordersaga init-db
# ============================================================================


@cli.command("init-db")
def init_db():
    """Create the order and inventory tables if they do not exist."""
    config = _config()
    if not config.database_url:
        raise click.ClickException("ORDERSAGA_DATABASE_URL is not set")

    async def _init():
        repository = create_repository(config)
        inventory = create_inventory(config)
        try:
            # First use of each backend creates its schema
            await repository.list_orders(OrderFilter(limit=1))
            await inventory.get_stock("__schema_check__")
        finally:
            await repository.close()
            await inventory.close()

    _run(_init())
    console.print("[bold green]Database schema is ready.[/bold green]")


# ============================================================================
# ordersaga order ...
# ============================================================================


@cli.group(cls=OrderedGroup)
def order():
    """Inspect orders."""


def _render_order(order_obj: Order) -> None:
    style = _status_style(order_obj.status)
    console.print(
        Panel.fit(
            f"[bold]{order_obj.order_number}[/bold]  ({order_obj.id})\n"
            f"Customer: {order_obj.customer_id}\n"
            f"Status:   [{style}]{order_obj.status.value}[/{style}]\n"
            f"Payment:  {order_obj.payment_id or '-'}\n"
            f"Created:  {order_obj.created_at:%Y-%m-%d %H:%M:%S}",
            title="Order",
            border_style="blue",
        )
    )

    items = Table(title="Items")
    items.add_column("Product")
    items.add_column("SKU")
    items.add_column("Qty", justify="right")
    items.add_column("Price", justify="right")
    items.add_column("Total", justify="right")
    for item in order_obj.items:
        items.add_row(
            item.product_name, item.product_sku, str(item.quantity), str(item.price), str(item.total)
        )
    console.print(items)

    totals = Table(show_header=False, box=None)
    totals.add_column(justify="right")
    totals.add_column(justify="right")
    totals.add_row("Subtotal", str(order_obj.subtotal))
    totals.add_row("Discount", f"-{order_obj.discount}")
    totals.add_row("Tax", str(order_obj.tax))
    totals.add_row("Shipping", str(order_obj.shipping))
    totals.add_row("[bold]Total[/bold]", f"[bold]{order_obj.total_amount} {order_obj.currency}[/bold]")
    console.print(totals)


@order.command("show")
@click.argument("order_id")
def order_show(order_id: str):
    """Show one order with its items and totals."""
    config = _config()

    async def _load():
        async with create_repository(config) as repository:
            return await repository.get_order(order_id)

    found = _run(_load())
    if found is None:
        raise click.ClickException(f"Order not found: {order_id}")
    _render_order(found)


@order.command("list")
@click.option("--customer", "customer_id", help="Only orders of this customer")
@click.option(
    "--status",
    type=click.Choice([s.value for s in OrderStatus]),
    help="Only orders in this status",
)
@click.option("--page", default=1, show_default=True, type=int)
@click.option("--limit", default=20, show_default=True, type=int)
def order_list(customer_id: str | None, status: str | None, page: int, limit: int):
    """List orders, newest first."""
    config = _config()
    order_filter = OrderFilter(
        customer_id=customer_id,
        status=OrderStatus(status) if status else None,
        page=page,
        limit=limit,
    )

    async def _list():
        async with create_repository(config) as repository:
            return await repository.list_orders(order_filter)

    result = _run(_list())

    table = Table(title=f"Orders (page {order_filter.page}, {result.total} total)")
    table.add_column("Order number", style="cyan")
    table.add_column("Customer")
    table.add_column("Status")
    table.add_column("Total", justify="right")
    table.add_column("Created")
    for row in result.orders:
        style = _status_style(row.status)
        table.add_row(
            row.order_number,
            row.customer_id,
            f"[{style}]{row.status.value}[/{style}]",
            f"{row.total_amount} {row.currency}",
            f"{row.created_at:%Y-%m-%d %H:%M}",
        )
    console.print(table)


@order.command("history")
@click.argument("order_id")
def order_history(order_id: str):
    """Show the status transitions of an order."""
    config = _config()

    async def _history():
        async with create_repository(config) as repository:
            return await repository.get_status_history(order_id)

    changes = _run(_history())
    if not changes:
        raise click.ClickException(f"No history for order {order_id}")

    table = Table(title=f"Status history of {order_id}")
    table.add_column("At")
    table.add_column("From")
    table.add_column("To")
    for change in changes:
        table.add_row(
            f"{change.changed_at:%Y-%m-%d %H:%M:%S}",
            change.from_status.value if change.from_status else "-",
            change.to_status.value,
        )
    console.print(table)


# ============================================================================
# ordersaga stats
# ============================================================================


@cli.command("stats")
@click.option("--customer", "customer_id", help="Only orders of this customer")
@click.option("--since", type=click.DateTime(), help="Only orders created at or after")
@click.option("--until", type=click.DateTime(), help="Only orders created at or before")
def stats(customer_id: str | None, since: datetime | None, until: datetime | None):
    """Order counts and revenue (cancelled, failed and refunded orders excluded)."""
    config = _config()

    async def _stats():
        async with create_repository(config) as repository:
            return await repository.get_stats(customer_id, since, until)

    result = _run(_stats())

    table = Table(title="Order statistics", show_header=False)
    table.add_column(style="bold")
    table.add_column(justify="right")
    for key, value in result.to_dict().items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    console.print(table)


# ============================================================================
# ordersaga stock ...
# ============================================================================


@cli.group(cls=OrderedGroup)
def stock():
    """Inspect and adjust inventory."""


def _render_stock(level) -> None:
    state = "[green]in stock[/green]"
    if level.out_of_stock:
        state = "[red]out of stock[/red]"
    elif level.low_stock:
        state = "[yellow]low stock[/yellow]"

    table = Table(title=f"Stock of {level.product_id}")
    table.add_column("Available", justify="right")
    table.add_column("Reserved", justify="right")
    table.add_column("Sold", justify="right")
    table.add_column("State")
    table.add_row(str(level.available), str(level.reserved), str(level.sold), state)
    console.print(table)


@stock.command("show")
@click.argument("product_id")
def stock_show(product_id: str):
    """Show available, reserved and sold counters of a product."""
    config = _config()

    async def _show():
        inventory = create_inventory(config)
        try:
            return await inventory.get_stock(product_id)
        finally:
            await inventory.close()

    level = _run(_show())
    if level is None:
        raise click.ClickException(f"Product is not tracked in inventory: {product_id}")
    _render_stock(level)


@stock.command("set")
@click.argument("product_id")
@click.argument("available", type=click.IntRange(min=0))
def stock_set(product_id: str, available: int):
    """Set the available stock of a product (reserved and sold are kept)."""
    config = _config()

    async def _set():
        inventory = create_inventory(config)
        try:
            return await inventory.set_stock(product_id, available)
        finally:
            await inventory.close()

    _render_stock(_run(_set()))


# ============================================================================
# ordersaga metrics-server
# ============================================================================


@cli.command("metrics-server")
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--addr", default="0.0.0.0", show_default=True)
def metrics_server(port: int, addr: str):
    """Serve the Prometheus metrics endpoint until interrupted."""
    from ordersaga.monitoring.prometheus import is_prometheus_available, start_metrics_server

    if not is_prometheus_available():
        raise click.ClickException("prometheus-client is not installed")

    start_metrics_server(port=port, addr=addr)
    console.print(f"Metrics available at [bold cyan]http://{addr}:{port}/metrics[/bold cyan]")
    try:
        while True:
            time.sleep(3600)
    except KeyboardInterrupt:
        console.print("Stopped.")


if __name__ == "__main__":
    cli()
