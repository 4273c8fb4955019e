import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from config import settings
from errors import CsvValidationError, OrderIdAllocationError, OrderNotFoundError
from repositories.order_repository import (
    OrderWriteBatch,
    delete_order as repo_delete_order,
    fetch_order as repo_fetch_order,
    order_exists as repo_order_exists,
)
from schemas import OrderAggregate, OrderLine
from services.csv_parser import parse_order_lines, replace_order_lines
from services.order_document import build_order_document

logger = logging.getLogger("order-docs")

_rng = random.SystemRandom()


@dataclass(frozen=True)
class OrderCreated:
    order_id: int
    total_cost: Decimal


def _draw_order_id() -> int:
    return _rng.randrange(settings.order_id_upper_bound)


def allocate_order_id() -> int:
    """Draw random order ids until one is not in use.

    The check and the later insert are separate requests; the primary key on
    ``order.orderId`` rejects a concurrent writer that drew the same id.
    """
    for _ in range(settings.order_id_max_attempts):
        order_id = _draw_order_id()
        if not repo_order_exists(order_id):
            return order_id
        logger.info("Order id %s already taken, drawing again", order_id)
    raise OrderIdAllocationError(settings.order_id_max_attempts)


def _product_record(aggregate: OrderAggregate, line: OrderLine) -> dict:
    item = line.line_item.item
    return {
        "productId": item.item_id,
        "sellerItemId": aggregate.seller.seller_id,
        "cost": format(line.line_item.price, "f"),
        "description": item.description,
        "name": item.name,
    }


def _write_line(batch: OrderWriteBatch, order_id: int, aggregate: OrderAggregate, line: OrderLine) -> None:
    # Product rows are shared across orders by itemId; the latest order's values win.
    batch.upsert_product(_product_record(aggregate, line))
    batch.insert_order_product(order_id, line.line_item.item.item_id, line.line_item.quantity)


async def _write_order(
    batch: OrderWriteBatch,
    order_id: int,
    aggregate: OrderAggregate,
    now: datetime,
) -> OrderCreated:
    document = build_order_document(aggregate, order_id, now)
    await asyncio.to_thread(batch.insert_order, order_id, document.xml)
    await asyncio.to_thread(batch.insert_registered_order, order_id, document.total_cost)

    results = await asyncio.gather(
        *(
            asyncio.to_thread(_write_line, batch, order_id, aggregate, line)
            for line in aggregate.order_lines
        ),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return OrderCreated(order_id=order_id, total_cost=document.total_cost)


async def _rollback(batch: OrderWriteBatch, reason: BaseException) -> None:
    logger.warning("Rolling back %s order writes: %s", batch.pending, reason)
    await asyncio.to_thread(batch.rollback)


def _apply_csv(aggregate: OrderAggregate, csv_text: Optional[str]) -> OrderAggregate:
    if csv_text is None:
        return aggregate
    result = parse_order_lines(csv_text)
    if not result.valid:
        raise CsvValidationError(result)
    return replace_order_lines(aggregate, result.lines)


async def create_order(
    aggregate: OrderAggregate,
    csv_text: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> OrderCreated:
    aggregate = _apply_csv(aggregate, csv_text)
    batch = OrderWriteBatch()
    try:
        order_id = await asyncio.to_thread(allocate_order_id)
        created = await _write_order(batch, order_id, aggregate, now or datetime.now(timezone.utc))
    except Exception as exc:
        await _rollback(batch, exc)
        raise
    batch.commit()
    logger.info(
        "Created order %s with %s lines, cost %s",
        created.order_id,
        len(aggregate.order_lines),
        created.total_cost,
    )
    return created


async def replace_order(
    order_id: int,
    aggregate: OrderAggregate,
    *,
    now: Optional[datetime] = None,
) -> OrderCreated:
    """Replace an order's document, totals and product links under the same id.

    The old rows are removed and the order is written again from ``aggregate``;
    if any write fails the previous rows are put back.
    """
    batch = OrderWriteBatch()
    try:
        await asyncio.to_thread(batch.delete_order, order_id)
        created = await _write_order(batch, order_id, aggregate, now or datetime.now(timezone.utc))
    except Exception as exc:
        await _rollback(batch, exc)
        raise
    batch.commit()
    logger.info("Replaced order %s, cost %s", order_id, created.total_cost)
    return created


async def create_orders_bulk(
    aggregates: List[OrderAggregate],
    *,
    now: Optional[datetime] = None,
) -> List[int]:
    """Create every order in list order, or none of them."""
    batch = OrderWriteBatch()
    order_ids: List[int] = []
    try:
        for aggregate in aggregates:
            order_id = await asyncio.to_thread(allocate_order_id)
            await _write_order(batch, order_id, aggregate, now or datetime.now(timezone.utc))
            order_ids.append(order_id)
    except Exception as exc:
        await _rollback(batch, exc)
        raise
    batch.commit()
    logger.info("Created %s orders in bulk: %s", len(order_ids), order_ids)
    return order_ids


async def delete_order(order_id: int) -> None:
    # Product rows are not owned by the order and stay in place.
    await asyncio.to_thread(repo_delete_order, order_id)
    logger.info("Deleted order %s", order_id)


async def is_order_id_valid(order_id: int) -> bool:
    return await asyncio.to_thread(repo_order_exists, order_id)


async def get_order_xml(order_id: int) -> str:
    row = await asyncio.to_thread(repo_fetch_order, order_id)
    if row is None:
        raise OrderNotFoundError(order_id)
    return row["xml"]
