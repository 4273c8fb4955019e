import logging
import threading
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from postgrest.exceptions import APIError

from errors import OrderStoreError
from supabase_client import supabase

logger = logging.getLogger("order-docs")

ORDER_TABLE = "order"
REGISTERED_ORDER_TABLE = "registeredOrder"
PRODUCT_TABLE = "product"
ORDER_PRODUCT_TABLE = "registeredOrderProduct"


def _numeric(value: Decimal) -> str:
    return format(value, "f")


def _execute(action: str, query):
    try:
        return query.execute()
    except APIError as exc:
        raise OrderStoreError(f"Failed to {action}: {exc.message}") from exc
    except httpx.HTTPError as exc:
        raise OrderStoreError(f"Failed to {action}: {exc}") from exc


def count_orders(order_id: int) -> int:
    response = _execute(
        "count orders",
        supabase.table(ORDER_TABLE).select("orderId", count="exact").eq("orderId", order_id),
    )
    return response.count or 0


def order_exists(order_id: int) -> bool:
    return count_orders(order_id) > 0


def fetch_order(order_id: int) -> Optional[Dict[str, Any]]:
    response = _execute(
        "fetch order",
        supabase.table(ORDER_TABLE).select("*").eq("orderId", order_id).limit(1),
    )
    items = response.data or []
    return items[0] if items else None


def fetch_registered_orders(order_id: int) -> List[Dict[str, Any]]:
    response = _execute(
        "fetch registered order",
        supabase.table(REGISTERED_ORDER_TABLE).select("*").eq("orderId", order_id),
    )
    return response.data or []


def fetch_order_products(order_id: int) -> List[Dict[str, Any]]:
    response = _execute(
        "fetch order-product relationships",
        supabase.table(ORDER_PRODUCT_TABLE).select("*").eq("orderId", order_id),
    )
    return response.data or []


def fetch_product(product_id: str) -> Optional[Dict[str, Any]]:
    response = _execute(
        "fetch product",
        supabase.table(PRODUCT_TABLE).select("*").eq("productId", product_id).limit(1),
    )
    items = response.data or []
    return items[0] if items else None


def insert_order(order_id: int, xml: str) -> None:
    _execute("insert order", supabase.table(ORDER_TABLE).insert({"orderId": order_id, "xml": xml}))


def insert_registered_order(order_id: int, cost: Decimal) -> None:
    _execute(
        "insert registered order",
        supabase.table(REGISTERED_ORDER_TABLE).insert(
            {"orderId": order_id, "cost": _numeric(cost)}
        ),
    )


def upsert_product(record: Dict[str, Any]) -> None:
    _execute("insert product", supabase.table(PRODUCT_TABLE).upsert(record))


def insert_order_product(order_id: int, product_id: str, quantity: Decimal) -> None:
    _execute(
        "insert order-product relationship",
        supabase.table(ORDER_PRODUCT_TABLE).insert(
            {"orderId": order_id, "productId": product_id, "quantity": _numeric(quantity)}
        ),
    )


def insert_rows(table: str, rows: List[Dict[str, Any]]) -> None:
    if rows:
        _execute(f"restore {table} rows", supabase.table(table).insert(rows))


def delete_order(order_id: int) -> None:
    # registeredOrder and registeredOrderProduct rows go with the order via ON DELETE CASCADE.
    _execute("delete order", supabase.table(ORDER_TABLE).delete().eq("orderId", order_id))


def delete_registered_order(order_id: int) -> None:
    _execute(
        "delete registered order",
        supabase.table(REGISTERED_ORDER_TABLE).delete().eq("orderId", order_id),
    )


def delete_order_product(order_id: int, product_id: str) -> None:
    _execute(
        "delete order-product relationship",
        supabase.table(ORDER_PRODUCT_TABLE)
        .delete()
        .eq("orderId", order_id)
        .eq("productId", product_id),
    )


def delete_product(product_id: str) -> None:
    _execute("delete product", supabase.table(PRODUCT_TABLE).delete().eq("productId", product_id))


class OrderWriteBatch:
    """Order writes that succeed or fail as a unit.

    Each PostgREST request commits on its own, so every write made through the
    batch registers a compensating action. ``rollback`` runs them newest first,
    restoring rows that were overwritten or removed and deleting rows that were
    added. Methods are blocking and may be called from worker threads.
    """

    def __init__(self) -> None:
        self._undo: List[Tuple[str, Callable[[], None]]] = []
        self._lock = threading.Lock()

    def _push(self, description: str, action: Callable[[], None]) -> None:
        with self._lock:
            self._undo.append((description, action))

    @property
    def pending(self) -> int:
        return len(self._undo)

    def insert_order(self, order_id: int, xml: str) -> None:
        insert_order(order_id, xml)
        self._push(f"delete order {order_id}", lambda: delete_order(order_id))

    def insert_registered_order(self, order_id: int, cost: Decimal) -> None:
        insert_registered_order(order_id, cost)
        self._push(
            f"delete registered order {order_id}",
            lambda: delete_registered_order(order_id),
        )

    def upsert_product(self, record: Dict[str, Any]) -> None:
        product_id = record["productId"]
        # Read-then-write under the lock so concurrent lines sharing an itemId
        # record their undo steps in the order the writes happened.
        with self._lock:
            previous = fetch_product(product_id)
            upsert_product(record)
            if previous is None:
                self._undo.append(
                    (f"delete product {product_id}", lambda: delete_product(product_id))
                )
            else:
                self._undo.append(
                    (f"restore product {product_id}", lambda: upsert_product(previous))
                )

    def insert_order_product(self, order_id: int, product_id: str, quantity: Decimal) -> None:
        insert_order_product(order_id, product_id, quantity)
        self._push(
            f"delete order {order_id} product {product_id}",
            lambda: delete_order_product(order_id, product_id),
        )

    def delete_order(self, order_id: int) -> None:
        order = fetch_order(order_id)
        registered = fetch_registered_orders(order_id)
        links = fetch_order_products(order_id)
        delete_order(order_id)

        def restore() -> None:
            insert_rows(ORDER_TABLE, [order] if order else [])
            insert_rows(REGISTERED_ORDER_TABLE, registered)
            insert_rows(ORDER_PRODUCT_TABLE, links)

        self._push(f"restore order {order_id}", restore)

    def commit(self) -> None:
        with self._lock:
            self._undo.clear()

    def rollback(self) -> None:
        while self._undo:
            description, action = self._undo.pop()
            try:
                action()
            except OrderStoreError:
                logger.exception("Rollback step failed: %s", description)
