from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable

if TYPE_CHECKING:
    from services.csv_parser import CsvParseResult


class OrderStoreError(RuntimeError):
    """A read or write against the order tables failed."""


class OrderNotFoundError(LookupError):
    def __init__(self, order_id: int) -> None:
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class OrderIdAllocationError(RuntimeError):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"Could not allocate a free orderId after {attempts} attempts")
        self.attempts = attempts


class CsvValidationError(ValueError):
    def __init__(self, result: "CsvParseResult") -> None:
        super().__init__(result.error or "Invalid CSV")
        self.result = result


def describe_validation_errors(errors: Iterable[Dict[str, Any]]) -> str:
    """Flatten pydantic error entries into ``"Validation Error: loc: msg; ..."``."""
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "Validation Error: " + "; ".join(parts)
