import csv
import io
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from pydantic import ValidationError

from schemas import BaseQuantity, Item, LineItem, OrderAggregate, OrderLine

REQUIRED_HEADERS = [
    "Note",
    "Quantity",
    "Total Tax Amount",
    "Price",
    "Base Quantity",
    "Unit Code",
    "Item ID",
    "Description",
    "Name",
    "Properties",
]
NUMERIC_COLUMNS = {1, 2, 3, 4}


@dataclass(frozen=True)
class CsvParseResult:
    valid: bool
    error: Optional[str] = None
    missing_headers: List[str] = field(default_factory=list)
    row: Optional[int] = None
    lines: List[OrderLine] = field(default_factory=list)


def _read_rows(text: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text))
    rows = []
    for raw in reader:
        cells = [cell.strip() for cell in raw]
        if not any(cells):
            continue
        rows.append(cells)
    return rows


def parse_properties(value: str) -> Dict[str, str]:
    """Parse ``key:value`` pairs separated by semicolons; malformed pairs are skipped."""
    properties: Dict[str, str] = {}
    if not value:
        return properties
    for pair in value.split(";"):
        key, sep, raw_value = pair.partition(":")
        key = key.strip()
        raw_value = raw_value.strip()
        if not sep or not key or not raw_value:
            continue
        properties[key] = raw_value
    return properties


def _to_number(cell: str) -> Optional[Decimal]:
    try:
        number = Decimal(cell)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _build_line(cells: List[str], numbers: Dict[int, Decimal]) -> OrderLine:
    return OrderLine(
        note=cells[0],
        line_item=LineItem(
            quantity=numbers[1],
            total_tax_amount=numbers[2],
            price=numbers[3],
            base_quantity=BaseQuantity(quantity=numbers[4], unit_code=cells[5]),
            item=Item(
                item_id=cells[6],
                description=cells[7],
                name=cells[8],
                properties=parse_properties(cells[9]),
            ),
        ),
    )


def parse_order_lines(text: str) -> CsvParseResult:
    """Validate CSV order lines and map each data row to an ``OrderLine``.

    Header names are only checked for presence; values are read by position in
    ``REQUIRED_HEADERS`` order. Shape problems are returned as an invalid
    result rather than raised. Data rows are numbered from 1.
    """
    rows = _read_rows(text or "")
    headers = rows[0] if rows else []

    missing = [header for header in REQUIRED_HEADERS if header not in headers]
    if missing:
        return CsvParseResult(
            valid=False,
            error=f"Missing headers: {', '.join(missing)}",
            missing_headers=missing,
        )

    lines: List[OrderLine] = []
    for index, cells in enumerate(rows[1:], start=1):
        if len(cells) != len(headers):
            return CsvParseResult(
                valid=False,
                error=f"Row {index} has incorrect number of columns.",
                row=index,
            )
        if any(cell == "" for cell in cells):
            return CsvParseResult(
                valid=False, error=f"Row {index} has empty columns.", row=index
            )
        numbers: Dict[int, Decimal] = {}
        for column in sorted(NUMERIC_COLUMNS):
            number = _to_number(cells[column])
            if number is None:
                return CsvParseResult(
                    valid=False,
                    error=(
                        f"Row {index} has an invalid number in column "
                        f"'{REQUIRED_HEADERS[column]}'."
                    ),
                    row=index,
                )
            numbers[column] = number
        try:
            lines.append(_build_line(cells, numbers))
        except ValidationError:
            return CsvParseResult(
                valid=False, error=f"Row {index} has invalid characters.", row=index
            )

    return CsvParseResult(valid=True, lines=lines)


def replace_order_lines(aggregate: OrderAggregate, lines: List[OrderLine]) -> OrderAggregate:
    # CSV lines replace the aggregate's lines wholesale; there is no per-line merge.
    return aggregate.model_copy(update={"order_lines": list(lines)})
