import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from pydantic import ValidationError

from auth import get_current_user_id
from errors import (
    CsvValidationError,
    OrderIdAllocationError,
    OrderNotFoundError,
    OrderStoreError,
    describe_validation_errors,
)
from schemas import (
    BulkOrderRequest,
    BulkOrderResponse,
    OrderAggregate,
    OrderCreatedResponse,
)
from services import order_service
from services.csv_parser import parse_order_lines

logger = logging.getLogger("order-docs")

router = APIRouter(prefix="/v1/order", tags=["orders"])

INVALID_ORDER_ID = "Invalid orderId given"


def _server_error(exc: Exception) -> HTTPException:
    logger.error("Order request failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error",
    )


async def _create(
    payload: OrderAggregate,
    caller: str | None,
    csv_text: str | None = None,
) -> OrderCreatedResponse:
    try:
        created = await order_service.create_order(payload, csv_text)
    except CsvValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (OrderStoreError, OrderIdAllocationError) as exc:
        raise _server_error(exc) from exc
    logger.info("Order %s created by %s", created.order_id, caller or "guest")
    return OrderCreatedResponse(order_id=created.order_id)


async def _require_order(order_id: int) -> None:
    # Existence is checked in its own request; a concurrent delete can still
    # remove the order before the caller's next step.
    try:
        valid = await order_service.is_order_id_valid(order_id)
    except OrderStoreError as exc:
        raise _server_error(exc) from exc
    if not valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_ORDER_ID)


@router.post("/create/form", response_model=OrderCreatedResponse)
async def create_order_form(
    payload: OrderAggregate,
    user_id: str = Depends(get_current_user_id),
) -> OrderCreatedResponse:
    return await _create(payload, user_id)


@router.post("/create/form-guest", response_model=OrderCreatedResponse)
async def create_order_form_guest(payload: OrderAggregate) -> OrderCreatedResponse:
    return await _create(payload, None)


@router.post("/create/bulk", response_model=BulkOrderResponse)
async def create_orders_bulk(
    payload: BulkOrderRequest,
    user_id: str = Depends(get_current_user_id),
) -> BulkOrderResponse:
    try:
        order_ids = await order_service.create_orders_bulk(payload.orders)
    except (OrderStoreError, OrderIdAllocationError) as exc:
        raise _server_error(exc) from exc
    logger.info("Bulk create of %s orders by %s", len(order_ids), user_id)
    return BulkOrderResponse(order_ids=order_ids)


@router.post("/create/csv", response_model=OrderCreatedResponse)
async def create_order_csv(
    file: UploadFile = File(...),
    order_json: str = Form(..., alias="json"),
    user_id: str = Depends(get_current_user_id),
) -> OrderCreatedResponse:
    """Create an order from a multipart upload: a ``file`` part holding the CSV
    order lines and a ``json`` form field holding the rest of the order."""
    try:
        payload = OrderAggregate.model_validate_json(order_json)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=describe_validation_errors(exc.errors()),
        ) from exc
    try:
        csv_text = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file must be UTF-8 text"
        ) from exc

    validation = parse_order_lines(csv_text)
    if not validation.valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation.error)
    return await _create(payload, user_id, csv_text)


@router.get("/{order_id}")
async def read_order(
    order_id: int,
    user_id: str = Depends(get_current_user_id),
) -> Response:
    await _require_order(order_id)
    logger.debug("Order %s read by %s", order_id, user_id)
    try:
        xml = await order_service.get_order_xml(order_id)
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except OrderStoreError as exc:
        raise _server_error(exc) from exc
    return Response(content=xml, media_type="application/xml")


@router.put("/{order_id}", response_model=OrderCreatedResponse)
async def replace_order(
    order_id: int,
    payload: OrderAggregate,
    user_id: str = Depends(get_current_user_id),
) -> OrderCreatedResponse:
    await _require_order(order_id)
    try:
        replaced = await order_service.replace_order(order_id, payload)
    except OrderStoreError as exc:
        raise _server_error(exc) from exc
    logger.info("Order %s replaced by %s", order_id, user_id)
    return OrderCreatedResponse(order_id=replaced.order_id)


@router.delete("/{order_id}")
async def delete_order(
    order_id: int,
    user_id: str = Depends(get_current_user_id),
) -> dict:
    await _require_order(order_id)
    try:
        await order_service.delete_order(order_id)
    except OrderStoreError as exc:
        raise _server_error(exc) from exc
    logger.info("Order %s deleted by %s", order_id, user_id)
    return {}
