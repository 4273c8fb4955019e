import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import orders_router
from config import settings
from errors import describe_validation_errors

logger = logging.getLogger("order-docs")
logger.setLevel(settings.log_level)

app = FastAPI(title="Order Document API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(orders_router)


@app.exception_handler(RequestValidationError)
async def _handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    detail = describe_validation_errors(exc.errors())
    logger.info("Rejected request: %s", detail)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


@app.on_event("startup")
async def _on_startup() -> None:
    logger.info(
        "Order document API starting: order ids below %s, %s draws per order",
        settings.order_id_upper_bound,
        settings.order_id_max_attempts,
    )
    if "*" in settings.allowed_origins:
        logger.warning(
            "CORS allows every origin with credentials; set ALLOWED_ORIGINS outside local dev."
        )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
