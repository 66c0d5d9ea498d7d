import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from petshop.app.api.v1.router import router as v1_router
from petshop.app.core.config import settings
from petshop.app.core.logging_config import configure_logging
from petshop.services.stock_types import StockStoreError

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="PETSHOP INVENTORY", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(StockStoreError)
async def stock_store_unavailable(request: Request, exc: StockStoreError):
    logger.error("Stock store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Stock store unavailable"})
