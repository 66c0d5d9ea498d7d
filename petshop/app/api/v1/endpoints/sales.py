from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException

from petshop.app.api.deps import get_sale_service
from petshop.app.db.models.core_types import SaleStatus
from petshop.app.schemas.inventory import DivergenceRead, InventoryResultRead, MoveResultRead
from petshop.app.schemas.sale import SaleCreate, SaleRead, SaleUpdate
from petshop.services.sales import SaleError, SaleService, StockDivergence
from petshop.services.stock_types import MoveResult

router = APIRouter(prefix="/sales")


# ---------- Helpers ----------
def _stock_payload(stock) -> dict | None:
    if stock is None:
        return None
    if isinstance(stock, MoveResult):
        return MoveResultRead.model_validate(stock).model_dump(mode="json")
    return InventoryResultRead.model_validate(stock).model_dump(mode="json")


def _sale_payload(sale) -> dict:
    return SaleRead.model_validate(sale).model_dump(mode="json")


def _http_error(exc: SaleError) -> HTTPException:
    detail: dict = {"message": exc.message}
    if exc.stock is not None:
        detail["stock_details"] = _stock_payload(exc.stock)
    if isinstance(exc, StockDivergence):
        # erreur visible : stock / produit / quantité à corriger à la main
        detail["divergences"] = [DivergenceRead.model_validate(d).model_dump(mode="json") for d in exc.divergences]
    return HTTPException(status_code=exc.status_code, detail=detail)


# ---------- Endpoints ----------
@router.get("", response_model=list[SaleRead])
def list_sales(
    status: SaleStatus | None = None,
    stockroom_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
    service: SaleService = Depends(get_sale_service),
):
    return service.list_sales(status=status, stockroom_id=stockroom_id, limit=limit, offset=offset)


@router.get("/{sale_id}", response_model=SaleRead)
def get_sale(sale_id: int, service: SaleService = Depends(get_sale_service)):
    try:
        return service.get_sale(sale_id)
    except SaleError as exc:
        raise _http_error(exc) from exc


@router.post("", status_code=201)
def create_sale(
    payload: SaleCreate,
    service: SaleService = Depends(get_sale_service),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    idem = idempotency_key.strip() if idempotency_key and idempotency_key.strip() else None
    try:
        change = service.create_sale(payload, idempotency_key=idem)
    except SaleError as exc:
        raise _http_error(exc) from exc

    return {
        "sale": _sale_payload(change.sale),
        "stock": _stock_payload(change.stock),
        "replayed": change.replayed,
    }


@router.put("/{sale_id}")
def update_sale(
    sale_id: int,
    payload: SaleUpdate,
    service: SaleService = Depends(get_sale_service),
):
    try:
        change = service.update_sale(sale_id, payload)
    except SaleError as exc:
        raise _http_error(exc) from exc

    return {"sale": _sale_payload(change.sale), "stock": _stock_payload(change.stock)}


@router.delete("/{sale_id}")
def delete_sale(sale_id: int, service: SaleService = Depends(get_sale_service)):
    try:
        change = service.delete_sale(sale_id)
    except SaleError as exc:
        raise _http_error(exc) from exc

    return {"ok": True, "stock": _stock_payload(change.stock)}
