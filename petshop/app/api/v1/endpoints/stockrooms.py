from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from petshop.app.api.deps import get_db
from petshop.app.db.models.models_v1 import Stockroom

router = APIRouter(prefix="/stockrooms")


class StockroomCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    active: bool = True


@router.get("")
def list_stockrooms(
    active: bool | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Stockroom).order_by(Stockroom.id)
    if active is not None:
        stmt = stmt.where(Stockroom.active == active)

    rows = db.execute(stmt).scalars().all()
    return [{"id": s.id, "name": s.name, "active": s.active} for s in rows]


@router.post("")
def create_stockroom(payload: StockroomCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Stockroom).where(Stockroom.name == payload.name)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Stockroom name already exists")

    s = Stockroom(name=payload.name, active=payload.active)
    db.add(s)
    db.commit()
    db.refresh(s)
    return {"id": s.id, "name": s.name, "active": s.active}
