"""
Stock Record Store.

Une quantité par couple (produit, stock). Lecture et écriture d'UNE ligne à
la fois : aucune transaction ne couvre plusieurs lignes, chaque écriture est
sa propre transaction courte (avec sa ligne d'historique).

L'écriture peut être conditionnelle sur la version lue (jeton optimiste) :
c'est ce qui ferme la fenêtre "lecture périmée / mise à jour perdue".
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from petshop.app.db.models.models_v1 import StockMovement, StockRecord
from petshop.services.stock_types import MovementNote, StockReading, StockStoreError

logger = logging.getLogger(__name__)


class StockRecordStore(Protocol):
    def get(self, product_id: int, stockroom_id: int) -> StockReading | None:
        ...

    def set(
        self,
        product_id: int,
        stockroom_id: int,
        quantity: Decimal,
        *,
        expected_version: int | None = None,
        note: MovementNote | None = None,
    ) -> bool:
        """False = conflit de version (ou ligne disparue), rien n'est écrit."""
        ...


class SqlStockRecordStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get(self, product_id: int, stockroom_id: int) -> StockReading | None:
        try:
            with self._session_factory() as db:
                row = db.execute(
                    select(StockRecord.quantity, StockRecord.version)
                    .where(StockRecord.product_id == product_id)
                    .where(StockRecord.stockroom_id == stockroom_id)
                ).one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("Stock read failed (product_id=%s, stockroom_id=%s)", product_id, stockroom_id)
            raise StockStoreError(str(exc)) from exc

        if row is None:
            return None
        return StockReading(quantity=Decimal(row.quantity), version=int(row.version))

    def set(
        self,
        product_id: int,
        stockroom_id: int,
        quantity: Decimal,
        *,
        expected_version: int | None = None,
        note: MovementNote | None = None,
    ) -> bool:
        try:
            with self._session_factory.begin() as db:
                current = db.execute(
                    select(StockRecord.quantity, StockRecord.version)
                    .where(StockRecord.product_id == product_id)
                    .where(StockRecord.stockroom_id == stockroom_id)
                ).one_or_none()
                if current is None:
                    return False
                if expected_version is not None and int(current.version) != expected_version:
                    return False

                stmt = (
                    update(StockRecord)
                    .where(StockRecord.product_id == product_id)
                    .where(StockRecord.stockroom_id == stockroom_id)
                    .where(StockRecord.version == int(current.version))
                    .values(quantity=quantity, version=StockRecord.version + 1)
                    .execution_options(synchronize_session=False)
                )
                # le WHERE version rend l'écriture atomique même si une autre
                # transaction a écrit entre le SELECT et l'UPDATE
                if db.execute(stmt).rowcount != 1:
                    return False

                if note is not None:
                    previous = Decimal(current.quantity)
                    db.add(
                        StockMovement(
                            product_id=product_id,
                            stockroom_id=stockroom_id,
                            movement_type=note.movement_type,
                            previous_quantity=previous,
                            new_quantity=quantity,
                            change=Decimal(quantity) - previous,
                            sale_id=note.sale_id,
                            reason=note.reason,
                        )
                    )
        except SQLAlchemyError as exc:
            logger.exception("Stock write failed (product_id=%s, stockroom_id=%s)", product_id, stockroom_id)
            raise StockStoreError(str(exc)) from exc

        return True
