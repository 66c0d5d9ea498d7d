from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from petshop.app.api.deps import get_db, get_inventory_engine
from petshop.app.db.base import Base
from petshop.app.db.models.models_v1 import Product, StockRecord, Stockroom
from petshop.app.main import app
from petshop.services.inventory import InventoryEngine
from petshop.services.stock_store import SqlStockRecordStore


class HookedStore:
    """
    Store de test : délègue au vrai store SQL, mais exécute des hooks avant
    chaque get/set. Un hook peut lever StockStoreError (panne réseau) ou écrire
    via `inner` (écriture concurrente d'une autre requête).
    """

    def __init__(self, inner: SqlStockRecordStore):
        self.inner = inner
        self.get_hooks = []
        self.set_hooks = []
        self.set_calls = []

    def get(self, product_id, stockroom_id):
        for hook in self.get_hooks:
            hook(product_id, stockroom_id)
        return self.inner.get(product_id, stockroom_id)

    def set(self, product_id, stockroom_id, quantity, *, expected_version=None, note=None):
        self.set_calls.append((product_id, stockroom_id, quantity))
        for hook in self.set_hooks:
            hook(product_id, stockroom_id)
        return self.inner.set(product_id, stockroom_id, quantity, expected_version=expected_version, note=note)


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base SQLite jetable par test (fichier : plusieurs connexions, comme en prod
    où le store ouvre une transaction courte par écriture).
    """
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'petshop.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(session_factory):
    return HookedStore(SqlStockRecordStore(session_factory))


@pytest.fixture
def inventory(store):
    return InventoryEngine(store, max_attempts=3)


@pytest.fixture
def shop(db_session):
    """Deux stocks actifs, un inactif, deux produits. Aucune ligne de stock."""
    s1 = Stockroom(name="Loja", active=True)
    s2 = Stockroom(name="Depósito", active=True)
    closed = Stockroom(name="Antigo", active=False)
    p = Product(sku="RAC-001", name="Ração 15kg", sale_price=Decimal("189.90"), cost_price=Decimal("120"))
    q = Product(sku="AREIA-001", name="Areia 4kg", sale_price=Decimal("29.90"), cost_price=Decimal("15"))
    db_session.add_all([s1, s2, closed, p, q])
    db_session.commit()
    return SimpleNamespace(s1=s1.id, s2=s2.id, closed=closed.id, p=p.id, q=q.id)


@pytest.fixture
def set_qty(session_factory):
    """Pose directement une quantité (crée la ligne si besoin), hors moteur."""

    def _set(product_id: int, stockroom_id: int, quantity) -> None:
        with session_factory.begin() as db:
            record = db.get(StockRecord, (product_id, stockroom_id))
            if record is None:
                db.add(StockRecord(product_id=product_id, stockroom_id=stockroom_id, quantity=Decimal(quantity), version=1))
            else:
                record.quantity = Decimal(quantity)
                record.version += 1

    return _set


@pytest.fixture
def qty(store):
    """Quantité courante (None si la ligne n'existe pas)."""

    def _qty(product_id: int, stockroom_id: int):
        reading = store.inner.get(product_id, stockroom_id)
        return None if reading is None else reading.quantity

    return _qty


@pytest.fixture
def client(session_factory, inventory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_inventory_engine] = lambda: inventory
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
