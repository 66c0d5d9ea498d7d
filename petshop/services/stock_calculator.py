from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from petshop.services.stock_types import StockDelta


def aggregate_quantities(items: Iterable) -> dict[int, Decimal]:
    """
    Somme des quantités par produit (les doublons d'une même liste sont cumulés).

    Les items sont n'importe quel objet exposant product_id et quantity
    (SaleItem ORM, schéma pydantic, LineItem).
    """
    totals: dict[int, Decimal] = {}
    for item in items:
        qty = Decimal(str(item.quantity))
        if qty <= 0:
            raise ValueError(f"Quantity must be positive (product_id={item.product_id}, quantity={qty})")
        pid = int(item.product_id)
        totals[pid] = totals.get(pid, Decimal(0)) + qty
    return totals


def compute_delta(old_items: Iterable, new_items: Iterable) -> list[StockDelta]:
    """
    Deltas signés minimaux pour passer de old_items à new_items (même stock).

    Règle métier (exprimée côté stock, comme pour l'applier) :
        delta = qty_old - qty_new   (clé absente = 0)

    Une ligne augmentée donne un delta négatif (débit du surplus), une ligne
    supprimée donne +qty_old (tout est rendu au stock).
    Pur, déterministe, indépendant de l'ordre ; les deltas nuls ne sont pas émis.
    """
    old = aggregate_quantities(old_items)
    new = aggregate_quantities(new_items)

    deltas = []
    for pid in sorted(old.keys() | new.keys()):
        change = old.get(pid, Decimal(0)) - new.get(pid, Decimal(0))
        if change != 0:
            deltas.append(StockDelta(product_id=pid, delta=change))
    return deltas
