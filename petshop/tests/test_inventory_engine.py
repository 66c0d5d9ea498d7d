from decimal import Decimal

from sqlalchemy import select

from petshop.app.db.models.core_types import MovementType
from petshop.app.db.models.models_v1 import StockMovement
from petshop.services.stock_types import (
    AdjustmentOutcome,
    DeficiencyReason,
    LineItem,
    MoveOutcome,
    StockStoreError,
)


def items(*pairs):
    return [LineItem(pid, Decimal(str(q))) for pid, q in pairs]


# ---------- COMMIT ----------
def test_commit_debits_stock(inventory, shop, set_qty, qty):
    set_qty(shop.p, shop.s1, 10)

    result = inventory.commit(items((shop.p, 4)), shop.s1)

    assert result.success
    assert qty(shop.p, shop.s1) == Decimal(6)


def test_commit_refused_by_precheck_applies_nothing(inventory, store, shop, set_qty, qty):
    set_qty(shop.p, shop.s1, 3)

    result = inventory.commit(items((shop.p, 5)), shop.s1)

    assert not result.success
    assert result.adjustments == []
    assert store.set_calls == []
    assert len(result.deficiencies) == 1
    d = result.deficiencies[0]
    assert (d.available, d.requested, d.reason) == (Decimal(3), Decimal(5), DeficiencyReason.insufficient)
    assert result.errors == [f"insufficient stock for product {shop.p}: available 3, requested 5"]
    assert qty(shop.p, shop.s1) == Decimal(3)


def test_precheck_reports_every_deficiency(inventory, shop, set_qty):
    set_qty(shop.p, shop.s1, 1)

    result = inventory.commit(items((shop.p, 2), (shop.q, 1)), shop.s1)

    reasons = {d.product_id: d.reason for d in result.deficiencies}
    assert reasons == {shop.p: DeficiencyReason.insufficient, shop.q: DeficiencyReason.not_configured}


def test_precheck_sums_duplicate_lines(inventory, shop, set_qty, qty):
    set_qty(shop.p, shop.s1, 5)

    result = inventory.commit(items((shop.p, 3), (shop.p, 3)), shop.s1)

    assert not result.success
    assert result.deficiencies[0].requested == Decimal(6)
    assert qty(shop.p, shop.s1) == Decimal(5)


def test_precheck_store_failure_is_a_deficiency(inventory, store, shop, set_qty):
    set_qty(shop.p, shop.s1, 5)

    def down(product_id, stockroom_id):
        raise StockStoreError("timeout")

    store.get_hooks.append(down)

    result = inventory.commit(items((shop.p, 1)), shop.s1)

    assert not result.success
    assert result.deficiencies[0].reason is DeficiencyReason.unavailable


def test_commit_race_after_precheck_returns_partial_list(inventory, store, shop, set_qty, qty):
    """
    Le pré-contrôle passe (P=10, Q=3), puis une autre vente prend 2 Q avant
    notre écriture. P est débité, Q refusé, rien n'est annulé automatiquement.
    """
    set_qty(shop.p, shop.s1, 10)
    set_qty(shop.q, shop.s1, 3)
    fired = []

    def other_sale_takes_q(product_id, stockroom_id):
        if not fired:
            fired.append(True)
            store.inner.set(shop.q, shop.s1, Decimal(1))

    store.set_hooks.append(other_sale_takes_q)

    result = inventory.commit(items((shop.p, 2), (shop.q, 3)), shop.s1)

    assert not result.success
    assert [a.outcome for a in result.adjustments] == [AdjustmentOutcome.applied, AdjustmentOutcome.failed]
    assert [a.product_id for a in result.applied] == [shop.p]
    assert qty(shop.p, shop.s1) == Decimal(8)
    assert qty(shop.q, shop.s1) == Decimal(1)


# ---------- RELEASE ----------
def test_release_credits_every_item_that_can_succeed(inventory, shop, set_qty, qty):
    set_qty(shop.p, shop.s1, 1)

    result = inventory.release(items((shop.p, 4), (shop.q, 2)), shop.s1)

    assert not result.success
    assert [a.product_id for a in result.applied] == [shop.p]
    assert result.errors == [f"stock not configured for product {shop.q} in stockroom {shop.s1}"]
    assert qty(shop.p, shop.s1) == Decimal(5)


def test_release_twice_credits_twice(inventory, shop, set_qty, qty):
    # pas de détection de double release dans le moteur : c'est à l'appelant de refuser
    set_qty(shop.p, shop.s1, 0)

    inventory.release(items((shop.p, 2)), shop.s1)
    inventory.release(items((shop.p, 2)), shop.s1)

    assert qty(shop.p, shop.s1) == Decimal(4)


# ---------- DELTA ----------
def test_scenario_c_delta_reconcile_applies_net_change_only(inventory, store, shop, set_qty, qty):
    """
    GIVEN vente [P x4] déjà débitée, S.P = 6
    WHEN la vente passe à [P x6]
    THEN seul le surplus de 2 est débité (pas un nouveau débit de 6)
    """
    set_qty(shop.p, shop.s1, 6)

    result = inventory.delta_reconcile(items((shop.p, 4)), items((shop.p, 6)), shop.s1, sale_id=7)

    assert result.success
    assert [(a.product_id, a.delta) for a in result.adjustments] == [(shop.p, Decimal(-2))]
    assert qty(shop.p, shop.s1) == Decimal(4)
    assert len(store.set_calls) == 1


def test_delta_reconcile_without_change_is_a_noop(inventory, store, shop, set_qty):
    set_qty(shop.p, shop.s1, 6)

    result = inventory.delta_reconcile(items((shop.p, 4)), items((shop.p, 2), (shop.p, 2)), shop.s1)

    assert result.success
    assert result.adjustments == []
    assert store.set_calls == []


def test_delta_reconcile_rejects_negative_per_item(inventory, shop, set_qty, qty):
    set_qty(shop.p, shop.s1, 1)
    set_qty(shop.q, shop.s1, 0)

    result = inventory.delta_reconcile(
        items((shop.p, 1), (shop.q, 5)),
        items((shop.p, 5)),
        shop.s1,
    )

    assert not result.success
    # Q rendu (+5), P refusé (il en faudrait 4 de plus, 1 disponible)
    assert qty(shop.q, shop.s1) == Decimal(5)
    assert qty(shop.p, shop.s1) == Decimal(1)
    assert result.errors == [f"insufficient stock for product {shop.p}: available 1, requested 4"]


# ---------- MOVE ----------
def test_move_success(inventory, shop, set_qty, qty):
    set_qty(shop.p, shop.s1, 6)
    set_qty(shop.p, shop.s2, 10)

    result = inventory.move(items((shop.p, 4)), shop.s1, items((shop.p, 5)), shop.s2, sale_id=1)

    assert result.outcome is MoveOutcome.moved
    assert result.success
    assert qty(shop.p, shop.s1) == Decimal(10)
    assert qty(shop.p, shop.s2) == Decimal(5)


def test_move_failed_commit_is_compensated(inventory, shop, set_qty, qty):
    """
    S1.P = 10 après la vente de 4 ; release -> 14 ; commit de 4 en S2 échoue
    (S2.P = 1) ; la compensation re-débite S1 -> 10.
    """
    set_qty(shop.p, shop.s1, 10)
    set_qty(shop.p, shop.s2, 1)

    result = inventory.move(items((shop.p, 4)), shop.s1, items((shop.p, 4)), shop.s2, sale_id=1)

    assert result.outcome is MoveOutcome.compensated
    assert not result.success
    assert result.release.adjustments[0].resulting_quantity == Decimal(14)
    assert result.commit.deficiencies[0].available == Decimal(1)
    assert result.divergences == []
    assert qty(shop.p, shop.s1) == Decimal(10)
    assert qty(shop.p, shop.s2) == Decimal(1)
    assert result.errors  # la compensation est rapportée, pas cachée


def test_move_compensation_also_reverts_partial_commit(inventory, store, shop, set_qty, qty):
    set_qty(shop.p, shop.s1, 0)
    set_qty(shop.q, shop.s1, 0)
    set_qty(shop.p, shop.s2, 5)
    set_qty(shop.q, shop.s2, 5)

    def steal_q_in_s2(product_id, stockroom_id):
        if (product_id, stockroom_id) == (shop.p, shop.s2) and qty(shop.q, shop.s2) == Decimal(5):
            store.inner.set(shop.q, shop.s2, Decimal(0))

    store.set_hooks.append(steal_q_in_s2)

    result = inventory.move(
        items((shop.p, 2), (shop.q, 2)), shop.s1,
        items((shop.p, 2), (shop.q, 2)), shop.s2,
    )

    assert result.outcome is MoveOutcome.compensated
    assert len(result.compensation) == 2
    assert qty(shop.p, shop.s2) == Decimal(5)
    assert qty(shop.p, shop.s1) == Decimal(0)
    assert qty(shop.q, shop.s1) == Decimal(0)


def test_move_divergence_names_stockroom_product_and_quantity(inventory, store, shop, set_qty, qty):
    set_qty(shop.p, shop.s1, 10)
    set_qty(shop.p, shop.s2, 0)
    calls = []

    def compensation_fails(product_id, stockroom_id):
        if stockroom_id == shop.s1:
            calls.append(product_id)
            if len(calls) == 2:
                raise StockStoreError("connection reset")

    store.set_hooks.append(compensation_fails)

    result = inventory.move(items((shop.p, 4)), shop.s1, items((shop.p, 4)), shop.s2, sale_id=3)

    assert result.outcome is MoveOutcome.diverged
    assert not result.success
    [d] = result.divergences
    assert (d.stockroom_id, d.product_id, d.expected_quantity) == (shop.s1, shop.p, Decimal(10))
    assert "manual correction required" in d.message
    assert qty(shop.p, shop.s1) == Decimal(14)


def test_move_aborts_before_touching_new_stockroom_when_release_fails(inventory, store, shop, set_qty, qty):
    set_qty(shop.p, shop.s2, 10)

    result = inventory.move(items((shop.p, 4)), shop.s1, items((shop.p, 4)), shop.s2)

    assert result.outcome is MoveOutcome.release_failed
    assert result.commit is None
    assert all(call[1] != shop.s2 for call in store.set_calls)
    assert qty(shop.p, shop.s2) == Decimal(10)


# ---------- PROPRIÉTÉS ----------
def test_conservation_and_non_negativity(inventory, shop, set_qty, qty, db_session):
    set_qty(shop.p, shop.s1, 10)
    set_qty(shop.p, shop.s2, 3)
    initial = qty(shop.p, shop.s1)
    applied = []

    steps = [
        inventory.commit(items((shop.p, 4)), shop.s1),
        inventory.commit(items((shop.p, 20)), shop.s1),
        inventory.delta_reconcile(items((shop.p, 4)), items((shop.p, 7)), shop.s1),
        inventory.delta_reconcile(items((shop.p, 7)), items((shop.p, 50)), shop.s1),
        inventory.release(items((shop.p, 2)), shop.s1),
    ]
    move = inventory.move(items((shop.p, 5)), shop.s1, items((shop.p, 5)), shop.s2)
    for step in steps + move.steps:
        if step.stockroom_id == shop.s1:
            applied.extend(a.delta for a in step.applied)
        for a in step.adjustments:
            assert a.resulting_quantity is None or a.resulting_quantity >= 0

    assert move.outcome is MoveOutcome.compensated
    assert sum(applied, Decimal(0)) == qty(shop.p, shop.s1) - initial
    assert qty(shop.p, shop.s1) >= 0 and qty(shop.p, shop.s2) >= 0

    changes = db_session.execute(
        select(StockMovement.change).where(StockMovement.stockroom_id == shop.s1)
    ).scalars().all()
    assert sum(changes, Decimal(0)) == qty(shop.p, shop.s1) - initial


def test_revert_undoes_only_applied_adjustments(inventory, shop, set_qty, qty, db_session):
    set_qty(shop.p, shop.s1, 10)

    result = inventory.release(items((shop.p, 3), (shop.q, 1)), shop.s1, sale_id=9)
    undo = inventory.revert(result, sale_id=9)

    assert undo.success
    assert [(a.product_id, a.delta) for a in undo.adjustments] == [(shop.p, Decimal(-3))]
    assert qty(shop.p, shop.s1) == Decimal(10)

    types = db_session.execute(
        select(StockMovement.movement_type).order_by(StockMovement.id)
    ).scalars().all()
    assert types == [MovementType.reversal, MovementType.compensation]
