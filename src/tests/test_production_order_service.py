"""Tests for the production order state machine."""

from decimal import Decimal

import pytest

from src.models import Pallet, ProductionOrder, SalesOrder
from src.services import lot_service, production_order_service as pos
from src.services.dto import LotChangeAlert, Shortfall
from src.services.exceptions import (
    InsufficientStock,
    InvalidTransition,
    ProductNotFound,
    ProductionOrderItemNotFound,
    ProductionOrderNotFound,
    RecipeNotFound,
    SalesOrderNotFound,
    ValidationError,
)
from src.utils.config import Config, set_config


@pytest.fixture
def stocked(catalog, lot_dates):
    """Plenty of PVC in two lots with different costs, plenty of pigment."""
    lot_service.receive_lot(catalog["pvc"].id, Decimal("30"), Decimal("5.00"), received_at=lot_dates[0])
    lot_service.receive_lot(catalog["pvc"].id, Decimal("100"), Decimal("8.00"), received_at=lot_dates[1])
    lot_service.receive_lot(catalog["pigment"].id, Decimal("5"), Decimal("40.00"), received_at=lot_dates[0])
    return catalog


@pytest.fixture
def handoff_calls():
    """Register a recording completion hand-off."""
    calls = []

    def _record(order, session):
        calls.append((order.id, order.status, [item.status for item in order.items]))

    pos.set_completion_handoff(_record)
    return calls


def _three_item_order(product_id, **kwargs):
    return pos.create_production_order(
        items=[
            {"product_id": product_id, "quantity_meters": Decimal("20")},
            {"product_id": product_id, "quantity_meters": Decimal("20")},
            {"product_id": product_id, "piece_count": 10, "piece_length_mm": Decimal("2000")},
        ],
        **kwargs,
    )


def _db_order(test_db, order_id):
    session = test_db()
    session.expire_all()
    return session.query(ProductionOrder).filter_by(id=order_id).one()


class TestCreateProductionOrder:
    def test_numbering_is_sequential(self, test_db, catalog):
        first = pos.create_production_order(product_id=catalog["product"].id, quantity_meters=Decimal("5"))
        second = _three_item_order(catalog["product"].id)

        assert first.order_number == "OP-0001"
        assert second.order_number == "OP-0002"
        assert first.status == "aguardando"

    def test_items_are_created_waiting(self, test_db, catalog):
        order = _three_item_order(catalog["product"].id)

        assert len(order.items) == 3
        assert {item.status for item in order.items} == {"aguardando"}
        assert order.items[2].quantity_to_produce == Decimal("20")

    def test_requires_product_or_items(self, test_db):
        with pytest.raises(ValidationError):
            pos.create_production_order()

    def test_requires_quantity(self, test_db, catalog):
        with pytest.raises(ValidationError) as exc_info:
            pos.create_production_order(items=[{"product_id": catalog["product"].id}])

        assert "Item 1" in str(exc_info.value)

    def test_unknown_product(self, test_db):
        with pytest.raises(ProductNotFound):
            pos.create_production_order(product_id=77, quantity_meters=Decimal("1"))

    def test_unknown_sales_order(self, test_db, catalog):
        with pytest.raises(SalesOrderNotFound):
            pos.create_production_order(
                product_id=catalog["product"].id, quantity_meters=Decimal("1"), sales_order_id=5
            )


class TestItemLifecycle:
    def test_start_item_consumes_and_reports_alerts(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)
        item_id = order.items[0].id

        # 20 m -> 10 kg PVC from the 30 kg lot, no crossing yet
        item, alerts = pos.start_item(order.id, item_id)

        assert item.status == "em_producao"
        assert item.started_at is not None
        assert item.order.status == "em_producao"
        assert alerts == []
        assert lot_service.get_stock_quantity(stocked["pvc"].id) == Decimal("120")

    def test_start_item_crossing_lots_returns_lot_change_alert(self, test_db, stocked):
        order = pos.create_production_order(
            items=[{"product_id": stocked["product"].id, "quantity_meters": Decimal("70")}]
        )

        _, alerts = pos.start_item(order.id, order.items[0].id)

        # 35 kg PVC: drains the 5.00 lot and continues into the 8.00 lot
        assert len(alerts) == 1
        assert isinstance(alerts[0], LotChangeAlert)
        assert alerts[0].percent_difference == Decimal("60")

    def test_movements_reference_order_number(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)

        pos.start_item(order.id, order.items[0].id)

        movements = lot_service.get_movements(stocked["pvc"].id, reference=order.order_number)
        assert len(movements) == 1

    def test_double_start_rejected_without_second_consumption(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)
        item_id = order.items[0].id
        pos.start_item(order.id, item_id)

        with pytest.raises(InvalidTransition) as exc_info:
            pos.start_item(order.id, item_id)

        assert exc_info.value.current_status == "em_producao"
        assert lot_service.get_stock_quantity(stocked["pvc"].id) == Decimal("120")

    def test_finish_requires_started_item(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)

        with pytest.raises(InvalidTransition):
            pos.finish_item(order.id, order.items[0].id)

    def test_finish_twice_rejected(self, test_db, stocked, handoff_calls):
        order = _three_item_order(stocked["product"].id)
        item_id = order.items[0].id
        pos.start_item(order.id, item_id)
        pos.finish_item(order.id, item_id)

        with pytest.raises(InvalidTransition):
            pos.finish_item(order.id, item_id)

    def test_three_items_partial_then_concluded_with_single_handoff(
        self, test_db, stocked, handoff_calls
    ):
        order = _three_item_order(stocked["product"].id)
        first, second, third = [item.id for item in order.items]

        pos.start_item(order.id, first)
        item = pos.finish_item(order.id, first)
        assert item.finished_at is not None
        assert item.order.status == "parcial"

        pos.start_item(order.id, second)
        assert _db_order(test_db, order.id).status == "parcial"
        pos.finish_item(order.id, second)
        assert _db_order(test_db, order.id).status == "parcial"
        assert handoff_calls == []

        pos.start_item(order.id, third)
        item = pos.finish_item(order.id, third)

        assert item.order.status == "concluido"
        assert item.order.completed_at is not None
        assert handoff_calls == [(order.id, "concluido", ["finalizado"] * 3)]

    def test_cancelling_last_open_item_completes_order(self, test_db, stocked, handoff_calls):
        order = _three_item_order(stocked["product"].id)
        first, second, third = [item.id for item in order.items]
        for item_id in (first, second):
            pos.start_item(order.id, item_id)
            pos.finish_item(order.id, item_id)

        item = pos.cancel_item(order.id, third)

        assert item.status == "cancelado"
        assert item.order.status == "concluido"
        assert len(handoff_calls) == 1

    def test_all_items_cancelled_cancels_order_without_handoff(self, test_db, stocked, handoff_calls):
        order = pos.create_production_order(
            items=[
                {"product_id": stocked["product"].id, "quantity_meters": Decimal("1")},
                {"product_id": stocked["product"].id, "quantity_meters": Decimal("1")},
            ]
        )
        for item in order.items:
            pos.cancel_item(order.id, item.id)

        assert _db_order(test_db, order.id).status == "cancelado"
        assert handoff_calls == []

    def test_cancel_finished_item_rejected(self, test_db, stocked, handoff_calls):
        order = _three_item_order(stocked["product"].id)
        item_id = order.items[0].id
        pos.start_item(order.id, item_id)
        pos.finish_item(order.id, item_id)

        with pytest.raises(InvalidTransition):
            pos.cancel_item(order.id, item_id)

    def test_per_call_handoff_overrides_registered_one(self, test_db, stocked, handoff_calls):
        order = pos.create_production_order(
            items=[{"product_id": stocked["product"].id, "quantity_meters": Decimal("1")}]
        )
        item_id = order.items[0].id
        pos.start_item(order.id, item_id)
        seen = []

        pos.finish_item(order.id, item_id, on_complete=lambda o, s: seen.append(o.order_number))

        assert seen == [order.order_number]
        assert handoff_calls == []

    def test_failing_handoff_rolls_back_completion(self, test_db, stocked):
        order = pos.create_production_order(
            items=[{"product_id": stocked["product"].id, "quantity_meters": Decimal("1")}]
        )
        item_id = order.items[0].id
        pos.start_item(order.id, item_id)

        def _explode(order, session):
            raise RuntimeError("printer offline")

        with pytest.raises(RuntimeError):
            pos.finish_item(order.id, item_id, on_complete=_explode)

        stored = _db_order(test_db, order.id)
        assert stored.status == "em_producao"
        assert stored.items[0].status == "em_producao"

    def test_unknown_item(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)

        with pytest.raises(ProductionOrderItemNotFound):
            pos.start_item(order.id, 9999)

    def test_item_of_other_order_rejected(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)
        other = _three_item_order(stocked["product"].id)

        with pytest.raises(ProductionOrderItemNotFound):
            pos.start_item(order.id, other.items[0].id)

    def test_unknown_order(self, test_db):
        with pytest.raises(ProductionOrderNotFound):
            pos.finish_item(404, 1)

    def test_item_without_recipe(self, test_db, make_product):
        product = make_product("Sem receita")
        order = pos.create_production_order(
            items=[{"product_id": product.id, "quantity_meters": Decimal("1")}]
        )

        with pytest.raises(RecipeNotFound):
            pos.start_item(order.id, order.items[0].id)

        assert _db_order(test_db, order.id).items[0].status == "aguardando"


class TestShortfallPolicy:
    def test_block_policy_raises_and_rolls_back(self, test_db, catalog, lot_dates):
        lot_service.receive_lot(catalog["pvc"].id, Decimal("2"), Decimal("5"), received_at=lot_dates[0])
        lot_service.receive_lot(catalog["pigment"].id, Decimal("5"), Decimal("40"), received_at=lot_dates[0])
        order = pos.create_production_order(
            items=[{"product_id": catalog["product"].id, "quantity_meters": Decimal("10")}]
        )

        with pytest.raises(InsufficientStock) as exc_info:
            pos.start_item(order.id, order.items[0].id)

        shortfalls = exc_info.value.shortfalls
        assert [s.raw_material_name for s in shortfalls] == ["PVC"]
        assert shortfalls[0].missing == Decimal("3")
        # Nothing consumed, item still waiting
        assert lot_service.get_stock_quantity(catalog["pvc"].id) == Decimal("2")
        assert lot_service.get_stock_quantity(catalog["pigment"].id) == Decimal("5")
        assert _db_order(test_db, order.id).items[0].status == "aguardando"

    def test_warn_policy_proceeds_and_reports_shortfall(self, test_db, catalog, lot_dates):
        lot_service.receive_lot(catalog["pvc"].id, Decimal("2"), Decimal("5"), received_at=lot_dates[0])
        lot_service.receive_lot(catalog["pigment"].id, Decimal("5"), Decimal("40"), received_at=lot_dates[0])
        order = pos.create_production_order(
            items=[{"product_id": catalog["product"].id, "quantity_meters": Decimal("10")}]
        )

        item, alerts = pos.start_item(order.id, order.items[0].id, shortfall_policy="warn")

        assert item.status == "em_producao"
        assert [type(a) for a in alerts] == [Shortfall]
        assert alerts[0].missing == Decimal("3")
        assert lot_service.get_stock_quantity(catalog["pvc"].id) == Decimal("0")

    def test_configured_policy_applies(self, test_db, catalog):
        set_config(Config(shortfall_policy="warn"))
        order = pos.create_production_order(
            items=[{"product_id": catalog["product"].id, "quantity_meters": Decimal("1")}]
        )

        _, alerts = pos.start_item(order.id, order.items[0].id)

        assert {a.kind for a in alerts} == {"shortfall"}

    def test_unknown_policy_rejected(self, test_db, catalog):
        order = pos.create_production_order(
            items=[{"product_id": catalog["product"].id, "quantity_meters": Decimal("1")}]
        )

        with pytest.raises(ValidationError):
            pos.start_item(order.id, order.items[0].id, shortfall_policy="ignore")


class TestLegacyOrders:
    def test_start_and_finish_order(self, test_db, stocked, handoff_calls):
        order = pos.create_production_order(
            product_id=stocked["product"].id, piece_count=4, piece_length_mm=Decimal("2500")
        )

        started, alerts = pos.start_order(order.id)

        assert started.status == "em_producao"
        assert started.started_at is not None
        assert alerts == []
        # 10 m -> 5 kg PVC
        assert lot_service.get_stock_quantity(stocked["pvc"].id) == Decimal("125")

        finished = pos.finish_order(order.id)

        assert finished.status == "concluido"
        assert finished.completed_at is not None
        assert len(handoff_calls) == 1

    def test_finish_without_start_rejected(self, test_db, stocked):
        order = pos.create_production_order(product_id=stocked["product"].id, quantity_meters=Decimal("1"))

        with pytest.raises(InvalidTransition):
            pos.finish_order(order.id)

    def test_double_start_rejected(self, test_db, stocked):
        order = pos.create_production_order(product_id=stocked["product"].id, quantity_meters=Decimal("1"))
        pos.start_order(order.id)

        with pytest.raises(InvalidTransition):
            pos.start_order(order.id)

    def test_order_level_transitions_rejected_for_itemized_orders(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)

        with pytest.raises(InvalidTransition) as exc_info:
            pos.start_order(order.id)

        assert "follows the items" in str(exc_info.value)

        with pytest.raises(InvalidTransition):
            pos.finish_order(order.id)

    def test_finish_twice_rejected(self, test_db, stocked, handoff_calls):
        order = pos.create_production_order(product_id=stocked["product"].id, quantity_meters=Decimal("1"))
        pos.start_order(order.id)
        pos.finish_order(order.id)

        with pytest.raises(InvalidTransition):
            pos.finish_order(order.id)

        assert len(handoff_calls) == 1


class TestCancelAndDelete:
    def test_cancel_waiting_order_cancels_items(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)

        cancelled = pos.cancel_order(order.id)

        assert cancelled.status == "cancelado"
        assert {item.status for item in cancelled.items} == {"cancelado"}

    def test_cancel_running_order(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)
        pos.start_item(order.id, order.items[0].id)

        assert pos.cancel_order(order.id).status == "cancelado"

    def test_cancel_partial_order_rejected(self, test_db, stocked, handoff_calls):
        order = _three_item_order(stocked["product"].id)
        pos.start_item(order.id, order.items[0].id)
        pos.finish_item(order.id, order.items[0].id)

        with pytest.raises(InvalidTransition):
            pos.cancel_order(order.id)

    def test_delete_waiting_order(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)

        assert pos.delete_production_order(order.id) is True

        with pytest.raises(ProductionOrderNotFound):
            pos.get_production_order(order.id)

    def test_delete_running_order_rejected(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)
        pos.start_item(order.id, order.items[0].id)

        with pytest.raises(InvalidTransition):
            pos.delete_production_order(order.id)

    def test_allowed_transitions_of_stored_order(self, test_db, stocked):
        order = _three_item_order(stocked["product"].id)

        assert pos.get_allowed_transitions(order.id) == ["em_producao", "cancelado"]


class TestSalesOrderIntegration:
    def test_first_start_moves_sales_order_to_production(self, test_db, stocked, make_sales_order, handoff_calls):
        sales_order = make_sales_order("PV-2001", status="aprovado")
        order = _three_item_order(stocked["product"].id, sales_order_id=sales_order.id)

        pos.start_item(order.id, order.items[0].id)

        session = test_db()
        session.expire_all()
        assert session.query(SalesOrder).filter_by(id=sales_order.id).one().status == "producao"

    def test_default_handoff_prepares_dispatch(self, test_db, stocked, make_sales_order):
        sales_order = make_sales_order("PV-2002", status="aprovado", pallet_count=3)
        order = pos.create_production_order(
            items=[{"product_id": stocked["product"].id, "quantity_meters": Decimal("2")}],
            sales_order_id=sales_order.id,
        )
        item_id = order.items[0].id

        pos.start_item(order.id, item_id)
        pos.finish_item(order.id, item_id)

        session = test_db()
        session.expire_all()
        stored = session.query(SalesOrder).filter_by(id=sales_order.id).one()
        assert stored.status == "aguardando_despacho"
        pallets = session.query(Pallet).filter_by(sales_order_id=sales_order.id).all()
        assert sorted(p.pallet_number for p in pallets) == [1, 2, 3]
        assert len({p.token for p in pallets}) == 3

    def test_default_handoff_waits_for_sibling_orders(self, test_db, stocked, make_sales_order):
        sales_order = make_sales_order("PV-2003", status="aprovado")
        first = pos.create_production_order(
            product_id=stocked["product"].id, quantity_meters=Decimal("1"), sales_order_id=sales_order.id
        )
        second = pos.create_production_order(
            product_id=stocked["product"].id, quantity_meters=Decimal("1"), sales_order_id=sales_order.id
        )

        pos.start_order(first.id)
        pos.finish_order(first.id)

        session = test_db()
        session.expire_all()
        assert session.query(SalesOrder).filter_by(id=sales_order.id).one().status == "producao"
        assert session.query(Pallet).count() == 0

        pos.start_order(second.id)
        pos.finish_order(second.id)

        session = test_db()
        session.expire_all()
        assert session.query(SalesOrder).filter_by(id=sales_order.id).one().status == "aguardando_despacho"
        assert session.query(Pallet).count() == 1


def test_list_production_orders_by_status(test_db, stocked):
    waiting = _three_item_order(stocked["product"].id)
    running = _three_item_order(stocked["product"].id)
    pos.start_item(running.id, running.items[0].id)

    assert [o.id for o in pos.list_production_orders(status="aguardando")] == [waiting.id]
    assert [o.id for o in pos.list_production_orders()] == [running.id, waiting.id]
