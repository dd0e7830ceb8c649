"""Tests for the lot ledger: goods receipt, FIFO consumption, alerts and shortfalls."""

from decimal import Decimal

import pytest

from src.models import LotStatus, MovementReason, RawMaterial, StockLevel, StockLot
from src.services import lot_service
from src.services.exceptions import RawMaterialNotFound, ValidationError
from src.utils.config import Config, set_config


@pytest.fixture
def pvc(make_raw_material):
    return make_raw_material("PVC", standard_cost="5.00")


@pytest.fixture
def two_lots(pvc, lot_dates):
    """Lot A: 10 kg at 5.00 (older); lot B: 10 kg at 8.00."""
    lot_a = lot_service.receive_lot(pvc.id, Decimal("10"), Decimal("5.00"), received_at=lot_dates[0])
    lot_b = lot_service.receive_lot(pvc.id, Decimal("10"), Decimal("8.00"), received_at=lot_dates[1])
    return lot_a, lot_b


def _material(test_db, material_id):
    session = test_db()
    session.expire_all()
    return session.query(RawMaterial).filter_by(id=material_id).one()


def _lot_sum(test_db, material_id):
    session = test_db()
    session.expire_all()
    lots = session.query(StockLot).filter_by(raw_material_id=material_id).all()
    return sum((lot.remaining_quantity for lot in lots), Decimal("0"))


class TestReceiveLot:
    def test_receive_lot_updates_stock(self, test_db, pvc):
        lot = lot_service.receive_lot(pvc.id, Decimal("12.5"), Decimal("4.80"), lot_code="L-001")

        assert lot.id is not None
        assert lot.remaining_quantity == Decimal("12.5")
        assert lot.status == LotStatus.ATIVO.value
        assert lot_service.get_stock_quantity(pvc.id) == Decimal("12.5")

    def test_receive_lot_writes_purchase_movement(self, test_db, pvc):
        lot_service.receive_lot(pvc.id, Decimal("3"), Decimal("4.80"), reference="NF-889")

        movements = lot_service.get_movements(pvc.id)
        assert len(movements) == 1
        assert movements[0].reason == MovementReason.COMPRA.value
        assert movements[0].quantity_before == Decimal("0")
        assert movements[0].quantity_after == Decimal("3")
        assert movements[0].reference == "NF-889"

    def test_receive_lot_rejects_non_positive_values(self, test_db, pvc):
        with pytest.raises(ValidationError) as exc_info:
            lot_service.receive_lot(pvc.id, Decimal("0"), Decimal("0"))

        assert len(exc_info.value.errors) == 2

    def test_receive_lot_unknown_material(self, test_db):
        with pytest.raises(RawMaterialNotFound):
            lot_service.receive_lot(999, Decimal("1"), Decimal("1"))


class TestConsumeFifo:
    def test_consume_crosses_lots_and_alerts_on_cost_change(self, test_db, pvc, two_lots):
        lot_a, lot_b = two_lots

        result = lot_service.consume(pvc.id, Decimal("15"), reference="OP-0001")

        assert result.success
        assert result.consumed == Decimal("15")
        assert [(t.lot_id, t.quantity) for t in result.lots_touched] == [
            (lot_a.id, Decimal("10")),
            (lot_b.id, Decimal("5")),
        ]

        assert len(result.alerts) == 1
        alert = result.alerts[0]
        assert alert.kind == "lot_change"
        assert alert.previous_lot_id == lot_a.id
        assert alert.new_lot_id == lot_b.id
        assert alert.previous_unit_cost == Decimal("5.00")
        assert alert.new_unit_cost == Decimal("8.00")
        assert alert.percent_difference == Decimal("60")
        assert alert.remaining_in_new_lot == Decimal("5")
        assert alert.current_standard_cost == Decimal("5.00")
        assert alert.is_increase

        assert result.total_cost == Decimal("90.00")
        assert _material(test_db, pvc.id).stock_quantity == Decimal("5")

    def test_drained_lot_is_kept_as_exhausted(self, test_db, pvc, two_lots):
        lot_a, _ = two_lots

        lot_service.consume(pvc.id, Decimal("15"))

        lots = lot_service.get_lots(pvc.id, include_exhausted=True)
        assert lots[0].id == lot_a.id
        assert lots[0].remaining_quantity == Decimal("0")
        assert lots[0].status == LotStatus.ESGOTADO.value
        assert [lot.id for lot in lot_service.get_lots(pvc.id)] == [two_lots[1].id]

    def test_exact_drain_of_last_lot_has_no_shortfall(self, test_db, pvc, two_lots):
        result = lot_service.consume(pvc.id, Decimal("20"))

        assert result.success
        assert result.shortfall is None
        assert result.consumed == Decimal("20")
        assert lot_service.get_stock_quantity(pvc.id) == Decimal("0")

    def test_exhaustion_reports_shortfall_without_negative_lots(self, test_db, pvc, two_lots):
        result = lot_service.consume(pvc.id, Decimal("25"))

        assert not result.success
        shortfall = result.shortfall
        assert shortfall.kind == "shortfall"
        assert shortfall.required == Decimal("25")
        assert shortfall.consumed == Decimal("20")
        assert shortfall.missing == Decimal("5")
        assert shortfall.unit == "kg"
        assert shortfall.raw_material_name == "PVC"

        for lot in lot_service.get_lots(pvc.id, include_exhausted=True):
            assert lot.remaining_quantity >= 0
        assert lot_service.get_stock_quantity(pvc.id) == Decimal("0")

    def test_consume_without_lots_is_full_shortfall(self, test_db, pvc):
        result = lot_service.consume(pvc.id, Decimal("2"))

        assert result.lots_touched == []
        assert result.shortfall.missing == Decimal("2")

    def test_no_alert_within_a_single_lot(self, test_db, pvc, two_lots):
        result = lot_service.consume(pvc.id, Decimal("4"))
        assert result.alerts == []

        again = lot_service.consume(pvc.id, Decimal("3"))
        assert again.alerts == []

    def test_lot_drained_exactly_alerts_on_next_call(self, test_db, pvc, two_lots):
        lot_a, lot_b = two_lots

        first = lot_service.consume(pvc.id, Decimal("10"))
        assert first.alerts == []

        # The next call starts on lot B after lot A ran dry
        second = lot_service.consume(pvc.id, Decimal("5"))
        assert len(second.alerts) == 1
        alert = second.alerts[0]
        assert alert.previous_lot_id == lot_a.id
        assert alert.new_lot_id == lot_b.id
        assert alert.previous_unit_cost == Decimal("5.00")
        assert alert.new_unit_cost == Decimal("8.00")
        assert alert.remaining_in_new_lot == Decimal("5")

        # Lot B already reported
        third = lot_service.consume(pvc.id, Decimal("2"))
        assert third.alerts == []

    def test_equal_costs_do_not_alert(self, test_db, pvc, lot_dates):
        lot_service.receive_lot(pvc.id, Decimal("4"), Decimal("6.00"), received_at=lot_dates[0])
        lot_service.receive_lot(pvc.id, Decimal("4"), Decimal("6.00"), received_at=lot_dates[1])

        result = lot_service.consume(pvc.id, Decimal("6"))

        assert result.alerts == []

    def test_tolerance_suppresses_small_differences(self, test_db, pvc, lot_dates):
        lot_service.receive_lot(pvc.id, Decimal("4"), Decimal("10.00"), received_at=lot_dates[0])
        lot_service.receive_lot(pvc.id, Decimal("4"), Decimal("10.40"), received_at=lot_dates[1])

        quiet = lot_service.consume(pvc.id, Decimal("5"), tolerance_percent=Decimal("5"))

        assert quiet.alerts == []

    def test_configured_tolerance_is_used_by_default(self, test_db, pvc, two_lots):
        set_config(Config(lot_cost_tolerance_percent=Decimal("75")))

        result = lot_service.consume(pvc.id, Decimal("15"))

        assert result.alerts == []

    def test_cost_decrease_alerts_too(self, test_db, pvc, lot_dates):
        lot_service.receive_lot(pvc.id, Decimal("2"), Decimal("8.00"), received_at=lot_dates[0])
        lot_service.receive_lot(pvc.id, Decimal("2"), Decimal("6.00"), received_at=lot_dates[1])

        result = lot_service.consume(pvc.id, Decimal("3"))

        assert result.alerts[0].percent_difference == Decimal("-25")
        assert not result.alerts[0].is_increase

    def test_alert_for_each_crossing(self, test_db, pvc, lot_dates):
        for offset, cost in enumerate(["5.00", "6.00", "9.00"]):
            lot_service.receive_lot(pvc.id, Decimal("1"), Decimal(cost), received_at=lot_dates[offset])

        result = lot_service.consume(pvc.id, Decimal("2.5"))

        assert [a.new_unit_cost for a in result.alerts] == [Decimal("6.00"), Decimal("9.00")]

    def test_same_timestamp_lots_consumed_by_id(self, test_db, pvc, lot_dates):
        first = lot_service.receive_lot(pvc.id, Decimal("1"), Decimal("5"), received_at=lot_dates[0])
        second = lot_service.receive_lot(pvc.id, Decimal("1"), Decimal("5"), received_at=lot_dates[0])

        result = lot_service.consume(pvc.id, Decimal("1.5"))

        assert [t.lot_id for t in result.lots_touched] == [first.id, second.id]

    def test_older_lot_received_later_is_consumed_first(self, test_db, pvc, lot_dates):
        newer = lot_service.receive_lot(pvc.id, Decimal("1"), Decimal("5"), received_at=lot_dates[5])
        older = lot_service.receive_lot(pvc.id, Decimal("1"), Decimal("5"), received_at=lot_dates[1])

        result = lot_service.consume(pvc.id, Decimal("1"))

        assert [t.lot_id for t in result.lots_touched] == [older.id]
        assert newer.id != older.id

    def test_one_movement_per_lot_touched(self, test_db, pvc, two_lots):
        lot_service.consume(pvc.id, Decimal("15"), reference="OP-0007")

        movements = lot_service.get_movements(pvc.id, reference="OP-0007")
        assert [m.quantity_moved for m in movements] == [Decimal("-10"), Decimal("-5")]
        assert [m.quantity_after for m in movements] == [Decimal("10"), Decimal("5")]
        assert all(m.reason == MovementReason.PRODUCAO.value for m in movements)

    def test_stock_matches_lot_sum_after_each_operation(self, test_db, pvc, two_lots):
        for quantity in ["3", "7.25", "0", "12"]:
            lot_service.consume(pvc.id, Decimal(quantity))
            assert _material(test_db, pvc.id).stock_quantity == _lot_sum(test_db, pvc.id)

    def test_zero_requirement_touches_nothing(self, test_db, pvc, two_lots):
        result = lot_service.consume(pvc.id, Decimal("0"))

        assert result.success
        assert result.lots_touched == []
        assert lot_service.get_movements(pvc.id, reference=None)[-1].reason == "compra"

    def test_negative_requirement_rejected(self, test_db, pvc):
        with pytest.raises(ValidationError):
            lot_service.consume(pvc.id, Decimal("-1"))

    def test_unknown_material(self, test_db):
        with pytest.raises(RawMaterialNotFound):
            lot_service.consume(4242, Decimal("1"))


class TestStockMaintenance:
    def test_recompute_stock_corrects_drift(self, test_db, pvc, two_lots):
        session = test_db()
        material = session.query(RawMaterial).filter_by(id=pvc.id).one()
        material.stock_quantity = Decimal("999")
        session.commit()

        assert lot_service.recompute_stock(pvc.id) == Decimal("20")
        assert _material(test_db, pvc.id).stock_quantity == Decimal("20")

    def test_update_standard_cost(self, test_db, pvc):
        material = lot_service.update_standard_cost(pvc.id, Decimal("8.00"))

        assert material.standard_cost == Decimal("8.00")

    def test_update_standard_cost_rejects_negative(self, test_db, pvc):
        with pytest.raises(ValidationError):
            lot_service.update_standard_cost(pvc.id, Decimal("-1"))

        assert lot_service.get_cost_history(pvc.id) == []

    def test_accepting_lot_change_records_cost_history(self, test_db, pvc, two_lots):
        alert = lot_service.consume(pvc.id, Decimal("15")).alerts[0]

        lot_service.update_standard_cost(pvc.id, alert.new_unit_cost)
        lot_service.update_standard_cost(pvc.id, Decimal("7.50"), reason="Negotiated", notes="contract 12")

        history = lot_service.get_cost_history(pvc.id)
        assert [(h.previous_cost, h.new_cost) for h in history] == [
            (Decimal("5.00"), Decimal("8.00")),
            (Decimal("8.00"), Decimal("7.50")),
        ]
        assert history[0].reason == "Troca de lote (PEPS)"
        assert history[0].created_at is not None
        assert history[1].reason == "Negotiated"
        assert history[1].notes == "contract 12"
        assert _material(test_db, pvc.id).standard_cost == Decimal("7.50")

    def test_first_standard_cost_has_no_previous(self, test_db, make_raw_material):
        pigment = make_raw_material("Pigmento")

        lot_service.update_standard_cost(pigment.id, Decimal("40"))

        (change,) = lot_service.get_cost_history(pigment.id)
        assert change.previous_cost is None
        assert change.new_cost == Decimal("40")

    def test_version_increments_on_write(self, test_db, pvc):
        before = _material(test_db, pvc.id).version

        lot_service.receive_lot(pvc.id, Decimal("1"), Decimal("1"))

        assert _material(test_db, pvc.id).version > before


class TestStockLevel:
    @pytest.mark.parametrize(
        "stock, minimum, expected",
        [
            ("0", "0", StockLevel.NORMAL),
            ("4", "10", StockLevel.CRITICO),
            ("5", "10", StockLevel.BAIXO),
            ("9.99", "10", StockLevel.BAIXO),
            ("10", "10", StockLevel.NORMAL),
            ("50", "10", StockLevel.NORMAL),
        ],
    )
    def test_classify_stock_level(self, stock, minimum, expected):
        assert lot_service.classify_stock_level(Decimal(stock), Decimal(minimum)) == expected

    def test_get_stock_level_of_stored_material(self, test_db, make_raw_material):
        material = make_raw_material("Estabilizante", minimum_stock="10")
        lot_service.receive_lot(material.id, Decimal("3"), Decimal("12"))

        assert lot_service.get_stock_level(material.id) == StockLevel.CRITICO
