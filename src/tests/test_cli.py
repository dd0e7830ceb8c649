"""Tests for the fulfillment command-line utility."""

from decimal import Decimal

import pytest

from src import cli
from src.services import dispatch_service, lot_service, production_order_service


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_rejects_malformed_decimal(capsys):
    with pytest.raises(SystemExit):
        cli.main(["receive-lot", "1", "ten", "5"])


def test_receive_lot_and_show_stock(test_db, catalog, capsys):
    pvc_id = catalog["pvc"].id

    assert cli.main(["receive-lot", str(pvc_id), "12.5", "5.20", "--lot-code", "L-77"]) == 0
    assert cli.main(["stock", str(pvc_id)]) == 0

    out = capsys.readouterr().out
    assert "received: 12.5" in out
    assert "Stock: 12.5" in out
    assert "(baixo)" in out
    assert "L-77" in out


def test_unknown_material_reports_error(test_db, capsys):
    assert cli.main(["stock", "404"]) == 1
    assert "ERROR" in capsys.readouterr().out


def test_start_item_blocked_by_shortfall(test_db, catalog, capsys):
    order = production_order_service.create_production_order(
        items=[{"product_id": catalog["product"].id, "quantity_meters": Decimal("2")}]
    )

    code = cli.main(["start-item", str(order.id), str(order.items[0].id)])

    assert code == 1
    out = capsys.readouterr().out
    assert "Insufficient stock" in out
    assert "ALERT shortfall PVC" in out


def test_start_and_finish_item_with_lot_change(test_db, catalog, lot_dates, capsys):
    lot_service.receive_lot(catalog["pvc"].id, Decimal("1"), Decimal("5.00"), received_at=lot_dates[0])
    lot_service.receive_lot(catalog["pvc"].id, Decimal("5"), Decimal("4.00"), received_at=lot_dates[1])
    lot_service.receive_lot(catalog["pigment"].id, Decimal("1"), Decimal("40.00"), received_at=lot_dates[0])
    order = production_order_service.create_production_order(
        items=[{"product_id": catalog["product"].id, "quantity_meters": Decimal("4")}]
    )
    item_id = str(order.items[0].id)

    assert cli.main(["start-item", str(order.id), item_id]) == 0
    assert cli.main(["finish-item", str(order.id), item_id]) == 0

    out = capsys.readouterr().out
    assert "ALERT lot change PVC:" in out
    assert "(down 20.00%)" in out
    assert "order is concluido" in out


def test_confirm_pallet_flow(test_db, make_sales_order, capsys):
    sales_order = make_sales_order("PV-5001", status="aguardando_despacho")
    pallets = dispatch_service.create_pallets(sales_order.id, count=1)

    assert cli.main(["confirm-pallet", pallets[0].token, "--actor", "doca-1"]) == 0
    assert cli.main(["confirm-pallet", pallets[0].token]) == 2
    assert cli.main(["confirm-pallet", "unknown"]) == 1
    assert cli.main(["pallets", str(sales_order.id)]) == 0

    out = capsys.readouterr().out
    assert "All pallets confirmed; sales order delivered" in out
    assert "ALREADY CONFIRMED: pallet 1" in out
    assert "Pallets: 1/1 confirmed, 0 pending" in out
