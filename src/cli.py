"""
Fulfillment CLI Utility

Command-line interface for the shop floor and dispatch dock.
No UI required - designed for scripting and scan stations.

Usage Examples:
    # Create the database tables
    python -m src.cli init-db

    # Receive 250 kg of raw material 4 at 5.20 per kg
    python -m src.cli receive-lot 4 250 5.20 --lot-code L-2024-031

    # Show stock, level and open lots of raw material 4
    python -m src.cli stock 4

    # Start and finish item 31 of production order 12
    python -m src.cli start-item 12 31
    python -m src.cli start-item 12 31 --policy warn
    python -m src.cli finish-item 12 31

    # Confirm a scanned pallet token
    python -m src.cli confirm-pallet 3q2-Xo... --actor doca-2

    # Show pallet progress of sales order 7
    python -m src.cli pallets 7
"""

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation

from src.services import dispatch_service, lot_service, production_order_service
from src.services.database import initialize_app_database
from src.services.dto import LotChangeAlert
from src.services.exceptions import AlreadyConfirmed, InsufficientStock, ServiceError


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a decimal number: {value!r}")


def _print_alerts(alerts):
    for alert in alerts:
        if isinstance(alert, LotChangeAlert):
            direction = "up" if alert.is_increase else "down"
            print(
                f"  ALERT lot change {alert.raw_material_name}: "
                f"{alert.previous_unit_cost} -> {alert.new_unit_cost} "
                f"({direction} {abs(alert.percent_difference)}%)"
            )
        else:
            print(
                f"  ALERT shortfall {alert.raw_material_name}: "
                f"missing {alert.missing} {alert.unit}"
            )


def init_db(args) -> int:
    """Create tables if missing."""
    initialize_app_database()
    print("Database ready")
    return 0


def receive_lot(args) -> int:
    lot = lot_service.receive_lot(
        args.raw_material_id,
        args.quantity,
        args.unit_cost,
        lot_code=args.lot_code,
    )
    print(f"Lot {lot.id} received: {lot.initial_quantity} at {lot.unit_cost}")
    return 0


def show_stock(args) -> int:
    quantity = lot_service.get_stock_quantity(args.raw_material_id)
    level = lot_service.get_stock_level(args.raw_material_id)
    print(f"Stock: {quantity} ({level.value})")
    for lot in lot_service.get_lots(args.raw_material_id):
        code = lot.lot_code or "-"
        print(f"  lot {lot.id} {code} {lot.received_at:%Y-%m-%d} {lot.remaining_quantity} @ {lot.unit_cost}")
    return 0


def start_item(args) -> int:
    try:
        item, alerts = production_order_service.start_item(
            args.order_id, args.item_id, shortfall_policy=args.policy
        )
    except InsufficientStock as e:
        print(f"ERROR: {e}")
        _print_alerts(e.shortfalls)
        return 1
    print(f"Item {item.id} started; order is {item.order.status}")
    _print_alerts(alerts)
    return 0


def finish_item(args) -> int:
    item = production_order_service.finish_item(args.order_id, args.item_id)
    print(f"Item {item.id} finished; order is {item.order.status}")
    return 0


def confirm_pallet(args) -> int:
    try:
        pallet, all_confirmed = dispatch_service.confirm_pallet(args.token, actor_id=args.actor)
    except AlreadyConfirmed as e:
        print(f"ALREADY CONFIRMED: pallet {e.pallet_number} at {e.confirmed_at}")
        return 2
    print(f"Pallet {pallet.pallet_number} confirmed")
    if all_confirmed:
        print("All pallets confirmed; sales order delivered")
    return 0


def show_pallets(args) -> int:
    summary = dispatch_service.get_pallet_summary(args.sales_order_id)
    print(
        f"Pallets: {summary['confirmed']}/{summary['total']} confirmed, "
        f"{summary['pending']} pending"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Production fulfillment and dispatch utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log service operations")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=init_db)

    receive_parser = subparsers.add_parser("receive-lot", help="Receive a raw material lot")
    receive_parser.add_argument("raw_material_id", type=int)
    receive_parser.add_argument("quantity", type=_decimal)
    receive_parser.add_argument("unit_cost", type=_decimal)
    receive_parser.add_argument("--lot-code", help="Supplier lot reference")
    receive_parser.set_defaults(func=receive_lot)

    stock_parser = subparsers.add_parser("stock", help="Show stock and open lots")
    stock_parser.add_argument("raw_material_id", type=int)
    stock_parser.set_defaults(func=show_stock)

    start_parser = subparsers.add_parser("start-item", help="Start a production order item")
    start_parser.add_argument("order_id", type=int)
    start_parser.add_argument("item_id", type=int)
    start_parser.add_argument(
        "--policy",
        choices=["block", "warn"],
        default=None,
        help="Shortfall policy (default: configured policy)",
    )
    start_parser.set_defaults(func=start_item)

    finish_parser = subparsers.add_parser("finish-item", help="Finish a production order item")
    finish_parser.add_argument("order_id", type=int)
    finish_parser.add_argument("item_id", type=int)
    finish_parser.set_defaults(func=finish_item)

    confirm_parser = subparsers.add_parser("confirm-pallet", help="Confirm a scanned pallet token")
    confirm_parser.add_argument("token")
    confirm_parser.add_argument("--actor", help="Who is confirming")
    confirm_parser.set_defaults(func=confirm_pallet)

    pallets_parser = subparsers.add_parser("pallets", help="Show pallet progress of a sales order")
    pallets_parser.add_argument("sales_order_id", type=int)
    pallets_parser.set_defaults(func=show_pallets)

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
