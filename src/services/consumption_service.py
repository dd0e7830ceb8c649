"""Consumption Engine - recipe x quantity -> per-material FIFO consumption.

Key Features:
- Resolve the product recipe and scale it to the production quantity
- Consume each raw material from its lots (lot_service.consume)
- Collect lot-change alerts and shortfalls into one report
- Dry-run availability check that never touches lots

A shortfall on one material does not undo the others within the engine
call. Whether a shortfall blocks the production start is decided by the
production order service, which rolls back the whole unit of work.

All functions accept an optional session parameter.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import RawMaterial
from .database import session_scope
from .dto import AvailabilityLine, ProductionConsumptionReport
from .exceptions import PersistenceFailure, ServiceError
from .locking import locked, raw_material_key
from .logging_utils import get_service_logger, log_operation
from . import lot_service, recipe_service

logger = get_service_logger(__name__)


def material_ids_for_product(product_id: int, session: Optional[Session] = None) -> List[int]:
    """
    Raw material IDs a product's recipe consumes, sorted.

    Used to take every material lock before a production start.
    """
    return [req.raw_material_id for req in recipe_service.resolve_recipe(product_id, session=session)]


def _consume_for_production_impl(
    product_id: int,
    quantity: Decimal,
    reference: Optional[str],
    tolerance_percent: Optional[Decimal],
    session: Session,
) -> ProductionConsumptionReport:
    report = ProductionConsumptionReport(
        product_id=product_id, quantity=quantity, reference=reference
    )

    for requirement in recipe_service.compute_requirements(product_id, quantity, session=session):
        if requirement.required <= 0:
            continue
        result = lot_service.consume(
            requirement.raw_material_id,
            requirement.required,
            reference=reference,
            tolerance_percent=tolerance_percent,
            session=session,
        )
        report.results.append(result)

    log_operation(
        logger,
        operation="consume_for_production",
        outcome="success" if report.success else "shortfall",
        level=logging.INFO if report.success else logging.WARNING,
        product_id=product_id,
        quantity=quantity,
        reference=reference,
        materials=len(report.results),
        lot_changes=len(report.lot_change_alerts),
        shortfalls=len(report.shortfalls),
    )
    return report


def consume_for_production(
    product_id: int,
    quantity: Decimal,
    reference: Optional[str] = None,
    tolerance_percent: Optional[Decimal] = None,
    session: Optional[Session] = None,
) -> ProductionConsumptionReport:
    """
    Consume every raw material needed to produce ``quantity`` of a product.

    Materials whose requirement is zero are skipped. Each consumed material
    contributes one ConsumptionResult to the report, in raw material ID
    order.

    Args:
        product_id: Product to produce
        quantity: Product quantity (e.g. meters)
        reference: Reference written on the stock movements (e.g. "OP-0003")
        tolerance_percent: Lot-change alert threshold; defaults to config
        session: Optional database session. If provided, the caller owns the
            transaction and must hold the material locks until it commits.

    Returns:
        ProductionConsumptionReport with per-material results, alerts and
        shortfalls

    Raises:
        ProductNotFound: If the product does not exist
        RecipeNotFound: If the product has no recipe lines
        ValidationError: If quantity is negative or a rate unit is incompatible
        PersistenceFailure: If the database write fails
    """
    quantity = Decimal(str(quantity))

    if session is not None:
        return _consume_for_production_impl(
            product_id, quantity, reference, tolerance_percent, session
        )

    keys = [raw_material_key(mid) for mid in material_ids_for_product(product_id)]
    try:
        with locked(*keys):
            with session_scope() as sess:
                return _consume_for_production_impl(
                    product_id, quantity, reference, tolerance_percent, sess
                )
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        raise PersistenceFailure(f"Failed to consume stock for product {product_id}", e)


def check_availability(
    product_id: int,
    quantity: Decimal,
    session: Optional[Session] = None,
) -> List[AvailabilityLine]:
    """
    Compare a production's raw material needs against current stock.

    Dry run: reads recipe and stock only, no lot or movement is written.

    Args:
        product_id: Product to produce
        quantity: Product quantity (e.g. meters)
        session: Optional database session

    Returns:
        One AvailabilityLine per recipe material (including zero
        requirements), in raw material ID order

    Example:
        >>> lines = check_availability(product.id, Decimal("100"))
        >>> [line.raw_material_name for line in lines if not line.is_sufficient]
        ['PVC']
    """

    def _impl(sess: Session) -> List[AvailabilityLine]:
        lines = []
        for requirement in recipe_service.compute_requirements(product_id, quantity, session=sess):
            material = sess.query(RawMaterial).filter_by(id=requirement.raw_material_id).one()
            lines.append(
                AvailabilityLine(
                    raw_material_id=material.id,
                    raw_material_name=material.name,
                    required=requirement.required,
                    available=Decimal(str(material.stock_quantity)),
                    unit=material.stock_unit,
                )
            )
        return lines

    try:
        if session is not None:
            return _impl(session)
        with session_scope() as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        raise PersistenceFailure(f"Failed to check availability for product {product_id}", e)
