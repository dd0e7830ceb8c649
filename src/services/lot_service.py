"""Lot Ledger - dated, costed stock lots per raw material with FIFO consumption.

This module owns every write to StockLot, StockMovement and
RawMaterial.stock_quantity. Within one unit of work it keeps:

- lot remaining quantities >= 0 (a lot that runs dry is zeroed and marked
  "esgotado", never deleted)
- RawMaterial.stock_quantity == sum of the material's lot remaining quantities
- one StockMovement row per lot touched

consume() walks lots oldest first (received_at, then id). Whenever it starts
drawing from a lot whose predecessor is drained, in this call or an earlier
one, it compares the two unit costs and reports a LotChangeAlert if they
differ by more than the configured tolerance.
Running out of lots is reported as a Shortfall value; raising on it is the
caller's policy decision.

Mutations hold the raw material's in-process lock (see locking). When the
caller passes a session it owns the transaction and must hold the lock
itself until it commits.

All functions accept an optional session parameter.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import (
    LotStatus,
    MovementReason,
    RawMaterial,
    StandardCostChange,
    StockLevel,
    StockLot,
    StockMovement,
)
from ..utils.config import get_config
from ..utils.constants import (
    CRITICAL_STOCK_FRACTION,
    LOT_CHANGE_COST_REASON,
    PERCENT_QUANTUM,
    QUANTITY_QUANTUM,
)
from .database import session_scope
from .dto import ConsumptionResult, LotChangeAlert, LotConsumption, Shortfall
from .exceptions import PersistenceFailure, RawMaterialNotFound, ServiceError, ValidationError
from .locking import locked, raw_material_key
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

ZERO = Decimal("0")


def _quantize(value) -> Decimal:
    return Decimal(str(value)).quantize(QUANTITY_QUANTUM, rounding=ROUND_HALF_UP)


def _get_material(raw_material_id: int, session: Session) -> RawMaterial:
    material = session.query(RawMaterial).filter_by(id=raw_material_id).first()
    if material is None:
        raise RawMaterialNotFound(raw_material_id)
    return material


def _fifo_lots(raw_material_id: int, session: Session) -> List[StockLot]:
    """Lots with quantity left, oldest first, locked for update where supported."""
    return (
        session.query(StockLot)
        .filter(
            StockLot.raw_material_id == raw_material_id,
            StockLot.remaining_quantity > 0,
        )
        .order_by(StockLot.received_at.asc(), StockLot.id.asc())
        .with_for_update()
        .all()
    )


def _last_exhausted_lot(raw_material_id: int, session: Session) -> Optional[StockLot]:
    """The most recently received lot that ran dry, if any."""
    return (
        session.query(StockLot)
        .filter(
            StockLot.raw_material_id == raw_material_id,
            StockLot.status == LotStatus.ESGOTADO.value,
        )
        .order_by(StockLot.received_at.desc(), StockLot.id.desc())
        .first()
    )


def _sum_remaining(raw_material_id: int, session: Session) -> Decimal:
    rows = (
        session.query(StockLot.remaining_quantity)
        .filter(StockLot.raw_material_id == raw_material_id)
        .all()
    )
    return sum((Decimal(str(row[0])) for row in rows), ZERO)


def _run(operation: str, raw_material_id: int, impl, session: Optional[Session]):
    """Run impl under the material lock, in the caller's session or a new one."""
    try:
        with locked(raw_material_key(raw_material_id)):
            if session is not None:
                return impl(session)
            with session_scope() as sess:
                return impl(sess)
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        log_operation(
            logger,
            operation=operation,
            outcome="persistence_failure",
            level=logging.ERROR,
            raw_material_id=raw_material_id,
            error=str(e),
        )
        raise PersistenceFailure(
            f"{operation} failed for raw material {raw_material_id}", original_error=e
        )


# =============================================================================
# Goods receipt
# =============================================================================


def receive_lot(
    raw_material_id: int,
    quantity: Decimal,
    unit_cost: Decimal,
    received_at: Optional[datetime] = None,
    lot_code: Optional[str] = None,
    reference: Optional[str] = None,
    session: Optional[Session] = None,
) -> StockLot:
    """
    Add a new lot of a raw material to stock.

    Args:
        raw_material_id: Material received
        quantity: Quantity received, in the material's stock unit (> 0)
        unit_cost: Real cost per stock unit (> 0)
        received_at: Receipt timestamp (FIFO precedence); defaults to now
        lot_code: Supplier lot reference
        reference: Reference document for the movement (e.g. purchase number)
        session: Optional database session

    Returns:
        The created StockLot

    Raises:
        ValidationError: If quantity or unit_cost is not positive
        RawMaterialNotFound: If the material does not exist
    """
    quantity = _quantize(quantity)
    unit_cost = Decimal(str(unit_cost))
    errors = []
    if quantity <= 0:
        errors.append("Lot quantity must be greater than zero")
    if unit_cost <= 0:
        errors.append("Lot unit cost must be greater than zero")
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> StockLot:
        material = _get_material(raw_material_id, sess)
        before = _sum_remaining(raw_material_id, sess)

        lot = StockLot(
            raw_material_id=raw_material_id,
            lot_code=lot_code,
            initial_quantity=quantity,
            remaining_quantity=quantity,
            unit_cost=unit_cost,
            status=LotStatus.ATIVO.value,
        )
        if received_at is not None:
            lot.received_at = received_at
        sess.add(lot)
        sess.flush()

        material.stock_quantity = before + quantity
        sess.add(
            StockMovement(
                raw_material_id=raw_material_id,
                lot_id=lot.id,
                reason=MovementReason.COMPRA.value,
                quantity_before=before,
                quantity_moved=quantity,
                quantity_after=before + quantity,
                unit_cost=unit_cost,
                reference=reference,
            )
        )
        sess.flush()

        log_operation(
            logger,
            operation="receive_lot",
            outcome="success",
            raw_material_id=raw_material_id,
            lot_id=lot.id,
            quantity=quantity,
            unit_cost=unit_cost,
        )
        return lot

    return _run("receive_lot", raw_material_id, _impl, session)


# =============================================================================
# FIFO consumption
# =============================================================================


def _lot_change_alert(
    material: RawMaterial,
    previous: StockLot,
    new: StockLot,
    remaining_in_new: Decimal,
    tolerance: Decimal,
) -> Optional[LotChangeAlert]:
    previous_cost = Decimal(str(previous.unit_cost))
    new_cost = Decimal(str(new.unit_cost))
    if previous_cost <= 0:
        return None

    percent = (new_cost - previous_cost) / previous_cost * Decimal("100")
    if abs(percent) <= tolerance:
        return None

    return LotChangeAlert(
        raw_material_id=material.id,
        raw_material_name=material.name,
        previous_lot_id=previous.id,
        previous_unit_cost=previous_cost,
        new_lot_id=new.id,
        new_unit_cost=new_cost,
        percent_difference=percent.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP),
        remaining_in_new_lot=remaining_in_new,
        current_standard_cost=(
            Decimal(str(material.standard_cost)) if material.standard_cost is not None else None
        ),
    )


def _consume_impl(
    raw_material_id: int,
    required: Decimal,
    reason: str,
    reference: Optional[str],
    tolerance: Decimal,
    session: Session,
) -> ConsumptionResult:
    material = _get_material(raw_material_id, session)
    result = ConsumptionResult(raw_material_id=raw_material_id, required=required)

    running_stock = _sum_remaining(raw_material_id, session)
    still_needed = required
    lots = _fifo_lots(raw_material_id, session)

    # An earlier call may have drained the previous lot exactly; the first
    # draw from an untouched lot is still a lot change
    drained_lot = None
    if required > 0 and lots and lots[0].remaining_quantity == lots[0].initial_quantity:
        drained_lot = _last_exhausted_lot(raw_material_id, session)

    for lot in lots:
        if still_needed <= 0:
            break

        available = Decimal(str(lot.remaining_quantity))
        take = min(available, still_needed)
        remaining = available - take

        # Crossing from a drained lot into the next one drawn from
        if drained_lot is not None:
            alert = _lot_change_alert(material, drained_lot, lot, remaining, tolerance)
            if alert is not None:
                result.alerts.append(alert)
                log_operation(
                    logger,
                    operation="consume",
                    outcome="lot_cost_changed",
                    level=logging.WARNING,
                    raw_material_id=raw_material_id,
                    previous_lot_id=alert.previous_lot_id,
                    new_lot_id=alert.new_lot_id,
                    difference_percent=alert.percent_difference,
                )

        lot.remaining_quantity = remaining
        if remaining <= 0:
            lot.remaining_quantity = ZERO
            lot.status = LotStatus.ESGOTADO.value

        unit_cost = Decimal(str(lot.unit_cost))
        session.add(
            StockMovement(
                raw_material_id=raw_material_id,
                lot_id=lot.id,
                reason=reason,
                quantity_before=running_stock,
                quantity_moved=-take,
                quantity_after=running_stock - take,
                unit_cost=unit_cost,
                reference=reference,
            )
        )
        running_stock -= take
        still_needed -= take

        result.consumed += take
        result.lots_touched.append(
            LotConsumption(
                lot_id=lot.id,
                quantity=take,
                unit_cost=unit_cost,
                remaining_after=lot.remaining_quantity,
            )
        )
        drained_lot = lot if remaining <= 0 else None

    if still_needed > 0:
        result.shortfall = Shortfall(
            raw_material_id=raw_material_id,
            raw_material_name=material.name,
            required=required,
            consumed=result.consumed,
            missing=still_needed,
            unit=material.stock_unit,
        )
        log_operation(
            logger,
            operation="consume",
            outcome="shortfall",
            level=logging.WARNING,
            raw_material_id=raw_material_id,
            required=required,
            missing=still_needed,
        )

    session.flush()
    material.stock_quantity = _sum_remaining(raw_material_id, session)
    session.flush()

    log_operation(
        logger,
        operation="consume",
        outcome="success" if result.success else "partial",
        level=logging.DEBUG,
        raw_material_id=raw_material_id,
        consumed=result.consumed,
        lots=len(result.lots_touched),
        reference=reference,
    )
    return result


def consume(
    raw_material_id: int,
    required_quantity: Decimal,
    reference: Optional[str] = None,
    reason: str = MovementReason.PRODUCAO.value,
    tolerance_percent: Optional[Decimal] = None,
    session: Optional[Session] = None,
) -> ConsumptionResult:
    """
    Consume a quantity of a raw material from its lots, oldest first.

    Algorithm:
        1. Load lots with quantity left ordered by received_at, id
        2. Take min(remaining, still needed) from each lot in turn
        3. When drawing from a lot for the first time after the previous lot
           was drained (by this call or an earlier one), compare unit costs
           and record a LotChangeAlert above the tolerance
        4. Record a Shortfall if lots run out
        5. Recompute the material's stock_quantity in the same unit of work

    Args:
        raw_material_id: Material to consume
        required_quantity: Quantity in the material's stock unit (>= 0)
        reference: Reference written on each movement (e.g. "OP-0003")
        reason: MovementReason value recorded on each movement
        tolerance_percent: Alert threshold; defaults to config
            lot_cost_tolerance_percent
        session: Optional database session. If provided, the caller owns the
            transaction and this function will NOT commit.

    Returns:
        ConsumptionResult with the per-lot breakdown, alerts and any shortfall

    Raises:
        ValidationError: If required_quantity is negative
        RawMaterialNotFound: If the material does not exist
        PersistenceFailure: If the database write fails, including a stale
            version of the raw material row

    Example:
        >>> # lot A: 10 kg at 5.00, lot B: 10 kg at 8.00
        >>> result = consume(material.id, Decimal("15"))
        >>> [lot.quantity for lot in result.lots_touched]
        [Decimal('10'), Decimal('5')]
        >>> result.alerts[0].percent_difference
        Decimal('60.00')
    """
    required = _quantize(required_quantity)
    if required < 0:
        raise ValidationError(["Required quantity cannot be negative"])

    if tolerance_percent is None:
        tolerance_percent = get_config().lot_cost_tolerance_percent
    tolerance = Decimal(str(tolerance_percent))

    return _run(
        "consume",
        raw_material_id,
        lambda sess: _consume_impl(raw_material_id, required, reason, reference, tolerance, sess),
        session,
    )


# =============================================================================
# Queries and maintenance
# =============================================================================


def get_lots(
    raw_material_id: int,
    include_exhausted: bool = False,
    session: Optional[Session] = None,
) -> List[StockLot]:
    """
    List a material's lots in FIFO order.

    Args:
        raw_material_id: Material to list
        include_exhausted: Include zeroed "esgotado" lots
        session: Optional database session

    Returns:
        StockLot list ordered by received_at, id
    """

    def _impl(sess: Session) -> List[StockLot]:
        _get_material(raw_material_id, sess)
        query = sess.query(StockLot).filter(StockLot.raw_material_id == raw_material_id)
        if not include_exhausted:
            query = query.filter(StockLot.status == LotStatus.ATIVO.value)
        return query.order_by(StockLot.received_at.asc(), StockLot.id.asc()).all()

    try:
        if session is not None:
            return _impl(session)
        with session_scope() as sess:
            return _impl(sess)
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        raise PersistenceFailure(f"Failed to list lots for raw material {raw_material_id}", e)


def get_stock_quantity(raw_material_id: int, session: Optional[Session] = None) -> Decimal:
    """Return the material's cached stock quantity."""
    try:
        if session is not None:
            return Decimal(str(_get_material(raw_material_id, session).stock_quantity))
        with session_scope() as sess:
            return Decimal(str(_get_material(raw_material_id, sess).stock_quantity))
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        raise PersistenceFailure(f"Failed to read stock of raw material {raw_material_id}", e)


def recompute_stock(raw_material_id: int, session: Optional[Session] = None) -> Decimal:
    """
    Reset the material's stock_quantity to the sum of its lots.

    Returns:
        The recomputed quantity
    """

    def _impl(sess: Session) -> Decimal:
        material = _get_material(raw_material_id, sess)
        total = _sum_remaining(raw_material_id, sess)
        if Decimal(str(material.stock_quantity)) != total:
            log_operation(
                logger,
                operation="recompute_stock",
                outcome="corrected",
                level=logging.WARNING,
                raw_material_id=raw_material_id,
                cached=material.stock_quantity,
                actual=total,
            )
            material.stock_quantity = total
            sess.flush()
        return total

    return _run("recompute_stock", raw_material_id, _impl, session)


def classify_stock_level(stock_quantity: Decimal, minimum_stock: Decimal) -> StockLevel:
    """
    Classify a stock quantity against the material's minimum.

    Below CRITICAL_STOCK_FRACTION of the minimum is critical, below the
    minimum is low, anything else is normal. A material with no minimum is
    always normal.

    Example:
        >>> classify_stock_level(Decimal("4"), Decimal("10"))
        <StockLevel.CRITICO: 'critico'>
    """
    stock = Decimal(str(stock_quantity or 0))
    minimum = Decimal(str(minimum_stock or 0))
    if minimum <= 0:
        return StockLevel.NORMAL
    if stock < minimum * CRITICAL_STOCK_FRACTION:
        return StockLevel.CRITICO
    if stock < minimum:
        return StockLevel.BAIXO
    return StockLevel.NORMAL


def get_stock_level(raw_material_id: int, session: Optional[Session] = None) -> StockLevel:
    """Classify a stored material's current stock."""

    def _impl(sess: Session) -> StockLevel:
        material = _get_material(raw_material_id, sess)
        return classify_stock_level(material.stock_quantity, material.minimum_stock)

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def update_standard_cost(
    raw_material_id: int,
    standard_cost: Decimal,
    reason: str = LOT_CHANGE_COST_REASON,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> RawMaterial:
    """
    Set a material's administrative standard cost.

    This is the operator's response to a LotChangeAlert: accept the new lot
    cost (or any other value) as the material's standard cost. Every call
    appends a StandardCostChange row with the previous and new cost.

    Args:
        raw_material_id: Material to update
        standard_cost: New cost per stock unit (>= 0)
        reason: Reason stored in the cost history
        notes: Optional free text stored in the cost history
        session: Optional database session

    Raises:
        ValidationError: If standard_cost is negative
        RawMaterialNotFound: If the material does not exist
    """
    standard_cost = Decimal(str(standard_cost))
    if standard_cost < 0:
        raise ValidationError(["Standard cost cannot be negative"])

    def _impl(sess: Session) -> RawMaterial:
        material = _get_material(raw_material_id, sess)
        previous = material.standard_cost
        material.standard_cost = standard_cost
        sess.add(
            StandardCostChange(
                raw_material_id=raw_material_id,
                previous_cost=previous,
                new_cost=standard_cost,
                reason=reason,
                notes=notes,
            )
        )
        sess.flush()
        log_operation(
            logger,
            operation="update_standard_cost",
            outcome="success",
            raw_material_id=raw_material_id,
            previous=previous,
            current=standard_cost,
        )
        return material

    return _run("update_standard_cost", raw_material_id, _impl, session)


def get_cost_history(
    raw_material_id: int, session: Optional[Session] = None
) -> List[StandardCostChange]:
    """Standard cost changes of a material, oldest first."""

    def _impl(sess: Session) -> List[StandardCostChange]:
        _get_material(raw_material_id, sess)
        return (
            sess.query(StandardCostChange)
            .filter(StandardCostChange.raw_material_id == raw_material_id)
            .order_by(StandardCostChange.id.asc())
            .all()
        )

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_movements(
    raw_material_id: int,
    reference: Optional[str] = None,
    session: Optional[Session] = None,
) -> List[StockMovement]:
    """
    List a material's stock movements in the order they were written.

    Args:
        raw_material_id: Material to list
        reference: Only movements with this reference document
        session: Optional database session
    """

    def _impl(sess: Session) -> List[StockMovement]:
        query = sess.query(StockMovement).filter(StockMovement.raw_material_id == raw_material_id)
        if reference is not None:
            query = query.filter(StockMovement.reference == reference)
        return query.order_by(StockMovement.id.asc()).all()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
