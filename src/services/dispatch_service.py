"""Dispatch Service - pallet batches and confirm-by-token delivery.

Each sales order ready for dispatch gets a batch of pallets. Every pallet
carries an unguessable token (printed as a QR code); scanning it calls
confirm_pallet(). When the last pallet of the order is confirmed the sales
order moves to "entregue", exactly once.

Protocol rules:
- confirming an unknown token raises PalletNotFound
- confirming an already confirmed pallet raises AlreadyConfirmed and
  changes nothing
- pallets are created only for sales orders in "finalizado" or
  "aguardando_despacho"; a finalizado order moves to aguardando_despacho
- a pallet batch can be regenerated only while no pallet is confirmed

Every mutation holds the sales order lock (see locking), so two scans of
the same token serialize and only one of them succeeds.

All functions accept an optional session parameter.
"""

import logging
import secrets
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import (
    Pallet,
    PalletStatus,
    ProductionOrder,
    ProductionOrderStatus,
    SalesOrder,
    SalesOrderStatus,
)
from ..utils.config import get_config
from ..utils.constants import PALLET_TOKEN_BYTES
from ..utils.datetime_utils import utc_now
from . import workflow
from .database import session_scope
from .exceptions import (
    AlreadyConfirmed,
    InvalidTransition,
    PalletNotFound,
    PersistenceFailure,
    SalesOrderNotFound,
    ServiceError,
    ValidationError,
)
from .locking import locked, sales_order_key
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

_FINAL_ORDER_STATUSES = (
    ProductionOrderStatus.CONCLUIDO.value,
    ProductionOrderStatus.CANCELADO.value,
)

_PALLETIZABLE_STATUSES = (
    SalesOrderStatus.FINALIZADO.value,
    SalesOrderStatus.AGUARDANDO_DESPACHO.value,
)


def generate_token() -> str:
    """Return a new URL-safe confirmation token."""
    return secrets.token_urlsafe(PALLET_TOKEN_BYTES)


def _get_sales_order(sales_order_id: int, session: Session) -> SalesOrder:
    sales_order = session.query(SalesOrder).filter_by(id=sales_order_id).first()
    if sales_order is None:
        raise SalesOrderNotFound(sales_order_id)
    return sales_order


def _run(operation: str, sales_order_id: Optional[int], impl, session: Optional[Session]):
    try:
        if sales_order_id is None:
            if session is not None:
                return impl(session)
            with session_scope() as sess:
                return impl(sess)
        with locked(sales_order_key(sales_order_id)):
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
            sales_order_id=sales_order_id,
            error=str(e),
        )
        raise PersistenceFailure(f"{operation} failed", original_error=e)


def _advance_sales_order(sales_order: SalesOrder, target: SalesOrderStatus) -> None:
    allowed, reason = workflow.is_sales_order_transition_allowed(sales_order.status, target)
    if not allowed:
        raise InvalidTransition("sales order", sales_order.id, sales_order.status, target.value, reason)
    previous = sales_order.status
    sales_order.status = target.value
    log_operation(
        logger,
        operation="sales_order_status",
        outcome=target.value,
        sales_order_id=sales_order.id,
        previous=previous,
    )


# =============================================================================
# Pallet batches
# =============================================================================


def _create_pallets_impl(sales_order_id: int, count: Optional[int], session: Session) -> List[Pallet]:
    sales_order = _get_sales_order(sales_order_id, session)

    if sales_order.status not in _PALLETIZABLE_STATUSES:
        raise InvalidTransition(
            "sales order",
            sales_order_id,
            sales_order.status,
            SalesOrderStatus.AGUARDANDO_DESPACHO.value,
            "pallets can only be created for a finished order",
        )
    if any(pallet.is_confirmed for pallet in sales_order.pallets):
        raise InvalidTransition(
            "sales order",
            sales_order_id,
            sales_order.status,
            None,
            "pallets cannot be regenerated after a pallet was confirmed",
        )

    if count is None:
        count = sales_order.pallet_count or get_config().default_pallet_count

    # Replace the batch in full; the old tokens stop confirming
    for pallet in list(sales_order.pallets):
        sales_order.pallets.remove(pallet)
    session.flush()

    if sales_order.status == SalesOrderStatus.FINALIZADO.value:
        _advance_sales_order(sales_order, SalesOrderStatus.AGUARDANDO_DESPACHO)

    for number in range(1, count + 1):
        sales_order.pallets.append(
            Pallet(
                pallet_number=number,
                token=generate_token(),
                status=PalletStatus.PENDENTE.value,
            )
        )
    sales_order.pallet_count = count
    session.flush()

    log_operation(
        logger,
        operation="create_pallets",
        outcome="success",
        sales_order_id=sales_order_id,
        count=count,
    )
    return list(sales_order.pallets)


def create_pallets(
    sales_order_id: int,
    count: Optional[int] = None,
    session: Optional[Session] = None,
) -> List[Pallet]:
    """
    Create (or regenerate) the pallet batch of a sales order.

    Any existing unconfirmed batch is replaced in full, with new tokens.

    Args:
        sales_order_id: Sales order to palletize
        count: Number of pallets; defaults to the order's pallet_count, then
            config default_pallet_count
        session: Optional database session

    Returns:
        Pallets numbered 1..count, each with a fresh token

    Raises:
        ValidationError: If count is less than 1
        SalesOrderNotFound: If the sales order does not exist
        InvalidTransition: If the sales order is not finished, or any pallet
            of the order is already confirmed
    """
    if count is not None and count < 1:
        raise ValidationError(["Pallet count must be at least 1"])

    return _run(
        "create_pallets",
        sales_order_id,
        lambda sess: _create_pallets_impl(sales_order_id, count, sess),
        session,
    )


def list_pallets(sales_order_id: int, session: Optional[Session] = None) -> List[Pallet]:
    """Pallets of a sales order ordered by pallet number."""

    def _impl(sess: Session) -> List[Pallet]:
        _get_sales_order(sales_order_id, sess)
        return (
            sess.query(Pallet)
            .filter(Pallet.sales_order_id == sales_order_id)
            .order_by(Pallet.pallet_number.asc())
            .all()
        )

    return _run("list_pallets", None, _impl, session)


def get_pallet_summary(sales_order_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Confirmation progress of a sales order's pallets.

    Returns:
        Dict with keys:
            - "total" (int)
            - "confirmed" (int)
            - "pending" (int)
            - "all_confirmed" (bool): True only when total > 0 and none pending
    """
    pallets = list_pallets(sales_order_id, session=session)
    confirmed = sum(1 for pallet in pallets if pallet.is_confirmed)
    return {
        "total": len(pallets),
        "confirmed": confirmed,
        "pending": len(pallets) - confirmed,
        "all_confirmed": bool(pallets) and confirmed == len(pallets),
    }


# =============================================================================
# Confirmation
# =============================================================================


def _confirm_impl(
    token: str,
    actor_id: Optional[str],
    notes: Optional[str],
    session: Session,
) -> Tuple[Pallet, bool]:
    pallet = session.query(Pallet).filter(Pallet.token == token).first()
    if pallet is None:
        raise PalletNotFound(token)

    # Re-read under the sales order lock; another scan may have won
    session.refresh(pallet)
    if pallet.is_confirmed:
        raise AlreadyConfirmed(pallet.id, pallet.pallet_number, pallet.confirmed_at)

    pallet.status = PalletStatus.CONFERIDO.value
    pallet.confirmed_at = utc_now()
    pallet.confirmed_by = actor_id
    if notes:
        pallet.notes = notes
    session.flush()

    sales_order = pallet.sales_order
    all_confirmed = all(p.is_confirmed for p in sales_order.pallets)

    log_operation(
        logger,
        operation="confirm_pallet",
        outcome="success",
        sales_order_id=sales_order.id,
        pallet_id=pallet.id,
        pallet_number=pallet.pallet_number,
        all_confirmed=all_confirmed,
    )

    # Pallets exist only for orders in aguardando_despacho
    if all_confirmed and sales_order.status != SalesOrderStatus.ENTREGUE.value:
        previous = sales_order.status
        sales_order.status = SalesOrderStatus.ENTREGUE.value
        sales_order.delivered_at = pallet.confirmed_at
        session.flush()
        log_operation(
            logger,
            operation="sales_order_status",
            outcome=SalesOrderStatus.ENTREGUE.value,
            sales_order_id=sales_order.id,
            previous=previous,
        )

    return pallet, all_confirmed


def confirm_pallet(
    token: str,
    actor_id: Optional[str] = None,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> Tuple[Pallet, bool]:
    """
    Confirm the pallet addressed by a scanned token.

    Args:
        token: Token read from the pallet's QR code
        actor_id: Who confirmed (optional)
        notes: Optional note stored on the pallet
        session: Optional database session

    Returns:
        Tuple of (pallet, all_confirmed). When all_confirmed is True the sales
        order has moved to "entregue".

    Raises:
        PalletNotFound: If no pallet carries the token
        AlreadyConfirmed: If the pallet was confirmed before

    Example:
        >>> pallet, done = confirm_pallet(token, actor_id="doca-2")
        >>> pallet.status, done
        ('conferido', False)
    """
    if not token:
        raise PalletNotFound(token)

    def _sales_order_for_token() -> Optional[int]:
        if session is not None:
            row = session.query(Pallet.sales_order_id).filter(Pallet.token == token).first()
        else:
            with session_scope() as sess:
                row = sess.query(Pallet.sales_order_id).filter(Pallet.token == token).first()
        return row[0] if row else None

    try:
        sales_order_id = _sales_order_for_token()
    except SQLAlchemyError as e:
        raise PersistenceFailure("Failed to look up pallet token", original_error=e)

    if sales_order_id is None:
        log_operation(
            logger,
            operation="confirm_pallet",
            outcome="not_found",
            level=logging.WARNING,
        )
        raise PalletNotFound(token)

    try:
        return _run(
            "confirm_pallet",
            sales_order_id,
            lambda sess: _confirm_impl(token, actor_id, notes, sess),
            session,
        )
    except AlreadyConfirmed as e:
        log_operation(
            logger,
            operation="confirm_pallet",
            outcome="already_confirmed",
            level=logging.WARNING,
            sales_order_id=sales_order_id,
            pallet_id=e.pallet_id,
        )
        raise


# =============================================================================
# Completion hand-off
# =============================================================================


def prepare_dispatch(order: ProductionOrder, session: Session) -> Optional[List[Pallet]]:
    """
    Default completion hand-off for a concluded production order.

    Moves the linked sales order producao -> finalizado -> aguardando_despacho
    and creates its pallet batch. Does nothing for orders without a sales
    order, and waits while other production orders of the same sales order
    are still open.

    Args:
        order: The production order that just reached concluido
        session: Session of the completing transition

    Returns:
        The created pallets, or None when nothing was dispatched
    """
    if order.sales_order_id is None:
        return None

    with locked(sales_order_key(order.sales_order_id)):
        sales_order = _get_sales_order(order.sales_order_id, session)

        open_orders = (
            session.query(ProductionOrder.id)
            .filter(
                ProductionOrder.sales_order_id == sales_order.id,
                ProductionOrder.id != order.id,
                ProductionOrder.status.notin_(_FINAL_ORDER_STATUSES),
            )
            .count()
        )
        if open_orders:
            log_operation(
                logger,
                operation="prepare_dispatch",
                outcome="waiting_other_orders",
                sales_order_id=sales_order.id,
                production_order_id=order.id,
                open_orders=open_orders,
            )
            return None

        if sales_order.status == SalesOrderStatus.APROVADO.value:
            _advance_sales_order(sales_order, SalesOrderStatus.PRODUCAO)
        if sales_order.status == SalesOrderStatus.PRODUCAO.value:
            _advance_sales_order(sales_order, SalesOrderStatus.FINALIZADO)
        if sales_order.status != SalesOrderStatus.FINALIZADO.value:
            log_operation(
                logger,
                operation="prepare_dispatch",
                outcome="skipped",
                level=logging.WARNING,
                sales_order_id=sales_order.id,
                sales_order_status=sales_order.status,
            )
            return None

        _advance_sales_order(sales_order, SalesOrderStatus.AGUARDANDO_DESPACHO)
        return _create_pallets_impl(sales_order.id, None, session)
