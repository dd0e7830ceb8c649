"""Production Order Service - order and item lifecycle with stock consumption.

This module drives production orders (OPs) through their workflow:

- start_item: aguardando -> em_producao, consumes the item's raw materials
- finish_item: em_producao -> finalizado
- cancel_item: aguardando/em_producao -> cancelado
- start_order / finish_order: the same two transitions for orders without
  items (legacy/simple mode)
- cancel_order: aguardando/em_producao -> cancelado, cancels open items

After every item transition the order status is re-derived from its items
(workflow.derive_order_status). The first time an order reaches concluido
the completion hand-off runs, once, inside the same unit of work.

Concurrency:
    Each transition holds the order lock, the lock of every raw material it
    may consume and the linked sales order lock for the whole unit of work,
    commit included. Two starts of the same item therefore serialize and the
    second one fails with InvalidTransition.

Shortfall policy:
    "block" (default) raises InsufficientStock and rolls the start back;
    "warn" lets the start proceed and returns the shortfalls with the alerts.
    When the caller passes its own session it must roll back on
    InsufficientStock itself.

All functions accept an optional session parameter.
"""

import logging
import threading
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..models import (
    Product,
    ProductionItemStatus,
    ProductionOrder,
    ProductionOrderItem,
    ProductionOrderStatus,
    SalesOrder,
    SalesOrderStatus,
)
from ..utils.config import get_config
from ..utils.constants import (
    PRODUCTION_ORDER_NUMBER_WIDTH,
    PRODUCTION_ORDER_PREFIX,
    SHORTFALL_POLICIES,
    SHORTFALL_POLICY_BLOCK,
)
from ..utils.datetime_utils import utc_now
from . import consumption_service, dispatch_service, workflow
from .database import session_scope
from .dto import Alert
from .exceptions import (
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    ProductNotFound,
    ProductionOrderItemNotFound,
    ProductionOrderNotFound,
    SalesOrderNotFound,
    ServiceError,
    ValidationError,
)
from .locking import LockKey, locked, production_order_key, raw_material_key, sales_order_key
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

CompletionHandoff = Callable[[ProductionOrder, Session], Any]

_completion_handoff: Optional[CompletionHandoff] = None
_numbering_lock = threading.Lock()


# =============================================================================
# Completion hand-off
# =============================================================================


def set_completion_handoff(callback: Optional[CompletionHandoff]) -> None:
    """
    Register the callback run when an order first reaches concluido.

    The callback receives the order (items and products loaded) and the
    session of the completing transition; it may write through that session
    and an exception from it rolls the transition back.

    Args:
        callback: callable(order, session), or None to restore the default
            (dispatch_service.prepare_dispatch)
    """
    global _completion_handoff
    _completion_handoff = callback


def get_completion_handoff() -> CompletionHandoff:
    return _completion_handoff or dispatch_service.prepare_dispatch


# =============================================================================
# Internal helpers
# =============================================================================


def _load_order(order_id: int, session: Session) -> ProductionOrder:
    order = (
        session.query(ProductionOrder)
        .options(
            selectinload(ProductionOrder.items).joinedload(ProductionOrderItem.product),
            joinedload(ProductionOrder.product),
            joinedload(ProductionOrder.sales_order),
        )
        .filter(ProductionOrder.id == order_id)
        .first()
    )
    if order is None:
        raise ProductionOrderNotFound(order_id)
    return order


def _find_item(order: ProductionOrder, item_id: int) -> ProductionOrderItem:
    for item in order.items:
        if item.id == item_id:
            return item
    raise ProductionOrderItemNotFound(order.id, item_id)


def _material_keys(product_id: Optional[int], session: Session) -> List[LockKey]:
    if product_id is None:
        return []
    try:
        ids = consumption_service.material_ids_for_product(product_id, session=session)
    except NotFound:
        # The transition itself reports the missing product or recipe
        return []
    return [raw_material_key(mid) for mid in ids]


def _lock_plan(
    order_id: int,
    session: Session,
    item_id: Optional[int] = None,
    consumes: bool = False,
) -> List[LockKey]:
    """Keys a transition needs besides the order lock."""
    order = session.query(ProductionOrder).filter_by(id=order_id).first()
    if order is None:
        return []

    keys: List[LockKey] = []
    if order.sales_order_id is not None:
        keys.append(sales_order_key(order.sales_order_id))

    if consumes:
        product_id = order.product_id
        if item_id is not None:
            item = session.query(ProductionOrderItem).filter_by(
                id=item_id, production_order_id=order_id
            ).first()
            product_id = item.product_id if item is not None else None
        keys.extend(_material_keys(product_id, session))
    return keys


def _run_transition(
    operation: str,
    order_id: int,
    impl: Callable[[Session], Any],
    session: Optional[Session],
    item_id: Optional[int] = None,
    consumes: bool = False,
):
    """Run impl holding every lock it needs, in the caller's session or a new one."""
    try:
        with locked(production_order_key(order_id)):
            if session is not None:
                keys = _lock_plan(order_id, session, item_id, consumes)
                with locked(*keys):
                    return impl(session)

            with session_scope() as sess:
                keys = _lock_plan(order_id, sess, item_id, consumes)
            with locked(*keys):
                with session_scope() as sess:
                    return impl(sess)
    except ServiceError as e:
        log_operation(
            logger,
            operation=operation,
            outcome=type(e).__name__,
            level=logging.WARNING,
            production_order_id=order_id,
            item_id=item_id,
            error=str(e),
        )
        raise
    except SQLAlchemyError as e:
        log_operation(
            logger,
            operation=operation,
            outcome="persistence_failure",
            level=logging.ERROR,
            production_order_id=order_id,
            item_id=item_id,
            error=str(e),
        )
        raise PersistenceFailure(
            f"{operation} failed for production order {order_id}", original_error=e
        )


def _resolve_policy(shortfall_policy: Optional[str]) -> str:
    policy = shortfall_policy or get_config().shortfall_policy
    if policy not in SHORTFALL_POLICIES:
        raise ValidationError(
            [f"Unknown shortfall policy '{policy}'. Expected one of: {', '.join(SHORTFALL_POLICIES)}"]
        )
    return policy


def _consume(
    order: ProductionOrder,
    product_id: Optional[int],
    quantity: Decimal,
    policy: str,
    tolerance_percent: Optional[Decimal],
    session: Session,
) -> List[Alert]:
    if product_id is None:
        raise ValidationError([f"Production order {order.order_number} has no product to produce"])
    if quantity <= 0:
        raise ValidationError([f"Production order {order.order_number} has no quantity to produce"])

    report = consumption_service.consume_for_production(
        product_id,
        quantity,
        reference=order.order_number,
        tolerance_percent=tolerance_percent,
        session=session,
    )
    if report.shortfalls and policy == SHORTFALL_POLICY_BLOCK:
        raise InsufficientStock(report.shortfalls)
    return report.alerts


def _check_order_transition(order: ProductionOrder, target: ProductionOrderStatus) -> None:
    allowed, reason = workflow.is_order_transition_allowed(order.status, target)
    if not allowed:
        raise InvalidTransition("production order", order.id, order.status, target.value, reason)


def _check_item_transition(item: ProductionOrderItem, target: ProductionItemStatus) -> None:
    allowed, reason = workflow.is_item_transition_allowed(item.status, target)
    if not allowed:
        raise InvalidTransition(
            "production order item", item.id, item.status, target.value, reason
        )


def _mark_started(order: ProductionOrder, session: Session) -> None:
    """First departure from aguardando: stamp the order and move the sales order to producao."""
    if order.started_at is None:
        order.started_at = utc_now()

    sales_order = order.sales_order
    if sales_order is not None and sales_order.status == SalesOrderStatus.APROVADO.value:
        sales_order.status = SalesOrderStatus.PRODUCAO.value
        log_operation(
            logger,
            operation="sales_order_status",
            outcome="producao",
            sales_order_id=sales_order.id,
            production_order_id=order.id,
        )


def _complete(
    order: ProductionOrder,
    session: Session,
    on_complete: Optional[CompletionHandoff],
) -> None:
    order.status = ProductionOrderStatus.CONCLUIDO.value
    order.completed_at = utc_now()
    session.flush()

    handoff = on_complete or get_completion_handoff()
    log_operation(
        logger,
        operation="complete_order",
        outcome="handoff",
        production_order_id=order.id,
        order_number=order.order_number,
    )
    handoff(order, session)


def _sync_order_status(
    order: ProductionOrder,
    session: Session,
    on_complete: Optional[CompletionHandoff],
) -> None:
    """Re-derive an itemized order's status after one of its items moved."""
    previous = order.status
    derived = workflow.derive_order_status(item.status for item in order.items)
    if derived.value == previous:
        return

    if previous == ProductionOrderStatus.AGUARDANDO.value and derived not in (
        ProductionOrderStatus.AGUARDANDO,
        ProductionOrderStatus.CANCELADO,
    ):
        _mark_started(order, session)

    log_operation(
        logger,
        operation="derive_order_status",
        outcome=derived.value,
        production_order_id=order.id,
        previous=previous,
    )

    if derived == ProductionOrderStatus.CONCLUIDO:
        _complete(order, session, on_complete)
    else:
        order.status = derived.value


def _next_order_number(session: Session) -> str:
    prefix = f"{PRODUCTION_ORDER_PREFIX}-"
    numbers = (
        session.query(ProductionOrder.order_number)
        .filter(ProductionOrder.order_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:0{PRODUCTION_ORDER_NUMBER_WIDTH}d}"


def _validate_quantity(
    label: str,
    quantity_meters: Optional[Decimal],
    piece_count: Optional[int],
    piece_length_mm: Optional[Decimal],
) -> List[str]:
    errors = []
    if quantity_meters is not None and Decimal(str(quantity_meters)) < 0:
        errors.append(f"{label}: quantity cannot be negative")
    if piece_count is not None and piece_count < 0:
        errors.append(f"{label}: piece count cannot be negative")
    if piece_length_mm is not None and Decimal(str(piece_length_mm)) < 0:
        errors.append(f"{label}: piece length cannot be negative")
    has_meters = quantity_meters is not None and Decimal(str(quantity_meters)) > 0
    has_pieces = bool(piece_count) and piece_length_mm is not None and Decimal(str(piece_length_mm)) > 0
    if not errors and not has_meters and not has_pieces:
        errors.append(f"{label}: quantity in meters or piece count and length is required")
    return errors


# =============================================================================
# Create / read / delete
# =============================================================================


def create_production_order(
    product_id: Optional[int] = None,
    quantity_meters: Optional[Decimal] = None,
    piece_count: Optional[int] = None,
    piece_length_mm: Optional[Decimal] = None,
    items: Optional[List[Dict[str, Any]]] = None,
    sales_order_id: Optional[int] = None,
    scheduled_for=None,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> ProductionOrder:
    """
    Create a production order numbered OP-NNNN.

    Either pass ``items`` (each a dict with product_id and quantity_meters or
    piece_count + piece_length_mm, optionally notes) or, for a legacy order,
    product_id with a quantity.

    Args:
        product_id: Product of a legacy single-product order
        quantity_meters: Meters to produce (legacy)
        piece_count: Number of pieces (legacy)
        piece_length_mm: Length of each piece in mm (legacy)
        items: Line items; when given the order status is derived from them
        sales_order_id: Originating sales order
        scheduled_for: Planned production date
        notes: Technical notes
        session: Optional database session

    Returns:
        The created ProductionOrder with items loaded

    Raises:
        ValidationError: If no product/quantity or items are given
        ProductNotFound: If a referenced product does not exist
        SalesOrderNotFound: If sales_order_id does not exist

    Example:
        >>> order = create_production_order(
        ...     items=[{"product_id": 1, "quantity_meters": Decimal("120")},
        ...            {"product_id": 2, "piece_count": 40, "piece_length_mm": Decimal("2500")}],
        ...     sales_order_id=7,
        ... )
        >>> order.order_number
        'OP-0001'
    """
    items = items or []
    errors = []
    if items:
        for index, item_data in enumerate(items, start=1):
            if item_data.get("product_id") is None:
                errors.append(f"Item {index}: product is required")
            errors.extend(
                _validate_quantity(
                    f"Item {index}",
                    item_data.get("quantity_meters"),
                    item_data.get("piece_count"),
                    item_data.get("piece_length_mm"),
                )
            )
    else:
        if product_id is None:
            errors.append("A product or at least one item is required")
        errors.extend(_validate_quantity("Order", quantity_meters, piece_count, piece_length_mm))
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> ProductionOrder:
        product_ids = {data["product_id"] for data in items}
        if product_id is not None:
            product_ids.add(product_id)
        for pid in sorted(product_ids):
            if sess.query(Product.id).filter_by(id=pid).first() is None:
                raise ProductNotFound(pid)
        if sales_order_id is not None:
            if sess.query(SalesOrder.id).filter_by(id=sales_order_id).first() is None:
                raise SalesOrderNotFound(sales_order_id)

        order = ProductionOrder(
            order_number=_next_order_number(sess),
            sales_order_id=sales_order_id,
            product_id=product_id,
            quantity_meters=quantity_meters,
            piece_count=piece_count,
            piece_length_mm=piece_length_mm,
            status=ProductionOrderStatus.AGUARDANDO.value,
            scheduled_for=scheduled_for,
            notes=notes,
        )
        for data in items:
            order.items.append(
                ProductionOrderItem(
                    product_id=data["product_id"],
                    quantity_meters=data.get("quantity_meters"),
                    piece_count=data.get("piece_count"),
                    piece_length_mm=data.get("piece_length_mm"),
                    notes=data.get("notes"),
                    status=ProductionItemStatus.AGUARDANDO.value,
                )
            )
        sess.add(order)
        sess.flush()

        log_operation(
            logger,
            operation="create_production_order",
            outcome="success",
            production_order_id=order.id,
            order_number=order.order_number,
            items=len(order.items),
        )
        return order

    try:
        with _numbering_lock:
            if session is not None:
                return _impl(session)
            with session_scope() as sess:
                return _impl(sess)
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        raise PersistenceFailure("Failed to create production order", original_error=e)


def get_production_order(order_id: int, session: Optional[Session] = None) -> ProductionOrder:
    """
    Retrieve a production order with its items, products and sales order loaded.

    Raises:
        ProductionOrderNotFound: If the order does not exist
    """
    try:
        if session is not None:
            return _load_order(order_id, session)
        with session_scope() as sess:
            return _load_order(order_id, sess)
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        raise PersistenceFailure(f"Failed to retrieve production order {order_id}", e)


def list_production_orders(
    status: Optional[str] = None,
    sales_order_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> List[ProductionOrder]:
    """
    List production orders, newest number first.

    Args:
        status: Only orders in this status
        sales_order_id: Only orders of this sales order
        session: Optional database session
    """

    def _impl(sess: Session) -> List[ProductionOrder]:
        query = sess.query(ProductionOrder).options(selectinload(ProductionOrder.items))
        if status is not None:
            query = query.filter(ProductionOrder.status == getattr(status, "value", status))
        if sales_order_id is not None:
            query = query.filter(ProductionOrder.sales_order_id == sales_order_id)
        return query.order_by(ProductionOrder.order_number.desc()).all()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def delete_production_order(order_id: int, session: Optional[Session] = None) -> bool:
    """
    Delete a production order that is aguardando or cancelado.

    Raises:
        ProductionOrderNotFound: If the order does not exist
        InvalidTransition: If the order has started or completed
    """

    def _impl(sess: Session) -> bool:
        order = _load_order(order_id, sess)
        if not workflow.can_delete_order(order.status):
            raise InvalidTransition(
                "production order",
                order_id,
                order.status,
                None,
                f"orders in status {workflow.get_status_label(order.status)} cannot be deleted",
            )
        sess.delete(order)
        log_operation(
            logger,
            operation="delete_production_order",
            outcome="success",
            production_order_id=order_id,
        )
        return True

    return _run_transition("delete_production_order", order_id, _impl, session)


def get_allowed_transitions(order_id: int, session: Optional[Session] = None) -> List[str]:
    """Statuses the stored order may move to next."""
    return workflow.get_allowed_transitions(get_production_order(order_id, session=session).status)


# =============================================================================
# Item transitions
# =============================================================================


def start_item(
    order_id: int,
    item_id: int,
    shortfall_policy: Optional[str] = None,
    tolerance_percent: Optional[Decimal] = None,
    session: Optional[Session] = None,
) -> Tuple[ProductionOrderItem, List[Alert]]:
    """
    Start production of one item: aguardando -> em_producao.

    Consumes the item's raw materials FIFO and re-derives the order status.
    The caller picks the item; nothing is started automatically.

    Args:
        order_id: Production order
        item_id: Item of that order to start
        shortfall_policy: "block" or "warn"; defaults to config
        tolerance_percent: Lot-change alert threshold; defaults to config
        session: Optional database session

    Returns:
        Tuple of (item, alerts). alerts holds LotChangeAlert values and, under
        the "warn" policy, Shortfall values.

    Raises:
        ProductionOrderNotFound / ProductionOrderItemNotFound
        InvalidTransition: If the item is not aguardando
        InsufficientStock: If stock is short under the "block" policy
        RecipeNotFound: If the item's product has no recipe
        PersistenceFailure: If the database write fails
    """
    policy = _resolve_policy(shortfall_policy)

    def _impl(sess: Session) -> Tuple[ProductionOrderItem, List[Alert]]:
        order = _load_order(order_id, sess)
        item = _find_item(order, item_id)
        _check_item_transition(item, ProductionItemStatus.EM_PRODUCAO)

        alerts = _consume(
            order, item.product_id, item.quantity_to_produce, policy, tolerance_percent, sess
        )

        item.status = ProductionItemStatus.EM_PRODUCAO.value
        item.started_at = utc_now()
        _sync_order_status(order, sess, None)
        sess.flush()

        # Load the back-reference before the session closes
        _ = item.order

        log_operation(
            logger,
            operation="start_item",
            outcome="success",
            production_order_id=order_id,
            item_id=item_id,
            order_status=order.status,
            alerts=len(alerts),
        )
        return item, alerts

    return _run_transition("start_item", order_id, _impl, session, item_id=item_id, consumes=True)


def finish_item(
    order_id: int,
    item_id: int,
    on_complete: Optional[CompletionHandoff] = None,
    session: Optional[Session] = None,
) -> ProductionOrderItem:
    """
    Finish one item: em_producao -> finalizado.

    When this leaves every item finalizado or cancelado the order becomes
    concluido and the completion hand-off runs.

    Args:
        order_id: Production order
        item_id: Item of that order to finish
        on_complete: Hand-off for this call; overrides the registered one
        session: Optional database session

    Returns:
        The finished item; ``item.order.status`` is the re-derived order status

    Raises:
        InvalidTransition: If the item is not em_producao
    """

    def _impl(sess: Session) -> ProductionOrderItem:
        order = _load_order(order_id, sess)
        item = _find_item(order, item_id)
        _check_item_transition(item, ProductionItemStatus.FINALIZADO)

        item.status = ProductionItemStatus.FINALIZADO.value
        item.finished_at = utc_now()
        _sync_order_status(order, sess, on_complete)
        sess.flush()

        # Load the back-reference before the session closes
        _ = item.order

        log_operation(
            logger,
            operation="finish_item",
            outcome="success",
            production_order_id=order_id,
            item_id=item_id,
            order_status=order.status,
        )
        return item

    return _run_transition("finish_item", order_id, _impl, session, item_id=item_id)


def cancel_item(
    order_id: int,
    item_id: int,
    on_complete: Optional[CompletionHandoff] = None,
    session: Optional[Session] = None,
) -> ProductionOrderItem:
    """
    Cancel one item that is aguardando or em_producao.

    Stock already consumed by a started item is not returned. Cancelling the
    last open item of an order whose other items are finished completes it.

    Raises:
        InvalidTransition: If the item is finalizado or cancelado
    """

    def _impl(sess: Session) -> ProductionOrderItem:
        order = _load_order(order_id, sess)
        item = _find_item(order, item_id)
        _check_item_transition(item, ProductionItemStatus.CANCELADO)

        item.status = ProductionItemStatus.CANCELADO.value
        item.finished_at = utc_now()
        _sync_order_status(order, sess, on_complete)
        sess.flush()

        # Load the back-reference before the session closes
        _ = item.order

        log_operation(
            logger,
            operation="cancel_item",
            outcome="success",
            production_order_id=order_id,
            item_id=item_id,
            order_status=order.status,
        )
        return item

    return _run_transition("cancel_item", order_id, _impl, session, item_id=item_id)


# =============================================================================
# Order transitions
# =============================================================================


def _reject_itemized(order: ProductionOrder, target: ProductionOrderStatus) -> None:
    if order.has_items:
        raise InvalidTransition(
            "production order",
            order.id,
            order.status,
            target.value,
            "order has items; its status follows the items",
        )


def start_order(
    order_id: int,
    shortfall_policy: Optional[str] = None,
    tolerance_percent: Optional[Decimal] = None,
    session: Optional[Session] = None,
) -> Tuple[ProductionOrder, List[Alert]]:
    """
    Start a legacy order (no items): aguardando -> em_producao.

    Consumes raw materials for the order's whole quantity.

    Returns:
        Tuple of (order, alerts)

    Raises:
        InvalidTransition: If the order has items or is not aguardando
        InsufficientStock: If stock is short under the "block" policy
        ValidationError: If the order has no product or quantity
    """
    policy = _resolve_policy(shortfall_policy)

    def _impl(sess: Session) -> Tuple[ProductionOrder, List[Alert]]:
        order = _load_order(order_id, sess)
        _reject_itemized(order, ProductionOrderStatus.EM_PRODUCAO)
        _check_order_transition(order, ProductionOrderStatus.EM_PRODUCAO)

        alerts = _consume(
            order, order.product_id, order.quantity_to_produce, policy, tolerance_percent, sess
        )

        order.status = ProductionOrderStatus.EM_PRODUCAO.value
        _mark_started(order, sess)
        sess.flush()

        log_operation(
            logger,
            operation="start_order",
            outcome="success",
            production_order_id=order_id,
            alerts=len(alerts),
        )
        return order, alerts

    return _run_transition("start_order", order_id, _impl, session, consumes=True)


def finish_order(
    order_id: int,
    on_complete: Optional[CompletionHandoff] = None,
    session: Optional[Session] = None,
) -> ProductionOrder:
    """
    Finish a legacy order: em_producao -> concluido, then run the hand-off.

    Raises:
        InvalidTransition: If the order has items or is not em_producao
    """

    def _impl(sess: Session) -> ProductionOrder:
        order = _load_order(order_id, sess)
        _reject_itemized(order, ProductionOrderStatus.CONCLUIDO)
        if order.status != ProductionOrderStatus.EM_PRODUCAO.value:
            _, reason = workflow.is_order_transition_allowed(
                order.status, ProductionOrderStatus.CONCLUIDO
            )
            raise InvalidTransition(
                "production order",
                order.id,
                order.status,
                ProductionOrderStatus.CONCLUIDO.value,
                reason or "order is not in production",
            )

        _complete(order, sess, on_complete)
        sess.flush()
        return order

    return _run_transition("finish_order", order_id, _impl, session)


def cancel_order(order_id: int, session: Optional[Session] = None) -> ProductionOrder:
    """
    Cancel an order that is aguardando or em_producao.

    Open items (aguardando/em_producao) are cancelled with it; finished
    items keep their status.

    Raises:
        InvalidTransition: If the order is parcial, concluido or cancelado
    """

    def _impl(sess: Session) -> ProductionOrder:
        order = _load_order(order_id, sess)
        _check_order_transition(order, ProductionOrderStatus.CANCELADO)

        now = utc_now()
        cancelled = 0
        for item in order.items:
            if workflow.is_open_item_status(item.status):
                item.status = ProductionItemStatus.CANCELADO.value
                item.finished_at = now
                cancelled += 1
        order.status = ProductionOrderStatus.CANCELADO.value
        sess.flush()

        log_operation(
            logger,
            operation="cancel_order",
            outcome="success",
            production_order_id=order_id,
            items_cancelled=cancelled,
        )
        return order

    return _run_transition("cancel_order", order_id, _impl, session)
