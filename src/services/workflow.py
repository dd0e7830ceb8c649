"""
Status workflow rules for production orders, their items and sales orders.

Pure functions only: no database access. The production order and dispatch
services call these before every status write.

Production order transitions:
    aguardando  -> em_producao, cancelado
    em_producao -> parcial, concluido, cancelado
    parcial     -> em_producao, concluido
    concluido, cancelado: final

Production order item transitions:
    aguardando  -> em_producao, cancelado
    em_producao -> finalizado, cancelado
    finalizado, cancelado: final

Sales order transitions:
    pendente            -> aprovado, cancelado, recusado
    aprovado            -> producao, cancelado
    producao            -> finalizado
    finalizado          -> aguardando_despacho
    aguardando_despacho -> entregue
    entregue, cancelado, recusado: final
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.enums import ProductionItemStatus, ProductionOrderStatus, SalesOrderStatus

ORDER_TRANSITIONS: Dict[str, List[str]] = {
    ProductionOrderStatus.AGUARDANDO.value: [
        ProductionOrderStatus.EM_PRODUCAO.value,
        ProductionOrderStatus.CANCELADO.value,
    ],
    ProductionOrderStatus.EM_PRODUCAO.value: [
        ProductionOrderStatus.PARCIAL.value,
        ProductionOrderStatus.CONCLUIDO.value,
        ProductionOrderStatus.CANCELADO.value,
    ],
    ProductionOrderStatus.PARCIAL.value: [
        ProductionOrderStatus.EM_PRODUCAO.value,
        ProductionOrderStatus.CONCLUIDO.value,
    ],
    ProductionOrderStatus.CONCLUIDO.value: [],
    ProductionOrderStatus.CANCELADO.value: [],
}

ITEM_TRANSITIONS: Dict[str, List[str]] = {
    ProductionItemStatus.AGUARDANDO.value: [
        ProductionItemStatus.EM_PRODUCAO.value,
        ProductionItemStatus.CANCELADO.value,
    ],
    ProductionItemStatus.EM_PRODUCAO.value: [
        ProductionItemStatus.FINALIZADO.value,
        ProductionItemStatus.CANCELADO.value,
    ],
    ProductionItemStatus.FINALIZADO.value: [],
    ProductionItemStatus.CANCELADO.value: [],
}

SALES_ORDER_TRANSITIONS: Dict[str, List[str]] = {
    SalesOrderStatus.PENDENTE.value: [
        SalesOrderStatus.APROVADO.value,
        SalesOrderStatus.CANCELADO.value,
        SalesOrderStatus.RECUSADO.value,
    ],
    SalesOrderStatus.APROVADO.value: [
        SalesOrderStatus.PRODUCAO.value,
        SalesOrderStatus.CANCELADO.value,
    ],
    SalesOrderStatus.PRODUCAO.value: [SalesOrderStatus.FINALIZADO.value],
    SalesOrderStatus.FINALIZADO.value: [SalesOrderStatus.AGUARDANDO_DESPACHO.value],
    SalesOrderStatus.AGUARDANDO_DESPACHO.value: [SalesOrderStatus.ENTREGUE.value],
    SalesOrderStatus.ENTREGUE.value: [],
    SalesOrderStatus.CANCELADO.value: [],
    SalesOrderStatus.RECUSADO.value: [],
}

STATUS_LABELS: Dict[str, str] = {
    "aguardando": "Aguardando",
    "em_producao": "Em Produção",
    "parcial": "Parcial",
    "concluido": "Concluído",
    "finalizado": "Finalizado",
    "cancelado": "Cancelado",
}

SALES_ORDER_LABELS: Dict[str, str] = {
    "pendente": "Pendente",
    "aprovado": "Aprovado",
    "producao": "Em Produção",
    "finalizado": "Finalizado",
    "aguardando_despacho": "Aguardando Despacho",
    "entregue": "Entregue",
    "cancelado": "Cancelado",
    "recusado": "Recusado",
}

_OPEN_ITEM_STATUSES = {
    ProductionItemStatus.AGUARDANDO.value,
    ProductionItemStatus.EM_PRODUCAO.value,
}


def _value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def get_status_label(status) -> str:
    """Portuguese display label for a production order or item status."""
    status = _value(status)
    return STATUS_LABELS.get(status, status)


def derive_order_status(item_statuses: Iterable) -> ProductionOrderStatus:
    """
    Derive a production order's status from its items' statuses.

    Total over every multiset of item statuses:

    - no items: aguardando
    - every item cancelado: cancelado
    - every item finalizado or cancelado: concluido
    - at least one finalizado and at least one aguardando/em_producao: parcial
    - at least one em_producao: em_producao
    - otherwise: aguardando

    Args:
        item_statuses: ProductionItemStatus members or their string values

    Raises:
        ValueError: If a status is not a production item status

    Example:
        >>> derive_order_status(["finalizado", "aguardando", "aguardando"])
        <ProductionOrderStatus.PARCIAL: 'parcial'>
    """
    counts = Counter(_value(s) for s in item_statuses)
    unknown = set(counts) - set(ITEM_TRANSITIONS)
    if unknown:
        raise ValueError(f"Unknown item status: {', '.join(sorted(unknown))}")

    total = sum(counts.values())
    if total == 0:
        return ProductionOrderStatus.AGUARDANDO

    cancelled = counts[ProductionItemStatus.CANCELADO.value]
    finished = counts[ProductionItemStatus.FINALIZADO.value]
    running = counts[ProductionItemStatus.EM_PRODUCAO.value]
    open_items = total - cancelled - finished

    if cancelled == total:
        return ProductionOrderStatus.CANCELADO
    if open_items == 0:
        return ProductionOrderStatus.CONCLUIDO
    if finished > 0:
        return ProductionOrderStatus.PARCIAL
    if running > 0:
        return ProductionOrderStatus.EM_PRODUCAO
    return ProductionOrderStatus.AGUARDANDO


def _check(
    table: Dict[str, List[str]],
    labels: Dict[str, str],
    current,
    target,
) -> Tuple[bool, Optional[str]]:
    current = _value(current)
    target = _value(target)
    if current not in table:
        return False, f"Unknown status '{current}'"

    current_label = labels.get(current, current)
    target_label = labels.get(target, target)

    if current == target:
        return False, f"already in status {current_label}"
    if not table[current]:
        return False, f"status {current_label} is final"
    if target not in table[current]:
        return False, f"cannot go from {current_label} to {target_label}"
    return True, None


def is_order_transition_allowed(current, target) -> Tuple[bool, Optional[str]]:
    """
    Check a production order status change against the transition table.

    Returns:
        Tuple of (allowed, reason); reason is None when allowed
    """
    return _check(ORDER_TRANSITIONS, STATUS_LABELS, current, target)


def is_item_transition_allowed(current, target) -> Tuple[bool, Optional[str]]:
    """Check a production order item status change."""
    return _check(ITEM_TRANSITIONS, STATUS_LABELS, current, target)


def is_sales_order_transition_allowed(current, target) -> Tuple[bool, Optional[str]]:
    """Check a sales order status change."""
    return _check(SALES_ORDER_TRANSITIONS, SALES_ORDER_LABELS, current, target)


def get_allowed_transitions(status) -> List[str]:
    """Production order statuses reachable from ``status``."""
    return list(ORDER_TRANSITIONS.get(_value(status), []))


def is_final_status(status) -> bool:
    return not get_allowed_transitions(status)


def can_edit_order(status) -> bool:
    """Orders can be edited while aguardando or parcial."""
    return _value(status) in (
        ProductionOrderStatus.AGUARDANDO.value,
        ProductionOrderStatus.PARCIAL.value,
    )


def can_delete_order(status) -> bool:
    """Orders can be deleted only while aguardando or once cancelado."""
    return _value(status) in (
        ProductionOrderStatus.AGUARDANDO.value,
        ProductionOrderStatus.CANCELADO.value,
    )


def is_open_item_status(status) -> bool:
    return _value(status) in _OPEN_ITEM_STATUSES
