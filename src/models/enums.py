"""
Enumerations for production and dispatch tracking.

This module contains the status vocabularies shared by models and services:
- ProductionOrderStatus: Lifecycle of a production order (OP)
- ProductionItemStatus: Lifecycle of a single line item of an OP
- SalesOrderStatus: Lifecycle of a confirmed sales order
- PalletStatus: Dispatch confirmation state of a pallet
- LotStatus: Whether a stock lot still has quantity
- MovementReason: Why a stock movement was recorded
- StockLevel: Raw material stock classification against its minimum

Values are the persisted strings used by the rest of the ERP.
"""

from enum import Enum


class ProductionOrderStatus(str, Enum):
    """
    Production order status.

    Values:
        AGUARDANDO: Created, nothing started
        EM_PRODUCAO: At least one item (or the whole legacy order) running
        PARCIAL: Some items finished while others are still open
        CONCLUIDO: Every item finished or cancelled; dispatch hand-off fired
        CANCELADO: Cancelled before completion
    """

    AGUARDANDO = "aguardando"
    EM_PRODUCAO = "em_producao"
    PARCIAL = "parcial"
    CONCLUIDO = "concluido"
    CANCELADO = "cancelado"


class ProductionItemStatus(str, Enum):
    """Production order item status."""

    AGUARDANDO = "aguardando"
    EM_PRODUCAO = "em_producao"
    FINALIZADO = "finalizado"
    CANCELADO = "cancelado"


class SalesOrderStatus(str, Enum):
    """
    Sales order status for confirmed orders.

    Values:
        PENDENTE: Awaiting approval
        APROVADO: Approved, production not started
        PRODUCAO: A linked production order has started
        FINALIZADO: Production finished
        AGUARDANDO_DESPACHO: Pallets generated, awaiting confirmation
        ENTREGUE: Every pallet confirmed
        CANCELADO: Cancelled
        RECUSADO: Refused quote
    """

    PENDENTE = "pendente"
    APROVADO = "aprovado"
    PRODUCAO = "producao"
    FINALIZADO = "finalizado"
    AGUARDANDO_DESPACHO = "aguardando_despacho"
    ENTREGUE = "entregue"
    CANCELADO = "cancelado"
    RECUSADO = "recusado"


class PalletStatus(str, Enum):
    """Pallet dispatch confirmation status."""

    PENDENTE = "pendente"
    CONFERIDO = "conferido"


class LotStatus(str, Enum):
    """Stock lot status. Exhausted lots are kept for the audit trail."""

    ATIVO = "ativo"
    ESGOTADO = "esgotado"


class MovementReason(str, Enum):
    """Reason recorded on a stock movement."""

    COMPRA = "compra"
    PRODUCAO = "producao"
    AJUSTE_INVENTARIO = "ajuste_inventario"
    DEVOLUCAO = "devolucao"


class StockLevel(str, Enum):
    """Raw material stock classification against its minimum threshold."""

    CRITICO = "critico"
    BAIXO = "baixo"
    NORMAL = "normal"
