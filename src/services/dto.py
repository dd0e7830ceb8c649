"""Value objects returned by the stock consumption services.

Lot-change alerts and shortfalls are reported as data rather than raised:
a production start returns them alongside the started item so the caller
can show each one to the operator. Both carry a ``kind`` tag so a mixed
alert list can be dispatched on without isinstance checks.

All quantities are Decimals in the raw material's stock unit.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Union


@dataclass(frozen=True)
class LotChangeAlert:
    """Raised (as data) when FIFO consumption moves to a lot with a different cost.

    Attributes:
        raw_material_id: Material being consumed
        raw_material_name: Display name of the material
        previous_lot_id: Lot that was drained
        previous_unit_cost: Unit cost of the drained lot
        new_lot_id: Next lot drawn from
        new_unit_cost: Unit cost of the next lot
        percent_difference: (new - previous) / previous * 100, negative when
            the new lot is cheaper
        remaining_in_new_lot: Quantity left in the new lot after this consumption
        current_standard_cost: Material's administrative cost, for comparison
    """

    raw_material_id: int
    raw_material_name: str
    previous_lot_id: int
    previous_unit_cost: Decimal
    new_lot_id: int
    new_unit_cost: Decimal
    percent_difference: Decimal
    remaining_in_new_lot: Decimal
    current_standard_cost: Optional[Decimal] = None
    kind: str = field(default="lot_change", init=False)

    @property
    def is_increase(self) -> bool:
        return self.new_unit_cost > self.previous_unit_cost


@dataclass(frozen=True)
class Shortfall:
    """Quantity of a raw material that could not be consumed.

    Attributes:
        raw_material_id: Material that ran out
        raw_material_name: Display name of the material
        required: Quantity asked for
        consumed: Quantity actually taken from lots
        missing: required - consumed
        unit: Stock unit of the quantities
    """

    raw_material_id: int
    raw_material_name: str
    required: Decimal
    consumed: Decimal
    missing: Decimal
    unit: str
    kind: str = field(default="shortfall", init=False)


Alert = Union[LotChangeAlert, Shortfall]


@dataclass(frozen=True)
class LotConsumption:
    """Quantity taken from a single lot during one consume call."""

    lot_id: int
    quantity: Decimal
    unit_cost: Decimal
    remaining_after: Decimal

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass
class ConsumptionResult:
    """Outcome of consuming one raw material.

    Attributes:
        raw_material_id: Material consumed
        required: Quantity asked for
        consumed: Quantity actually taken
        lots_touched: Per-lot breakdown in FIFO order
        alerts: Lot-change alerts raised while crossing lots
        shortfall: Set when the lots ran out before required was met
    """

    raw_material_id: int
    required: Decimal
    consumed: Decimal = Decimal("0")
    lots_touched: List[LotConsumption] = field(default_factory=list)
    alerts: List[LotChangeAlert] = field(default_factory=list)
    shortfall: Optional[Shortfall] = None

    @property
    def success(self) -> bool:
        return self.shortfall is None

    @property
    def total_cost(self) -> Decimal:
        return sum((lot.cost for lot in self.lots_touched), Decimal("0"))


@dataclass(frozen=True)
class RecipeRequirement:
    """One raw material a product needs.

    rate is per unit of product in rate_unit; required (when computed for a
    quantity) is already converted to the material's stock_unit.
    """

    raw_material_id: int
    raw_material_name: str
    rate: Decimal
    rate_unit: str
    stock_unit: str
    required: Optional[Decimal] = None


@dataclass
class AvailabilityLine:
    """Requirement vs. stock for one material, from a dry-run check."""

    raw_material_id: int
    raw_material_name: str
    required: Decimal
    available: Decimal
    unit: str

    @property
    def missing(self) -> Decimal:
        return max(Decimal("0"), self.required - self.available)

    @property
    def is_sufficient(self) -> bool:
        return self.missing == Decimal("0")


@dataclass
class ProductionConsumptionReport:
    """Everything consumed for one production start.

    Attributes:
        product_id: Product produced
        quantity: Product quantity the consumption covers
        reference: Reference written on the stock movements (e.g. "OP-0003")
        results: One ConsumptionResult per raw material consumed
    """

    product_id: int
    quantity: Decimal
    reference: Optional[str] = None
    results: List[ConsumptionResult] = field(default_factory=list)

    @property
    def lot_change_alerts(self) -> List[LotChangeAlert]:
        return [alert for result in self.results for alert in result.alerts]

    @property
    def shortfalls(self) -> List[Shortfall]:
        return [result.shortfall for result in self.results if result.shortfall is not None]

    @property
    def alerts(self) -> List[Alert]:
        """Lot-change alerts followed by shortfalls, in material order."""
        return list(self.lot_change_alerts) + list(self.shortfalls)

    @property
    def success(self) -> bool:
        return not self.shortfalls

    @property
    def total_cost(self) -> Decimal:
        return sum((result.total_cost for result in self.results), Decimal("0"))
