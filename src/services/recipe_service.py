"""
Recipe Resolver - maps a product to the raw materials it consumes.

A product's recipe is the set of its RecipeLine rows: one consumption rate
per raw material, per unit of product (usually per meter). This module
reads recipes and scales them to a production quantity, converting each
rate from its own unit to the raw material's stock unit. It never writes.

All functions accept an optional session parameter.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..models import Product, RecipeLine
from .database import session_scope
from .dto import RecipeRequirement
from .exceptions import (
    PersistenceFailure,
    ProductNotFound,
    RecipeNotFound,
    ServiceError,
    ValidationError,
)
from .unit_converter import convert_units


def _load_recipe_lines(product_id: int, session: Session) -> List[RecipeLine]:
    product = session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise ProductNotFound(product_id)

    lines = (
        session.query(RecipeLine)
        .options(joinedload(RecipeLine.raw_material))
        .filter(RecipeLine.product_id == product_id)
        .order_by(RecipeLine.raw_material_id.asc())
        .all()
    )
    if not lines:
        raise RecipeNotFound(product_id)
    return lines


def _resolve_recipe_impl(product_id: int, session: Session) -> List[RecipeRequirement]:
    return [
        RecipeRequirement(
            raw_material_id=line.raw_material_id,
            raw_material_name=line.raw_material.name,
            rate=Decimal(str(line.consumption_rate)),
            rate_unit=line.rate_unit,
            stock_unit=line.raw_material.stock_unit,
        )
        for line in _load_recipe_lines(product_id, session)
    ]


def resolve_recipe(product_id: int, session: Optional[Session] = None) -> List[RecipeRequirement]:
    """
    Resolve a product's recipe.

    Args:
        product_id: Product to resolve
        session: Optional database session

    Returns:
        One RecipeRequirement per raw material, ordered by raw material ID.
        ``required`` is left unset.

    Raises:
        ProductNotFound: If the product does not exist
        RecipeNotFound: If the product has no recipe lines
        PersistenceFailure: If the database query fails
    """
    try:
        if session is not None:
            return _resolve_recipe_impl(product_id, session)
        with session_scope() as sess:
            return _resolve_recipe_impl(product_id, sess)
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        raise PersistenceFailure(f"Failed to resolve recipe for product {product_id}", e)


def scale_requirement(requirement: RecipeRequirement, quantity: Decimal) -> RecipeRequirement:
    """
    Scale one recipe line to a product quantity.

    required = rate * quantity, converted from rate_unit to stock_unit.

    Raises:
        ValidationError: If the rate unit cannot be converted to the stock unit
    """
    raw = requirement.rate * Decimal(str(quantity))
    success, required, error = convert_units(raw, requirement.rate_unit, requirement.stock_unit)
    if not success:
        raise ValidationError(
            [f"Raw material '{requirement.raw_material_name}': {error}"]
        )
    return RecipeRequirement(
        raw_material_id=requirement.raw_material_id,
        raw_material_name=requirement.raw_material_name,
        rate=requirement.rate,
        rate_unit=requirement.rate_unit,
        stock_unit=requirement.stock_unit,
        required=required,
    )


def compute_requirements(
    product_id: int,
    quantity: Decimal,
    session: Optional[Session] = None,
) -> List[RecipeRequirement]:
    """
    Compute the raw material quantities needed to produce ``quantity`` of a product.

    Args:
        product_id: Product to produce
        quantity: Product quantity (in the product's unit of measure, e.g. meters)
        session: Optional database session

    Returns:
        RecipeRequirement list ordered by raw material ID, with ``required``
        in each material's stock unit

    Raises:
        ValidationError: If quantity is negative or a rate unit is incompatible
        ProductNotFound: If the product does not exist
        RecipeNotFound: If the product has no recipe lines

    Example:
        >>> # recipe: 250 g of PVC per meter, PVC stocked in kg
        >>> reqs = compute_requirements(product.id, Decimal("10"))
        >>> reqs[0].required
        Decimal('2.5')
    """
    quantity = Decimal(str(quantity))
    if quantity < 0:
        raise ValidationError(["Quantity cannot be negative"])

    requirements = resolve_recipe(product_id, session=session)
    return [scale_requirement(req, quantity) for req in requirements]
