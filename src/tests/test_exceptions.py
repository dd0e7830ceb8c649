"""Tests for the service exception hierarchy."""

from decimal import Decimal

from src.services.dto import Shortfall
from src.services.exceptions import (
    AlreadyConfirmed,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PalletNotFound,
    PersistenceFailure,
    ProductionOrderItemNotFound,
    ProductNotFound,
    RecipeNotFound,
    ServiceError,
    ValidationError,
)


def test_not_found_family():
    for error in (
        ProductNotFound(1),
        RecipeNotFound(1),
        ProductionOrderItemNotFound(2, 3),
        PalletNotFound("abc"),
    ):
        assert isinstance(error, NotFound)
        assert isinstance(error, ServiceError)


def test_item_not_found_message():
    error = ProductionOrderItemNotFound(7, 42)

    assert str(error) == "Item 42 of production order 7 not found"
    assert (error.order_id, error.item_id) == (7, 42)


def test_pallet_not_found_hides_token():
    assert "s3cr3t" not in str(PalletNotFound("s3cr3t"))


def test_invalid_transition_carries_statuses():
    error = InvalidTransition("production order item", 3, "finalizado", "cancelado", "status Finalizado is final")

    assert error.current_status == "finalizado"
    assert error.target_status == "cancelado"
    assert str(error) == "Cannot change production order item 3: status Finalizado is final"


def test_insufficient_stock_lists_every_material():
    shortfalls = [
        Shortfall(1, "PVC", Decimal("5"), Decimal("2"), Decimal("3"), "kg"),
        Shortfall(2, "Pigmento", Decimal("1"), Decimal("0"), Decimal("1"), "kg"),
    ]

    error = InsufficientStock(shortfalls)

    assert error.shortfalls == shortfalls
    assert "PVC: required 5, missing 3 kg" in str(error)
    assert "Pigmento" in str(error)


def test_already_confirmed_is_not_a_not_found():
    error = AlreadyConfirmed(10, 2)

    assert not isinstance(error, NotFound)
    assert error.pallet_number == 2


def test_validation_error_joins_messages():
    error = ValidationError(["a is required", "b cannot be negative"])

    assert error.errors == ["a is required", "b cannot be negative"]
    assert str(error) == "Validation failed: a is required; b cannot be negative"


def test_persistence_failure_keeps_original():
    original = RuntimeError("disk full")

    error = PersistenceFailure("write failed", original_error=original)

    assert error.original_error is original
    assert str(error) == "Persistence failure: write failed"
