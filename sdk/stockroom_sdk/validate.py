"""
Local input validation for the Stockroom SDK.

This module provides validation utilities:
- Store and product payload validation (create and update)
- Form string parsing for prices and quantities
- Sign-in and sign-up form checks

Every function here runs before any network call and raises
ValidationError on bad input. Successful validation returns the
normalized fields to write.

Invariants:
    - Validation errors are deterministic
    - Unknown fields suggest similar valid fields
    - Immutable fields are rejected in updates
"""

from __future__ import annotations

import math
from decimal import Decimal
from difflib import get_close_matches
from typing import Any, Dict, FrozenSet, Iterable

from .config import Settings
from .errors import UnknownFieldError, ValidationError
from .models import normalize_name

IMMUTABLE_FIELDS: FrozenSet[str] = frozenset({"id", "owner_id", "store_id", "created_at"})

STORE_FIELDS = frozenset({"name", "description"})
PRODUCT_CREATE_FIELDS = frozenset({"store_id", "name", "price", "quantity"})
PRODUCT_UPDATE_FIELDS = frozenset({"name", "price", "quantity"})

PRICE_MESSAGE = "Enter a valid price greater than 0."
QUANTITY_MESSAGE = "Enter a valid non-negative quantity."


def parse_price(text: str) -> float:
    """Parse a price typed into a form.

    Raises:
        ValidationError: If the text is not a positive, finite number
    """
    try:
        value = float(text.strip())
    except (AttributeError, ValueError):
        raise ValidationError(PRICE_MESSAGE, field_name="price")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError(PRICE_MESSAGE, field_name="price")
    return value


def parse_quantity(text: str) -> int:
    """Parse a quantity typed into a form.

    Raises:
        ValidationError: If the text is not a non-negative integer
    """
    try:
        value = int(text.strip())
    except (AttributeError, ValueError):
        raise ValidationError(QUANTITY_MESSAGE, field_name="quantity")
    if value < 0:
        raise ValidationError(QUANTITY_MESSAGE, field_name="quantity")
    return value


def _check_fields(
    data: Dict[str, Any],
    allowed: Iterable[str],
    kind_name: str,
) -> None:
    allowed = set(allowed)
    for field_name in data:
        if field_name in allowed:
            continue
        if field_name in IMMUTABLE_FIELDS:
            raise ValidationError(
                f"Field '{field_name}' cannot be changed",
                field_name=field_name,
            )
        suggestions = get_close_matches(field_name, sorted(allowed), n=3)
        raise UnknownFieldError(field_name, kind_name, suggestions)


def _require_text(data: Dict[str, Any], name: str, message: str) -> str:
    value = data.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message, field_name=name)
    return value.strip()


def _price(value: Any) -> float:
    if isinstance(value, str):
        return parse_price(value)
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(PRICE_MESSAGE, field_name="price")
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        raise ValidationError(PRICE_MESSAGE, field_name="price")
    return value


def _quantity(value: Any) -> int:
    if isinstance(value, str):
        return parse_quantity(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(QUANTITY_MESSAGE, field_name="quantity")
    return value


def _description(value: Any, settings: Settings) -> str:
    if value is None:
        return settings.default_store_description
    if not isinstance(value, str):
        raise ValidationError("Description must be text", field_name="description")
    return value.strip() or settings.default_store_description


def validate_store_create(data: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """Validate a new store.

    Returns:
        Fields to write: name, description
    """
    _check_fields(data, STORE_FIELDS, "store")
    return {
        "name": _require_text(data, "name", "Please enter a valid Store Name."),
        "description": _description(data.get("description"), settings),
    }


def validate_store_update(patch: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """Validate a store patch."""
    if not patch:
        raise ValidationError("Nothing to update")
    _check_fields(patch, STORE_FIELDS, "store")

    fields: Dict[str, Any] = {}
    if "name" in patch:
        fields["name"] = _require_text(patch, "name", "Please enter a valid Store Name.")
    if "description" in patch:
        fields["description"] = _description(patch["description"], settings)
    return fields


def validate_product_create(data: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """Validate a new product.

    Returns:
        Fields to write: store_id, name (normalized), display_name, price, quantity
    """
    _check_fields(data, PRODUCT_CREATE_FIELDS, "product")

    errors = []
    fields: Dict[str, Any] = {}
    checks = (
        ("store_id", lambda: _require_text(data, "store_id", "Store ID is missing.")),
        ("name", lambda: _require_text(data, "name", "Product name is required.")),
        ("price", lambda: _price(data.get("price"))),
        ("quantity", lambda: _quantity(data.get("quantity"))),
    )
    for name, check in checks:
        try:
            fields[name] = check()
        except ValidationError as e:
            errors.append(e.message)

    if errors:
        raise ValidationError("; ".join(errors), errors=errors)

    fields["display_name"] = fields["name"]
    fields["name"] = normalize_name(fields["name"])
    return fields


def validate_product_update(patch: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    """Validate a product patch (any of name, price, quantity)."""
    if not patch:
        raise ValidationError("Nothing to update")
    _check_fields(patch, PRODUCT_UPDATE_FIELDS, "product")

    fields: Dict[str, Any] = {}
    if "name" in patch:
        display_name = _require_text(patch, "name", "Please enter a product name")
        fields["name"] = normalize_name(display_name)
        fields["display_name"] = display_name
    if "price" in patch:
        fields["price"] = _price(patch["price"])
    if "quantity" in patch:
        fields["quantity"] = _quantity(patch["quantity"])
    return fields


def validate_sign_in(email: str, password: str) -> None:
    """Check the sign-in form is filled in."""
    if not email.strip() or not password:
        raise ValidationError("Please enter your email and password.")


def validate_sign_up(
    email: str,
    password: str,
    confirm_password: str,
    min_length: int = 6,
) -> None:
    """Check the registration form before calling the backend."""
    if not email.strip() or not password.strip() or not confirm_password.strip():
        raise ValidationError("Please fill in all fields.")
    if password != confirm_password:
        raise ValidationError("Passwords do not match.", field_name="confirm_password")
    if len(password) < min_length:
        raise ValidationError(
            f"Password must be at least {min_length} characters.",
            field_name="password",
        )
