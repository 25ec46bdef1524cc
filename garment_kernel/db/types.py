"""
Module: garment_kernel.db.types
Responsibility: Column types and the quantity helpers shared by models,
    services and selectors, so every stock figure is stored and validated
    with the same precision.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/ or domain/.

Invariants enforced:
    - Quantities and prices are ExactDecimal: Numeric(38, 9) on PostgreSQL,
      a canonical nine-place string on SQLite.  QUANTITY_DECIMAL_PLACES is
      the canonical scale for stock arithmetic.
    - No floats: normalize_quantity() rejects float input outright.
    - Timestamps load back timezone-aware (UTC) on every backend.
"""

from datetime import timezone
from decimal import Context, Decimal, InvalidOperation
from uuid import UUID as PyUUID

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

QUANTITY_DECIMAL_PLACES = 9
_QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)
_STORAGE_CONTEXT = Context(prec=38)


class UUIDString(TypeDecorator):
    """UUID stored as String(36) so SQLite and PostgreSQL share one schema."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime.

    SQLite drops the offset on storage; values are normalized to UTC on the
    way in and re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ExactDecimal(TypeDecorator):
    """
    Numeric(38, 9) that keeps every digit on every backend.

    SQLite has no decimal storage class and would hold Numeric as a double,
    rounding large stock figures.  There the value is stored as its
    canonical nine-place string; PostgreSQL keeps native NUMERIC.  Decimal
    columns are only compared and summed in Python, never in SQL.
    """

    impl = Numeric(38, QUANTITY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(38, QUANTITY_DECIMAL_PLACES))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise ValueError(f"Float not allowed for a decimal column: {value!r}")
        value = value if isinstance(value, Decimal) else Decimal(str(value))
        if dialect.name != "sqlite":
            return value
        return format(value.quantize(_QUANTUM, context=_STORAGE_CONTEXT), "f")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value if isinstance(value, Decimal) else Decimal(value)


def normalize_quantity(value) -> Decimal:
    """
    Coerce caller input to a finite Decimal with at most nine decimal places.

    Accepts Decimal, int or a numeric string.  Raises ValueError for floats,
    non-numeric strings, NaN/Infinity and excess precision; callers translate
    that into a ValidationError naming the field.
    """
    if isinstance(value, (bool, float)):
        raise ValueError(
            f"Quantity must be Decimal, int or str, got {type(value).__name__}"
        )
    try:
        quantity = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not quantity.is_finite():
        raise ValueError(f"Quantity must be finite, got {value!r}")
    exponent = quantity.as_tuple().exponent
    if -exponent > QUANTITY_DECIMAL_PLACES:
        raise ValueError(
            f"Quantity {value!r} exceeds {QUANTITY_DECIMAL_PLACES} decimal places"
        )
    return quantity
