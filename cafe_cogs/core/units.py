"""Unit conversion for raw-material quantities.

Units form a closed set grouped into three dimensions. Each unit carries a
factor relative to the smallest unit of its dimension:

    mass:   kg = 1000, g = 1
    volume: liter = 1000, ml = 1
    count:  piece = box = bag = 1

Count units carry no packaging multiplier ("1 box = 24 pieces" is not
modelled), so converting between count kinds is the identity.

Conversion only happens inside a dimension. Anything else raises
``IncompatibleUnitsError`` and callers treat it as a hard stop.
"""

from decimal import Decimal
from enum import Enum
from typing import List, Union

from cafe_cogs.core.exceptions import ValidationError


class UnknownUnitError(ValidationError):
    """Raised when a unit string is not part of the supported set."""

    def __init__(self, unit: str):
        self.unit = unit
        super().__init__(f"Unit '{unit}' is not supported")


class IncompatibleUnitsError(ValidationError):
    """Raised when converting between units of different dimensions."""

    def __init__(self, from_unit: "Unit", to_unit: "Unit"):
        self.from_unit = from_unit
        self.to_unit = to_unit
        super().__init__(
            f"Cannot convert '{from_unit.value}' ({from_unit.dimension.value}) "
            f"to '{to_unit.value}' ({to_unit.dimension.value})"
        )


class Dimension(str, Enum):
    """Physical measurement category."""

    MASS = "mass"
    VOLUME = "volume"
    COUNT = "count"


class Unit(str, Enum):
    """Supported units of measure."""

    KG = "kg"
    G = "g"
    LITER = "liter"
    ML = "ml"
    PIECE = "piece"
    BOX = "box"
    BAG = "bag"

    @property
    def dimension(self) -> Dimension:
        return _UNIT_TABLE[self][0]

    @property
    def factor(self) -> Decimal:
        return _UNIT_TABLE[self][1]

    @classmethod
    def parse(cls, value: Union["Unit", str]) -> "Unit":
        """Resolve a unit from its value or a common alias, case-insensitively."""
        if isinstance(value, Unit):
            return value
        key = str(value).strip().lower()
        try:
            return cls(key)
        except ValueError:
            pass
        if key in _ALIASES:
            return _ALIASES[key]
        raise UnknownUnitError(str(value))


_UNIT_TABLE = {
    Unit.KG: (Dimension.MASS, Decimal("1000")),
    Unit.G: (Dimension.MASS, Decimal("1")),
    Unit.LITER: (Dimension.VOLUME, Decimal("1000")),
    Unit.ML: (Dimension.VOLUME, Decimal("1")),
    Unit.PIECE: (Dimension.COUNT, Decimal("1")),
    Unit.BOX: (Dimension.COUNT, Decimal("1")),
    Unit.BAG: (Dimension.COUNT, Decimal("1")),
}

_ALIASES = {
    "kilogram": Unit.KG,
    "kilograms": Unit.KG,
    "gram": Unit.G,
    "grams": Unit.G,
    "gr": Unit.G,
    "l": Unit.LITER,
    "litre": Unit.LITER,
    "liters": Unit.LITER,
    "litres": Unit.LITER,
    "milliliter": Unit.ML,
    "millilitre": Unit.ML,
    "pcs": Unit.PIECE,
    "pc": Unit.PIECE,
    "pieces": Unit.PIECE,
    "ea": Unit.PIECE,
    "boxes": Unit.BOX,
    "bags": Unit.BAG,
}

# Every unit must have a table entry.
assert set(_UNIT_TABLE) == set(Unit)


def to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """Convert a numeric value to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def normalize(
    quantity: Union[Decimal, int, float, str],
    from_unit: Union[Unit, str],
    to_unit: Union[Unit, str],
) -> Decimal:
    """Convert ``quantity`` expressed in ``from_unit`` into ``to_unit``.

    Raises:
        UnknownUnitError: either unit is not supported.
        IncompatibleUnitsError: the units belong to different dimensions.
    """
    source = Unit.parse(from_unit)
    target = Unit.parse(to_unit)
    qty = to_decimal(quantity)

    if source is target:
        return qty
    if source.dimension is not target.dimension:
        raise IncompatibleUnitsError(source, target)

    return qty * source.factor / target.factor


def get_compatible_units(unit: Union[Unit, str]) -> List[Unit]:
    """All units sharing ``unit``'s dimension, in declaration order."""
    dimension = Unit.parse(unit).dimension
    return [u for u in Unit if u.dimension is dimension]


def is_compatible(a: Union[Unit, str], b: Union[Unit, str]) -> bool:
    return Unit.parse(a).dimension is Unit.parse(b).dimension


def quantize(quantity: Decimal, scale: int) -> Decimal:
    """Round a quantity to ``scale`` decimal places for storage."""
    return quantity.quantize(Decimal(1).scaleb(-scale))
