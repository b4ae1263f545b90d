"""Canonical part records produced by the mapper."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class Condition(str, Enum):
    NEW = "new"
    USED = "used"
    REFURBISHED = "refurbished"
    UNKNOWN = "unknown"

    @classmethod
    def from_display(cls, value: Any) -> "Condition":
        """Map the catalog's display label (``Used``, ``New``, ...) to a condition."""
        labels = {"Used": cls.USED, "New": cls.NEW, "Refurbished": cls.REFURBISHED}
        return labels.get(value, cls.UNKNOWN) if isinstance(value, str) else cls.UNKNOWN


@dataclass
class CompatibilityEntry:
    """One vehicle the part fits."""

    make: str = ""
    model: str = ""
    year: int = 0
    trim: str = ""


@dataclass
class ImageRef:
    url: str = ""
    alt: str = ""


@dataclass(frozen=True)
class Passthrough:
    """Opaque upstream value kept as-is alongside the typed fields."""

    value: Any

    @property
    def kind(self) -> str:
        if isinstance(self.value, dict):
            return "object"
        if isinstance(self.value, list):
            return "array"
        if self.value is None:
            return "null"
        return type(self.value).__name__


@dataclass
class CanonicalRecord:
    """Normalized part listing, keyed by (part_number, source)."""

    part_number: str
    name: str
    source: str
    description: str = ""
    price: Decimal = Decimal("0")
    currency: str = "USD"
    manufacturer: str = ""
    category: str = ""
    subcategory: str = ""
    compatibility: list[CompatibilityEntry] = field(default_factory=list)
    images: list[ImageRef] = field(default_factory=list)
    specifications: dict[str, str] = field(default_factory=dict)
    source_url: str = ""
    in_stock: bool = False
    quantity: int = 0
    condition: Condition = Condition.UNKNOWN
    metadata: dict[str, Any] = field(default_factory=dict)
    other_params: dict[str, Passthrough] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.part_number, self.source)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the external camelCase field names."""
        return {
            "partNumber": self.part_number,
            "name": self.name,
            "description": self.description,
            "price": float(self.price),
            "currency": self.currency,
            "manufacturer": self.manufacturer,
            "category": self.category,
            "subcategory": self.subcategory,
            "compatibility": [
                {"make": c.make, "model": c.model, "year": c.year, "trim": c.trim}
                for c in self.compatibility
            ],
            "images": [{"url": i.url, "alt": i.alt} for i in self.images],
            "specifications": dict(self.specifications),
            "source": self.source,
            "sourceUrl": self.source_url,
            "inStock": self.in_stock,
            "quantity": self.quantity,
            "condition": self.condition.value,
            "metadata": dict(self.metadata),
            "otherParams": {k: v.value for k, v in self.other_params.items()},
        }
