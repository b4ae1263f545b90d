"""Map raw catalog items to canonical part records."""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from parts_scraper import metrics
from parts_scraper.normalize.records import (
    CanonicalRecord,
    CompatibilityEntry,
    Condition,
    ImageRef,
    Passthrough,
)

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "lkq"
DEFAULT_PARTS_URL = "https://www.lkqonline.com/parts"

IN_STOCK_AVAILABILITY = {"availableLocal", "availableShip"}

# Keys consumed by typed fields; everything else lands in other_params
EXPLICIT_FIELDS = {
    "number", "id", "descriptionRetail", "description", "price",
    "sourceVehicleMake", "category", "availability", "ftcDisplay",
    "interchange", "sourceVehicleYear", "sourceVehicleModel",
    "mileage", "location", "yardCity", "yardState", "catalog",
    "isReman", "images", "pricing", "_salvageSourceVehicle", "fitmentJson",
}


class MappingError(Exception):
    """Raised when an item cannot be mapped to a full record."""

    pass


def safe_parse_json(value: Any, default: Any) -> Any:
    """Parse an embedded JSON string; anything unparseable yields ``default``."""
    if isinstance(value, (dict, list)):
        return value
    if not isinstance(value, str) or not value.strip():
        return default
    try:
        return json.loads(value)
    except (ValueError, TypeError) as e:
        logger.warning(f"Failed to parse embedded JSON: {e}")
        return default


def parse_price(value: Any) -> Decimal:
    """Decimal price from a number or a display string like ``$1,234.50`` (0 when invalid)."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    text = str(value).replace("$", "").replace(",", "").strip()
    if not text:
        return Decimal("0")
    try:
        price = Decimal(text)
    except InvalidOperation:
        return Decimal("0")
    return price if price.is_finite() else Decimal("0")


def parse_year(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _segment(path: Any, index: int) -> str:
    parts = _text(path).split("|")
    return parts[index] if len(parts) > index else ""


def _extract_specifications(description: str) -> dict[str, str]:
    specifications = {}
    for part in description.split(","):
        tokens = part.strip().split(" ")
        if len(tokens) >= 2 and tokens[0] and tokens[1]:
            specifications[tokens[0]] = tokens[1]
    return specifications


def _extract_price(item: dict) -> Decimal:
    if item.get("price") is not None:
        return parse_price(item["price"])
    pricing = item.get("pricing")
    if isinstance(pricing, list) and pricing and isinstance(pricing[0], dict):
        return parse_price(pricing[0].get("customerPrice"))
    return Decimal("0")


def _build_record(item: dict, source: str, parts_url: str) -> CanonicalRecord:
    source_vehicle = safe_parse_json(item.get("_salvageSourceVehicle"), {})
    if not isinstance(source_vehicle, dict):
        source_vehicle = {}

    fitments = safe_parse_json(item.get("fitmentJson"), [])
    if not isinstance(fitments, list):
        fitments = []

    compatibility = [
        CompatibilityEntry(
            make=_text(f.get("SystemMake")),
            model=_text(f.get("SystemModel")),
            year=parse_year(f.get("SystemYear")),
            trim="",
        )
        for f in fitments
        if isinstance(f, dict)
    ]

    raw_images = item.get("images") or []
    if not isinstance(raw_images, list):
        raise MappingError(f"images must be a list, got {type(raw_images).__name__}")

    description = _text(item.get("description"))
    images = [
        ImageRef(url=_text(image.get("url")), alt=_text(image.get("description")) or description)
        for image in raw_images
        if isinstance(image, dict)
    ]
    vehicle_images = source_vehicle.get("SourceVehicleImages")
    if isinstance(vehicle_images, list):
        alt = (
            f"Source Vehicle - {_text(source_vehicle.get('Year'))} "
            f"{_text(source_vehicle.get('Make'))} {_text(source_vehicle.get('Model'))}"
        )
        images.extend(ImageRef(url=_text(url), alt=alt) for url in vehicle_images)

    other_params = {
        key: Passthrough(value)
        for key, value in item.items()
        if key not in EXPLICIT_FIELDS
    }

    catalog = item.get("catalog") if isinstance(item.get("catalog"), dict) else {}
    part_number = _text(item.get("number") or item.get("id"))
    in_stock = item.get("availability") in IN_STOCK_AVAILABILITY

    return CanonicalRecord(
        part_number=part_number,
        name=_text(item.get("descriptionRetail") or description),
        description=description,
        price=_extract_price(item),
        currency="USD",
        manufacturer=_text(source_vehicle.get("Make") or item.get("sourceVehicleMake")),
        category=_segment(item.get("category"), 1),
        subcategory=_segment(item.get("category"), 2),
        compatibility=compatibility,
        images=images,
        specifications=_extract_specifications(description),
        source=source,
        source_url=f"{parts_url.rstrip('/')}/{part_number}",
        in_stock=in_stock,
        quantity=1 if in_stock else 0,
        condition=Condition.from_display(item.get("ftcDisplay")),
        metadata={
            "originalId": _text(item.get("id")),
            "interchange": _text(item.get("interchange")),
            "sourceVehicleYear": item.get("sourceVehicleYear") or source_vehicle.get("Year") or "",
            "sourceVehicleMake": item.get("sourceVehicleMake") or source_vehicle.get("Make") or "",
            "sourceVehicleModel": item.get("sourceVehicleModel") or source_vehicle.get("Model") or "",
            "mileage": item.get("mileage") or source_vehicle.get("Mileage") or 0,
            "location": _text(item.get("location")),
            "yardCity": _text(item.get("yardCity")),
            "yardState": _text(item.get("yardState")),
            "catalogId": catalog.get("id", 0),
            "catalogName": _text(catalog.get("name")),
            "isReman": bool(item.get("isReman")),
        },
        other_params=other_params,
    )


def _minimal_record(item: Any, error: Exception, source: str) -> CanonicalRecord:
    raw = item if isinstance(item, dict) else {}
    try:
        raw_data = json.dumps(item, default=str)
    except (TypeError, ValueError):
        raw_data = repr(item)
    return CanonicalRecord(
        part_number=_text(raw.get("number") or raw.get("id")) or "unknown",
        name=_text(raw.get("descriptionRetail") or raw.get("description")) or "Unknown part",
        source=source,
        other_params={
            "rawData": Passthrough(raw_data),
            "mappingError": Passthrough(str(error)),
        },
    )


def map_to_canonical(
    item: Any,
    source: str = DEFAULT_SOURCE,
    parts_url: str = DEFAULT_PARTS_URL,
) -> CanonicalRecord | None:
    """
    Map one raw item to a canonical record.

    Does not modify ``item``. Malformed embedded JSON degrades to empty
    collections; any other failure degrades to a minimal record carrying the
    raw item and the error message.

    Returns:
        CanonicalRecord, or None for an empty item
    """
    if not item:
        logger.warning("Empty product data received in mapper")
        return None

    try:
        if not isinstance(item, dict):
            raise MappingError(f"Expected an object, got {type(item).__name__}")
        return _build_record(item, source, parts_url)
    except Exception as e:
        logger.error(f"Error mapping product to part: {e}")
        return _minimal_record(item, e, source)


def map_items(
    items: Iterable[Any],
    source: str = DEFAULT_SOURCE,
    parts_url: str = DEFAULT_PARTS_URL,
) -> list[CanonicalRecord]:
    """Map a batch of raw items, dropping empty ones."""
    items = list(items or [])
    records = []
    for item in items:
        record = map_to_canonical(item, source, parts_url)
        if record is None:
            metrics.records_mapped_total.labels(status="skipped").inc()
            continue
        status = "degraded" if "mappingError" in record.other_params else "mapped"
        metrics.records_mapped_total.labels(status=status).inc()
        records.append(record)

    logger.info(f"Mapped {len(records)} out of {len(items)} products to parts")
    return records
