"""Tests for mapping raw catalog items to canonical records."""

import copy
import json
from decimal import Decimal

from parts_scraper.normalize.mapper import (
    map_items,
    map_to_canonical,
    parse_price,
    parse_year,
    safe_parse_json,
)
from parts_scraper.normalize.records import Condition, Passthrough


def full_item():
    return {
        "id": 987654,
        "number": "ALT-123",
        "descriptionRetail": "Alternator, 2015 Ford F-150",
        "description": "Amps 150, Voltage 12V",
        "price": "$1,234.50",
        "category": "Engine Compartment|Alternator|Gas",
        "availability": "availableShip",
        "ftcDisplay": "Used",
        "interchange": "601-01234",
        "mileage": 84000,
        "location": "Yard 12",
        "yardCity": "Dallas",
        "yardState": "TX",
        "catalog": {"id": 4, "name": "Salvage"},
        "isReman": False,
        "images": [{"url": "https://img.test/1.jpg", "description": "Front"}, {"url": "https://img.test/2.jpg"}],
        "fitmentJson": json.dumps([
            {"SystemMake": "Ford", "SystemModel": "F-150", "SystemYear": "2015"},
            {"SystemMake": "Ford", "SystemModel": "F-150", "SystemYear": 2016},
        ]),
        "_salvageSourceVehicle": json.dumps({
            "Year": 2015,
            "Make": "Ford",
            "Model": "F-150",
            "SourceVehicleImages": ["https://img.test/v1.jpg"],
        }),
        "warehouseCode": "DFW",
        "details": {"warranty": "90 days"},
    }


def test_maps_full_item():
    record = map_to_canonical(full_item())

    assert record.part_number == "ALT-123"
    assert record.name == "Alternator, 2015 Ford F-150"
    assert record.price == Decimal("1234.50")
    assert record.currency == "USD"
    assert record.manufacturer == "Ford"
    assert record.category == "Alternator"
    assert record.subcategory == "Gas"
    assert record.in_stock is True
    assert record.quantity == 1
    assert record.condition == Condition.USED
    assert record.source == "lkq"
    assert record.source_url == "https://www.lkqonline.com/parts/ALT-123"
    assert [(c.make, c.model, c.year, c.trim) for c in record.compatibility] == [
        ("Ford", "F-150", 2015, ""),
        ("Ford", "F-150", 2016, ""),
    ]
    assert [(i.url, i.alt) for i in record.images] == [
        ("https://img.test/1.jpg", "Front"),
        ("https://img.test/2.jpg", "Amps 150, Voltage 12V"),
        ("https://img.test/v1.jpg", "Source Vehicle - 2015 Ford F-150"),
    ]
    assert record.specifications == {"Amps": "150", "Voltage": "12V"}
    assert record.metadata["originalId"] == "987654"
    assert record.metadata["catalogId"] == 4
    assert record.metadata["catalogName"] == "Salvage"
    assert record.metadata["yardState"] == "TX"
    assert record.other_params == {
        "warehouseCode": Passthrough("DFW"),
        "details": Passthrough({"warranty": "90 days"}),
    }


def test_all_absent_fields_get_defaults():
    record = map_to_canonical({"id": 5})

    assert record.part_number == "5"
    assert record.price == Decimal("0")
    assert record.currency == "USD"
    assert record.condition == Condition.UNKNOWN
    assert record.in_stock is False
    assert record.quantity == 0
    assert record.compatibility == []
    assert record.images == []
    assert record.category == ""
    assert record.subcategory == ""

    data = record.to_dict()
    assert data["price"] == 0
    assert data["condition"] == "unknown"
    assert data["inStock"] is False


def test_malformed_embedded_json_degrades_to_empty():
    item = {
        "number": "X-1",
        "fitmentJson": "{not valid json",
        "_salvageSourceVehicle": "also [broken",
        "sourceVehicleMake": "Honda",
    }

    record = map_to_canonical(item)

    assert record.compatibility == []
    assert record.images == []
    assert record.manufacturer == "Honda"
    assert "mappingError" not in record.other_params


def test_price_falls_back_to_pricing():
    record = map_to_canonical({"number": "P-1", "pricing": [{"customerPrice": 42.5}]})
    assert record.price == Decimal("42.5")


def test_mapping_is_pure_and_deterministic():
    item = full_item()
    original = copy.deepcopy(item)

    first = map_to_canonical(item)
    second = map_to_canonical(item)

    assert item == original
    assert first == second


def test_empty_item_returns_none():
    assert map_to_canonical(None) is None
    assert map_to_canonical({}) is None


def test_unexpected_shape_returns_minimal_record():
    record = map_to_canonical({"number": "BAD-1", "description": "Odd", "images": "not-a-list"})

    assert record.part_number == "BAD-1"
    assert record.name == "Odd"
    assert record.source == "lkq"
    assert "mappingError" in record.other_params
    assert json.loads(record.other_params["rawData"].value)["number"] == "BAD-1"


def test_non_dict_item_returns_minimal_record():
    record = map_to_canonical(["not", "an", "object"])

    assert record.part_number == "unknown"
    assert record.name == "Unknown part"
    assert "mappingError" in record.other_params


def test_map_items_filters_empty():
    records = map_items([{"id": 1}, None, {}, {"id": 2}], source="lkq")
    assert [r.part_number for r in records] == ["1", "2"]


def test_condition_labels():
    assert map_to_canonical({"id": 1, "ftcDisplay": "New"}).condition == Condition.NEW
    assert map_to_canonical({"id": 1, "ftcDisplay": "Refurbished"}).condition == Condition.REFURBISHED
    assert map_to_canonical({"id": 1, "ftcDisplay": "Scratch and dent"}).condition == Condition.UNKNOWN


def test_to_dict_uses_external_names():
    data = map_to_canonical(full_item()).to_dict()

    assert data["partNumber"] == "ALT-123"
    assert data["sourceUrl"].endswith("/ALT-123")
    assert data["otherParams"]["details"] == {"warranty": "90 days"}
    assert data["compatibility"][0] == {"make": "Ford", "model": "F-150", "year": 2015, "trim": ""}


def test_helpers():
    assert safe_parse_json('{"a": 1}', {}) == {"a": 1}
    assert safe_parse_json("", []) == []
    assert safe_parse_json(None, {}) == {}
    assert parse_price("abc") == Decimal("0")
    assert parse_price(19.99) == Decimal("19.99")
    assert parse_year("2015") == 2015
    assert parse_year("n/a") == 0
    assert parse_year(None) == 0


def test_non_finite_fitment_year_becomes_zero():
    item = {
        "number": "Y-1",
        "description": "ALTERNATOR",
        "price": "$80.00",
        "fitmentJson": '[{"SystemMake":"Ford","SystemModel":"F150","SystemYear":Infinity}]',
    }

    record = map_to_canonical(item)

    assert "mappingError" not in record.other_params
    assert record.compatibility[0].make == "Ford"
    assert record.compatibility[0].year == 0
    assert record.description == "ALTERNATOR"
    assert record.price == Decimal("80.00")
    assert parse_year(float("inf")) == 0
    assert parse_year(float("nan")) == 0
