"""Tests for the Catalog."""

import json

import pytest

from slotbook.core.scheduling.catalog import Catalog, Provider, Service


class TestCatalog:
    """Test provider and service lookup."""

    @pytest.mark.parametrize("choice", ["2", " richard ", "RICHARD"])
    def test_find_provider(self, catalog, choice):
        assert catalog.find_provider(choice).name == "Richard"

    @pytest.mark.parametrize("choice", ["0", "4", "rich", "", "\u00b2"])
    def test_find_provider_misses(self, catalog, choice):
        assert catalog.find_provider(choice) is None

    def test_provider_by_name(self, catalog):
        assert catalog.provider_by_name("murilo").name == "Murilo"
        assert catalog.provider_by_name("3") is None

    def test_service_by_code(self, catalog):
        assert catalog.service_by_code("1").name == "Classic Cut"
        assert catalog.service_by_code("10").name == "Eyebrows"
        assert catalog.service_by_code("p") is catalog.bundle
        assert catalog.service_by_code("Bundle") is catalog.bundle
        assert catalog.service_by_code("12") is None

    def test_exclusive_and_addon_split(self, catalog):
        assert len(catalog.exclusive_services) == 5
        assert all(not s.exclusive for s in catalog.addon_services)
        assert catalog.bundle.exclusive

    def test_time_slots_are_ordered(self, catalog):
        assert catalog.time_slots == sorted(catalog.time_slots)
        assert catalog.time_slots[0] == "08:00"
        assert catalog.time_slots[-1] == "19:00"


class TestCatalogLoading:
    """Test loading from config."""

    def test_from_dict(self):
        catalog = Catalog.from_dict({
            "providers": [
                {"name": "Ana", "calendar_id": "ana@example.com", "admin_contact": "ana-admin"},
            ],
            "services": [
                {"id": "cut", "name": "Cut", "price": 20, "menu_code": 1, "exclusive": True},
                {"id": "wash", "name": "Wash", "price": "5.5", "menu_code": "2"},
            ],
            "time_slots": ["14:00", "09:00"],
            "bundle": None,
        })

        assert catalog.providers == [Provider("Ana", "ana@example.com", "ana-admin")]
        assert catalog.services[0] == Service("cut", "Cut", 20.0, "1", exclusive=True)
        assert catalog.services[1].price == 5.5
        assert catalog.time_slots == ["09:00", "14:00"]
        assert catalog.bundle is None
        assert catalog.service_by_code("P") is None

    def test_from_dict_keeps_defaults(self):
        catalog = Catalog.from_dict({"time_slots": ["10:00"]})

        assert [p.name for p in catalog.providers] == ["Alexander", "Richard", "Murilo"]
        assert catalog.bundle is not None

    def test_from_file(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(
            json.dumps({"bundle": {"id": "combo", "name": "Combo", "price": 40, "menu_code": "C"}}),
            encoding="utf-8",
        )

        catalog = Catalog.from_file(str(path))

        assert catalog.bundle.id == "combo"
        assert catalog.bundle.exclusive
        assert catalog.service_by_code("c") is catalog.bundle
