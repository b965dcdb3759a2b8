"""
Tests for portables.framework.registry module.

Tests cover:
- Service registration via decorator
- Case-insensitive duplicate detection
- Discovery instantiates every registered type and skips broken ones
- Entry point loading
- Registry clearing (for test isolation)
"""

from unittest.mock import MagicMock, patch

import pytest

from portables.core.errors import ServiceRegistrationError
from portables.framework.registry import (
    clear_registry,
    discover_services,
    list_service_types,
    load_entry_points,
    register_service,
    register_service_type,
)
from portables.framework.services import PortableService


class _Base(PortableService):
    def export_data(self, job, request):
        pass

    def import_data(self, job, exported_request):
        pass


class TestRegisterService:
    """Tests for the register_service decorator."""

    def test_register_basic(self):
        @register_service
        class Users(_Base):
            category = "Users"

        assert list_service_types() == [Users]

    def test_decorator_returns_class(self):
        @register_service
        class Roles(_Base):
            category = "Roles"
            custom_attr = "value"

        assert Roles.custom_attr == "value"

    def test_duplicate_category_case_insensitive(self):
        @register_service
        class First(_Base):
            category = "Pages"

        with pytest.raises(ServiceRegistrationError, match="already registered"):

            @register_service
            class Second(_Base):
                category = "pages"

    def test_reregistering_same_class_is_noop(self):
        class Assets(_Base):
            category = "Assets"

        register_service_type(Assets)
        register_service_type(Assets)
        assert list_service_types() == [Assets]

    def test_missing_category_rejected(self):
        with pytest.raises(ServiceRegistrationError, match="does not declare a category"):

            @register_service
            class Nameless(_Base):
                pass

    def test_registration_order_preserved(self):
        for name in ("C", "A", "B"):
            register_service_type(type(name, (_Base,), {"category": name}))
        assert [t.category for t in list_service_types()] == ["C", "A", "B"]


class TestDiscoverServices:
    def test_fresh_instances_each_call(self):
        @register_service
        class Users(_Base):
            category = "Users"

        first = list(discover_services())
        second = list(discover_services())
        assert len(first) == 1
        assert isinstance(first[0], Users)
        assert first[0] is not second[0]

    def test_construction_failure_skipped(self):
        @register_service
        class Broken(_Base):
            category = "Broken"

            def __init__(self):
                raise RuntimeError("no database")

        @register_service
        class Working(_Base):
            category = "Working"

        found = list(discover_services())
        assert [s.category for s in found] == ["Working"]

    def test_is_lazy(self):
        @register_service
        class Users(_Base):
            category = "Users"

        gen = discover_services()
        clear_registry()
        # list_service_types was not consulted before the first next()
        assert list(gen) == []


class TestLoadEntryPoints:
    def _ep(self, name, target=None, error=None):
        ep = MagicMock()
        ep.name = name
        if error is not None:
            ep.load.side_effect = error
        else:
            ep.load.return_value = target
        return ep

    def test_class_entry_point_registered(self):
        class Plugin(_Base):
            category = "Plugin"

        with patch(
            "portables.framework.registry.entry_points",
            return_value=[self._ep("plugin", Plugin)],
        ):
            assert load_entry_points() == 1
        assert list_service_types() == [Plugin]

    def test_module_entry_point_counts(self):
        module = MagicMock()
        with patch(
            "portables.framework.registry.entry_points",
            return_value=[self._ep("mod", module)],
        ):
            assert load_entry_points() == 1
        assert list_service_types() == []

    def test_broken_entry_point_skipped(self):
        class Good(_Base):
            category = "Good"

        with patch(
            "portables.framework.registry.entry_points",
            return_value=[self._ep("bad", error=ImportError("missing")), self._ep("good", Good)],
        ):
            assert load_entry_points() == 1
        assert list_service_types() == [Good]


class TestClearRegistry:
    def test_clear(self):
        register_service_type(type("X", (_Base,), {"category": "X"}))
        clear_registry()
        assert list_service_types() == []
