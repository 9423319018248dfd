"""Tests for OverrideRegistry rewrite, dispatch and teardown."""

import sys
import threading

import pytest
import slotmock
from slotmock.base import SlotmockMeta
from slotmock.errors import SlotResolutionError
from slotmock.runtime.override_list import always
from slotmock.runtime.redirect_builder import is_redirect
from slotmock.runtime.registry import OverrideRegistry
from slotmock.session import MockSession


class Thermostat(slotmock.Object):
    target: int

    def read(self) -> int:
        return self.target

    def describe(self, unit: str = "C") -> str:
        return f"{self.target}{unit}"

    def reset(self) -> None:
        self.target = 20

    @classmethod
    def default(cls):
        return cls(target=21)

    @staticmethod
    def units() -> list:
        return ["C", "F"]


class Radiator(Thermostat):
    def heat(self) -> str:
        return "warm"


class Fan(slotmock.Object):
    def blow(self) -> str:
        return "whoosh"


class CeilingFan(Fan):
    def blow(self) -> str:
        return super().blow() + "!"


WIDGET_SOURCE = (
    "import slotmock\n"
    "class RegWidget(slotmock.Object):\n"
    "    name: str\n"
    "    def label(self) -> str:\n"
    "        return 'widget:' + self.name\n"
)


def _const(value):
    return lambda *args, **kwargs: value


@pytest.fixture
def registry():
    reg = OverrideRegistry(SlotmockMeta.catalog)
    yield reg
    reg.tear_down()


class TestRequestMock:

    def test_replacement_runs(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(99))
        assert Thermostat(target=5).read() == 99

    def test_existing_instances_are_intercepted(self, registry):
        thermostat = Thermostat(target=5)
        registry.request_mock("Thermostat", "read", always, _const(99))
        assert thermostat.read() == 99

    def test_replacement_receives_receiver_and_arguments(self, registry):
        seen = []

        def replacement(self, unit="C"):
            seen.append((self, unit))
            return "replaced"

        thermostat = Thermostat(target=5)
        registry.request_mock("Thermostat", "describe", always, replacement)
        assert thermostat.describe("F") == "replaced"
        assert seen == [(thermostat, "F")]

    def test_unmocked_methods_are_transparent(self, registry):
        registry.request_mock("Thermostat", "describe", always, _const("x"))
        thermostat = Thermostat(target=5)
        assert is_redirect(Thermostat.__dict__["read"])
        assert thermostat.read() == 5
        thermostat.reset()
        assert thermostat.target == 20
        assert Thermostat.units() == ["C", "F"]
        assert Thermostat.default().target == 21

    def test_fallback_sees_parameters_and_receiver(self, registry):
        registry.request_mock(
            "Thermostat", "describe", lambda self, unit="C": unit == "K", _const("kelvin"),
        )
        thermostat = Thermostat(target=7)
        assert thermostat.describe("K") == "kelvin"
        assert thermostat.describe("F") == "7F"
        assert thermostat.describe() == "7C"

    def test_classmethod_and_staticmethod(self, registry):
        registry.request_mock("Thermostat", "default", always, lambda cls: cls(target=0))
        registry.request_mock("Thermostat", "units", always, _const(["K"]))
        assert Thermostat.default().target == 0
        assert Thermostat.units() == ["K"]
        assert Thermostat(target=1).units() == ["K"]

    def test_last_registered_wins(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(1))
        registry.request_mock("Thermostat", "read", lambda self: self.target > 10, _const(2))
        registry.request_mock("Thermostat", "read", lambda self: self.target > 50, _const(3))
        assert Thermostat(target=100).read() == 3
        assert Thermostat(target=20).read() == 2
        assert Thermostat(target=0).read() == 1

    def test_subclass_instances_use_base_override(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(-1))
        radiator = Radiator(target=3)
        assert radiator.read() == -1
        assert radiator.heat() == "warm"

    def test_super_still_works_in_original(self, registry):
        registry.request_mock("CeilingFan", "blow", lambda self: False, _const(None))
        assert CeilingFan().blow() == "whoosh!"

    def test_unknown_type_is_watched(self, registry):
        registry.request_mock("RegNeverDefined", "run", always, _const(0))
        assert registry.is_watched("RegNeverDefined")
        assert not registry.is_initialized("RegNeverDefined")

    def test_loaded_type_is_initialized(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(0))
        assert registry.is_initialized("Thermostat")
        assert not registry.is_watched("Thermostat")
        assert registry.is_type_initialized(Thermostat)

    def test_predicate_errors_propagate(self, registry):
        def broken(self):
            raise KeyError("predicate")

        registry.request_mock("Thermostat", "read", broken, _const(0))
        with pytest.raises(KeyError):
            Thermostat(target=1).read()


class TestRewrite:

    def test_rewrite_is_idempotent(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(1))
        count = registry.rewritten_count
        original = registry.original(Thermostat, "read")

        assert registry._rewrite_type(Thermostat) == 0
        registry.request_mock("Thermostat", "read", always, _const(2))

        assert registry.rewritten_count == count
        assert registry.original(Thermostat, "read") is original
        assert not is_redirect(original)

    def test_each_class_rewrites_only_its_own_slots(self, registry):
        registry.request_mock("Radiator", "heat", always, _const("cold"))
        assert is_redirect(Radiator.__dict__["heat"])
        assert not is_redirect(Thermostat.__dict__["read"])
        assert Radiator(target=1).heat() == "cold"

    def test_reserved_types_are_ignored(self, registry):
        registry.request_mock("MockSession", "close", always, _const(None))
        assert not is_redirect(MockSession.__dict__.get("close"))
        registry.notify_type_loaded(MockSession)
        assert not registry.is_type_initialized(MockSession)


class TestNotifyTypeLoaded:

    def test_watched_type_is_rewritten_on_load(self, registry, module_manager):
        registry.request_mock("RegWidget", "label", always, _const("mocked"))
        widget_cls = module_manager.patch_module("reg_pkg.watched", WIDGET_SOURCE).RegWidget
        assert widget_cls(name="a").label() == "widget:a"

        registry.notify_type_loaded(widget_cls)
        assert widget_cls(name="a").label() == "mocked"
        assert not registry.is_watched("RegWidget")
        assert registry.is_initialized("RegWidget")

    def test_new_version_of_initialized_type_is_rewritten(self, registry, module_manager):
        old_cls = module_manager.patch_module("reg_pkg.versions", WIDGET_SOURCE).RegWidget
        old_widget = old_cls(name="old")
        registry.request_mock("RegWidget", "label", always, _const("mocked"))

        new_cls = module_manager.patch_module("reg_pkg.versions", WIDGET_SOURCE).RegWidget
        registry.notify_type_loaded(new_cls)

        assert new_cls is not old_cls
        assert old_widget.label() == "mocked"
        assert new_cls(name="new").label() == "mocked"

    def test_untargeted_type_is_ignored(self, registry, module_manager):
        cls = module_manager.patch_module("reg_pkg.ignored", WIDGET_SOURCE).RegWidget
        registry.notify_type_loaded(cls)
        assert not registry.is_type_initialized(cls)
        assert not is_redirect(cls.__dict__["label"])


PUMP_DECL = (
    "import slotmock\n"
    "class {name}(slotmock.Object):\n"
    "    def prime(self) -> str: ...\n"
)

PUMP_IMPL = (
    "import slotmock\n"
    "from reg_pkg.{module}_decl import {name}\n"
    "@slotmock.impl({name}.prime)\n"
    "def prime(self) -> str:\n"
    "    return 'impl'\n"
)


def _load_pump(module_manager, name):
    module = name.lower()
    mod = module_manager.patch_module(f"reg_pkg.{module}_decl", PUMP_DECL.format(name=name))
    return getattr(mod, name)


def _load_pump_impl(module_manager, name):
    module = name.lower()
    module_manager.patch_module(
        f"reg_pkg.{module}_impl", PUMP_IMPL.format(name=name, module=module),
    )


GAUGE_V1 = (
    "import slotmock\n"
    "class RegGauge(slotmock.Object):\n"
    "    def size(self, x):\n"
    "        return x\n"
)

GAUGE_V2 = (
    "import slotmock\n"
    "\n"
    "\n"
    "class RegGauge(slotmock.Object):\n"
    "    def size(self, x, y=2):\n"
    "        return x * y\n"
)


class TestRescan:

    def test_stub_filled_after_mock_is_rewritten(self, registry, module_manager):
        pump_cls = _load_pump(module_manager, "RegPumpLate")
        registry.request_mock("RegPumpLate", "prime", always, _const("mocked"))
        assert registry.rewritten_count == 0

        _load_pump_impl(module_manager, "RegPumpLate")
        assert pump_cls().prime() == "impl"

        assert registry.rescan() == 1
        assert pump_cls().prime() == "mocked"
        assert registry.rescan() == 0

    def test_request_mock_rechecks_processed_types(self, registry, module_manager):
        pump_cls = _load_pump(module_manager, "RegPumpAgain")
        registry.request_mock("RegPumpAgain", "prime", always, _const("first"))
        _load_pump_impl(module_manager, "RegPumpAgain")

        registry.request_mock("RegPumpAgain", "prime", lambda self: False, _const("never"))
        assert pump_cls().prime() == "first"

    def test_teardown_restores_filled_implementation(self, registry, module_manager):
        pump_cls = _load_pump(module_manager, "RegPumpRestore")
        registry.request_mock("RegPumpRestore", "prime", always, _const("mocked"))
        _load_pump_impl(module_manager, "RegPumpRestore")
        registry.rescan()

        registry.tear_down()
        assert pump_cls().prime() == "impl"


class TestDifferingVersions:

    def test_mock_after_both_versions_loaded(self, registry, module_manager):
        old_cls = module_manager.patch_module("reg_pkg.gauge", GAUGE_V1).RegGauge
        old = old_cls()
        new_cls = module_manager.patch_module("reg_pkg.gauge", GAUGE_V2).RegGauge

        registry.request_mock("RegGauge", "size", always, _const("mocked"))
        assert is_redirect(old_cls.__dict__["size"])
        assert old.size(1) == "mocked"
        assert new_cls().size(1) == "mocked"

    def test_old_version_keeps_its_own_signature(self, registry, module_manager):
        old_cls = module_manager.patch_module("reg_pkg.gauge_sig", GAUGE_V1).RegGauge
        old = old_cls()
        new_cls = module_manager.patch_module("reg_pkg.gauge_sig", GAUGE_V2).RegGauge

        registry.request_mock("RegGauge", "size", lambda *args, **kwargs: False, _const("never"))
        assert old.size(3) == 3
        assert new_cls().size(3) == 6
        assert new_cls().size(3, y=3) == 9


class TestUnloadedModules:

    def test_type_is_retried_once_module_returns(self, registry, module_manager):
        cls = module_manager.patch_module("reg_pkg.away", WIDGET_SOURCE).RegWidget
        saved = sys.modules.pop("reg_pkg.away")
        try:
            registry.request_mock("RegWidget", "label", always, _const("mocked"))
            assert not registry.is_type_initialized(cls)
        finally:
            sys.modules["reg_pkg.away"] = saved

        registry.notify_type_loaded(cls)
        assert registry.is_type_initialized(cls)
        assert cls(name="w").label() == "mocked"


class TestResolveAndDispatch:

    def test_malformed_address_raises(self, registry):
        with pytest.raises(SlotResolutionError):
            registry.resolve_and_dispatch("not-an-address", (), {})

    def test_unloaded_module_fails_the_call_only(self, registry, module_manager):
        cls = module_manager.patch_module("reg_pkg.unload", WIDGET_SOURCE).RegWidget
        widget = cls(name="w")
        registry.request_mock("RegWidget", "label", always, _const("mocked"))
        count = registry.rewritten_count

        saved = sys.modules.pop("reg_pkg.unload")
        try:
            with pytest.raises(SlotResolutionError):
                widget.label()
        finally:
            sys.modules["reg_pkg.unload"] = saved

        assert registry.rewritten_count == count
        assert widget.label() == "mocked"

    def test_returns_bound_callable(self, registry):
        registry.request_mock("Thermostat", "describe", always, lambda self, unit: unit * 2)
        address = Thermostat.__dict__["describe"].__slotmock_address__
        thermostat = Thermostat(target=0)
        call = registry.resolve_and_dispatch(address, (thermostat, "F"), {})
        assert call() == "FF"

    def test_captured_redirect_after_teardown_runs_original(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(99))
        bound = Thermostat(target=5).read
        assert bound() == 99
        registry.tear_down()
        assert bound() == 5


class TestTearDown:

    def test_restores_originals(self, registry):
        original_read = Thermostat.__dict__["read"]
        original_default = Thermostat.__dict__["default"]
        registry.request_mock("Thermostat", "read", always, _const(99))
        registry.tear_down()

        assert Thermostat.__dict__["read"] is original_read
        assert Thermostat.__dict__["default"] is original_default
        assert Thermostat(target=5).read() == 5

    def test_clears_all_state(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(99))
        registry.request_mock("RegNeverDefined", "run", always, _const(0))
        registry.tear_down()

        assert registry.rewritten_count == 0
        assert registry.overrides("Thermostat", "read") is None
        assert not registry.is_watched("RegNeverDefined")
        assert not registry.is_initialized("Thermostat")
        assert not registry.is_type_initialized(Thermostat)

    def test_noop_when_nothing_mocked(self, registry):
        registry.tear_down()
        registry.tear_down()

    def test_mock_again_after_teardown(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(1))
        registry.tear_down()
        registry.request_mock("Thermostat", "read", always, _const(2))
        assert Thermostat(target=0).read() == 2


class TestConcurrency:

    def test_calls_during_registration(self, registry):
        registry.request_mock("Thermostat", "read", always, _const(0))
        thermostat = Thermostat(target=5)
        errors = []
        results = set()

        def call_many():
            try:
                for _ in range(200):
                    results.add(thermostat.read())
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=call_many) for _ in range(4)]
        for thread in threads:
            thread.start()
        for n in range(1, 50):
            registry.request_mock("Thermostat", "read", always, _const(n))
        for thread in threads:
            thread.join()

        assert errors == []
        assert results <= set(range(50))
