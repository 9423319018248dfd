"""Tests for ImplLoader: .impl.py discovery, naming and execution."""

import sys

import pytest
from slotmock.runtime.impl_loader import IMPL_SUFFIX, ImplLoader


def _touch(path, text="pass\n"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestDiscover:

    def test_only_impl_files_sorted_recursive(self, tmp_path):
        _touch(tmp_path / "zeta.impl.py")
        _touch(tmp_path / "alpha.impl.py")
        _touch(tmp_path / "nested" / "mid.impl.py")
        _touch(tmp_path / "plain.py")

        found = ImplLoader().discover(tmp_path)
        assert found == sorted(found)
        assert {p.name for p in found} == {"zeta.impl.py", "alpha.impl.py", "mid.impl.py"}

    @pytest.mark.parametrize("subdir", ["empty", "missing"])
    def test_nothing_to_discover(self, tmp_path, subdir):
        if subdir == "empty":
            (tmp_path / subdir).mkdir()
        assert ImplLoader().discover(tmp_path / subdir) == []

    def test_suffix(self):
        assert IMPL_SUFFIX == ".impl.py"


class TestModuleName:

    @pytest.mark.parametrize("rel, base, expected", [
        ("session.impl.py", "slotmock.builtins", "slotmock.builtins.session"),
        ("deep/er/sensor.impl.py", "pkg", "pkg.deep.er.sensor"),
        ("solo.impl.py", "", "solo"),
    ])
    def test_derived_from_relative_path(self, tmp_path, rel, base, expected):
        loader = ImplLoader()
        assert loader._compute_module_name(tmp_path / rel, tmp_path, base) == expected


class TestLoad:

    def test_direct_exec_registers_module(self, tmp_path):
        impl = _touch(tmp_path / "sums.impl.py", "total = sum(range(4))\n")
        try:
            mod = ImplLoader().load_file(impl, tmp_path, "loader_direct")
            assert mod.total == 6
            assert mod.__file__ == str(impl)
            assert sys.modules["loader_direct.sums"] is mod
        finally:
            sys.modules.pop("loader_direct.sums", None)

    def test_managed_load_is_versioned(self, tmp_path, module_manager):
        impl = _touch(tmp_path / "note.impl.py", "text = 'first'\n")
        loader = ImplLoader(module_manager=module_manager)
        loader.load_file(impl, tmp_path, "loader_managed")
        impl.write_text("text = 'second'\n")
        mod = loader.load_file(impl, tmp_path, "loader_managed")

        assert mod.text == "second"
        assert module_manager.get_version("loader_managed.note") == 2

    def test_managed_load_notifies_listeners(self, tmp_path, module_manager):
        seen = []
        module_manager.subscribe(lambda module: seen.append(module.__name__))
        _touch(tmp_path / "one.impl.py")
        _touch(tmp_path / "sub" / "two.impl.py")

        modules = ImplLoader(module_manager=module_manager).load_all(tmp_path, "loader_all")
        assert [m.__name__ for m in modules] == ["loader_all.one", "loader_all.sub.two"]
        assert seen == ["loader_all.one", "loader_all.sub.two"]

    def test_impl_file_fills_declared_stub(self, tmp_path, module_manager):
        module_manager.patch_module(
            "loader_decl.pump",
            "import slotmock\n"
            "class LoaderPump(slotmock.Object):\n"
            "    def prime(self) -> str: ...\n",
        )
        impl = _touch(
            tmp_path / "pump.impl.py",
            "import slotmock\n"
            "from loader_decl.pump import LoaderPump\n"
            "@slotmock.impl(LoaderPump.prime)\n"
            "def prime(self) -> str:\n"
            "    return 'primed'\n",
        )
        ImplLoader(module_manager=module_manager).load_file(impl, tmp_path, "loader_decl.impls")
        assert sys.modules["loader_decl.pump"].LoaderPump().prime() == "primed"
