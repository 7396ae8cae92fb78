"""Address symbolication and name-based function lookup."""

from __future__ import annotations

import pytest

import elfscope.core.image as image_module
from elfscope.core.demangle import demangle, strip_parameters
from elfscope.core.image import UNKNOWN_SYMBOL, Image
from elfscope.parsers.structs import STT_OBJECT
from elf_builder import ElfBuilder


class TestFindSymbol:
    @pytest.mark.parametrize("address, name, offset", [
        (0x1000, "alpha", 0),
        (0x1500, "alpha", 0x500),
        (0x1FFF, "alpha", 0xFFF),
        (0x2000, "beta", 0),
        (0x2040, "beta", 0x40),
    ])
    def test_closest_preceding_symbol(
        self, alpha_beta: Image, address: int, name: str, offset: int
    ) -> None:
        match = alpha_beta.find_symbol(address)
        assert match is not None
        assert match.symbol.name == name
        assert match.offset == offset

    def test_address_before_every_symbol(self, alpha_beta: Image) -> None:
        assert alpha_beta.find_symbol(0x0FFF) is None

    def test_lowest_index_entry_is_a_miss(self, alpha_beta: Image) -> None:
        # The null symbol sits at address 0 and index 0 of the sorted index.
        assert alpha_beta.find_sorted_symbol(0) is None
        assert alpha_beta.find_sorted_symbol(0x10) is None

    def test_no_symbols(self) -> None:
        image = Image(ElfBuilder(with_symtab=False).build())
        assert image.find_symbol(0x1000) is None


class TestSymbolicate:
    def test_formatted_result(self, alpha_beta: Image) -> None:
        assert alpha_beta.symbolicate(0x1500) == "alpha +0x500"
        assert alpha_beta.symbolicate(0x2000) == "beta +0x0"

    def test_with_offset(self, alpha_beta: Image) -> None:
        assert alpha_beta.symbolicate_with_offset(0x1500) == ("alpha", 0x500)
        assert alpha_beta.symbolicate_with_offset(0x2010) == ("beta", 0x10)

    def test_miss(self, alpha_beta: Image) -> None:
        assert alpha_beta.symbolicate(0x0FFF) == UNKNOWN_SYMBOL
        assert alpha_beta.symbolicate_with_offset(0x0FFF) == (UNKNOWN_SYMBOL, 0)

    @pytest.mark.parametrize("address", [0, 0x1000, 0xFFFF_FFFF])
    def test_no_symbols_is_always_unknown(self, address: int) -> None:
        image = Image(ElfBuilder(with_symtab=False).build())
        assert image.symbol_count() == 0
        assert image.symbolicate(address) == "??"
        assert image.symbolicate_with_offset(address) == ("??", 0)

    def test_only_the_null_symbol(self) -> None:
        image = Image(ElfBuilder().build())
        assert image.symbol_count() == 1
        assert image.symbolicate(0x1234) == "??"

    def test_demangled_name(self, builder: ElfBuilder) -> None:
        builder.add_section(".text", data=bytes(16), address=0x1000)
        builder.add_symbol("_Z3fooii", 0x1000, size=0x20)
        image = Image(builder.build())
        name, offset = image.symbolicate_with_offset(0x1004)
        assert offset == 4
        assert name == demangle("_Z3fooii")
        assert strip_parameters(name) == "foo"
        assert image.symbolicate(0x1004) == f"{name} +0x4"

    def test_demangles_each_symbol_once(
        self, alpha_beta: Image, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[str] = []

        def counting_demangle(name: str) -> str:
            calls.append(name)
            return demangle(name)

        monkeypatch.setattr(image_module, "demangle", counting_demangle)
        for _ in range(3):
            alpha_beta.symbolicate(0x1500)
            alpha_beta.symbolicate_with_offset(0x1600)
        assert calls == ["alpha"]

        alpha_beta.symbolicate(0x2000)
        assert calls == ["alpha", "beta"]


class TestSortedIndex:
    def test_built_lazily(self, alpha_beta: Image) -> None:
        assert alpha_beta.sorted_symbols == ()
        alpha_beta.symbolicate(0x1000)
        assert [e.name for e in alpha_beta.sorted_symbols] == ["", "alpha", "beta"]

    def test_build_is_idempotent(self, alpha_beta: Image) -> None:
        alpha_beta.build_symbol_index()
        first = alpha_beta.sorted_symbols
        alpha_beta.build_symbol_index()
        alpha_beta.symbolicate(0x1500)
        second = alpha_beta.sorted_symbols
        assert [e.address for e in first] == [e.address for e in second]
        assert all(a is b for a, b in zip(first, second))

    def test_sorted_by_address_and_stable(self, builder: ElfBuilder) -> None:
        builder.add_section(".text", data=bytes(16), address=0x1000)
        builder.add_symbol("late", 0x3000)
        builder.add_symbol("early", 0x1000)
        builder.add_symbol("twin_a", 0x2000)
        builder.add_symbol("twin_b", 0x2000)
        image = Image(builder.build())
        image.build_symbol_index()
        assert [e.name for e in image.sorted_symbols] == ["", "early", "twin_a", "twin_b", "late"]
        assert image.symbolicate(0x2001) == "twin_b +0x1"


class TestFindDemangledFunction:
    @pytest.fixture
    def overloads(self, builder: ElfBuilder) -> Image:
        builder.add_section(".text", data=bytes(64), address=0x1000)
        builder.add_symbol("_Z6foobarv", 0x1000)
        builder.add_symbol("_Z3fooii", 0x1010)
        builder.add_symbol("main", 0x1020)
        builder.add_symbol("_Z3bazv", 0, section=None)
        builder.add_symbol("_Z3quxi", 0x1030, type=STT_OBJECT)
        return Image(builder.build())

    def test_parameter_list_is_ignored(self, overloads: Image) -> None:
        found = overloads.find_demangled_function("foo")
        assert found is not None
        assert found.name == "_Z3fooii"

    def test_prefix_does_not_match(self, overloads: Image) -> None:
        found = overloads.find_demangled_function("foobar")
        assert found is not None
        assert found.name == "_Z6foobarv"

    def test_plain_c_name(self, overloads: Image) -> None:
        found = overloads.find_demangled_function("main")
        assert found is not None
        assert found.value == 0x1020

    def test_undefined_functions_are_skipped(self, overloads: Image) -> None:
        assert overloads.find_demangled_function("baz") is None

    def test_non_functions_are_skipped(self, overloads: Image) -> None:
        assert overloads.find_demangled_function("qux") is None

    def test_no_match(self, overloads: Image) -> None:
        assert overloads.find_demangled_function("fo") is None


class TestDemangle:
    def test_plain_names_pass_through(self) -> None:
        assert demangle("main") == "main"
        assert demangle("") == ""

    def test_itanium_names(self) -> None:
        assert strip_parameters(demangle("_Z3fooii")) == "foo"
        assert demangle("_Z3fooii").startswith("foo(")

    def test_strip_parameters(self) -> None:
        assert strip_parameters("foo(int, int)") == "foo"
        assert strip_parameters("bar") == "bar"
