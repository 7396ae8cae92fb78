"""ScopeEngine loading, reports and the async entry point."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from shared.config import ImageConfig, ScopeConfig

from elfscope.core.engine import ScopeEngine
from elfscope.core.errors import ImageLoadError
from elfscope.core.image import Image
from elfscope.parsers.structs import EM_386, EM_NAMES, SHT_REL
from elf_builder import ElfBuilder, rel_section_data


@pytest.fixture
def engine() -> ScopeEngine:
    return ScopeEngine()


class TestLoad:
    def test_load_file(self, engine: ScopeEngine, alpha_beta_file: Path) -> None:
        image = engine.load(alpha_beta_file)
        assert isinstance(image, Image)
        assert image.symbol_count() == 3

    def test_missing_file(self, engine: ScopeEngine, tmp_path: Path) -> None:
        with pytest.raises(ImageLoadError, match="not found"):
            engine.load(tmp_path / "missing.elf")

    def test_oversized_file(self, alpha_beta_file: Path) -> None:
        config = ScopeConfig(image=ImageConfig(max_file_size=64))
        with pytest.raises(ImageLoadError, match="too large"):
            ScopeEngine(config=config).load(alpha_beta_file)

    def test_invalid_file(self, engine: ScopeEngine, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("definitely not an ELF image\n")
        with pytest.raises(ImageLoadError, match="Not a valid ELF32 image"):
            engine.load(path)

    def test_prebuilt_symbol_index(self, alpha_beta_bytes: bytes) -> None:
        config = ScopeConfig(image=ImageConfig(prebuild_symbol_index=True))
        image = ScopeEngine(config=config).load_bytes(alpha_beta_bytes)
        assert len(image.sorted_symbols) == 3

    def test_index_is_lazy_by_default(self, engine: ScopeEngine, alpha_beta_bytes: bytes) -> None:
        assert engine.load_bytes(alpha_beta_bytes).sorted_symbols == ()


class TestDescribe:
    def test_image_info(self, engine: ScopeEngine, alpha_beta_bytes: bytes) -> None:
        image = engine.load_bytes(alpha_beta_bytes)
        report = engine.describe(image, "alpha_beta.elf")
        info = report.info
        assert info.path == "alpha_beta.elf"
        assert info.size == len(alpha_beta_bytes)
        assert info.object_type == "Executable"
        assert info.machine == EM_386
        assert info.arch == EM_NAMES[EM_386]
        assert info.entry_point == 0x8048000
        assert info.section_count == 5
        assert info.symbol_count == 3
        assert info.interpreter is None

    def test_symbols_skip_the_null_entry(self, engine: ScopeEngine, alpha_beta_bytes: bytes) -> None:
        report = engine.describe(engine.load_bytes(alpha_beta_bytes))
        assert [s.name for s in report.symbols] == ["alpha", "beta"]
        alpha = report.symbols[0]
        assert alpha.type == "FUNC"
        assert alpha.bind == "GLOBAL"
        assert alpha.section == ".text"
        assert alpha.demangled == "alpha"

    def test_sections_can_be_omitted(self, engine: ScopeEngine, alpha_beta_bytes: bytes) -> None:
        report = engine.describe(
            engine.load_bytes(alpha_beta_bytes), include_sections=False, include_symbols=False
        )
        assert report.sections == []
        assert report.symbols == []

    def test_relocation_section_is_reported(self, engine: ScopeEngine, builder: ElfBuilder) -> None:
        builder.add_section(".text", data=bytes(16), address=0x1000, flags=0x6)
        builder.add_section(".rel.text", type=SHT_REL, entsize=8, data=rel_section_data((0x1000, 0, 1)))
        report = engine.describe(engine.load_bytes(builder.build()))
        text = next(s for s in report.sections if s.name == ".text")
        assert text.relocation_section == ".rel.text"
        assert text.flags == "-AX"
        rel = next(s for s in report.sections if s.name == ".rel.text")
        assert rel.type == "REL"
        assert rel.entry_count == 1

    def test_symbol_with_corrupt_section_index(self, engine: ScopeEngine, builder: ElfBuilder) -> None:
        builder.add_section(".text", data=bytes(16), address=0x1000)
        builder.add_symbol("alpha", 0x1000, section=0x50)
        image = engine.load_bytes(builder.build())
        report = engine.describe(image, function="alpha")
        assert [s.section for s in report.symbols] == ["Invalid(80)"]
        assert report.function is not None
        assert report.function.section == "Invalid(80)"

    def test_relocation_sections_matched_without_rescanning(
        self, engine: ScopeEngine, builder: ElfBuilder, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        for n in range(200):
            builder.add_section(f".text.{n}", data=bytes(4))
        builder.add_section(".rel.text.7", type=SHT_REL, entsize=8, data=rel_section_data((0, 0, 1)))
        image = engine.load_bytes(builder.build())

        def no_scan(self: Image, name: str) -> None:
            raise AssertionError(f"linear section scan for {name!r}")

        monkeypatch.setattr(Image, "lookup_section", no_scan)
        sections = {s.name: s for s in engine.sections(image)}
        assert sections[".text.7"].relocation_section == ".rel.text.7"
        assert sections[".text.8"].relocation_section is None
        assert sections[""].relocation_section is None

    def test_symbolicated_addresses(self, engine: ScopeEngine, alpha_beta_bytes: bytes) -> None:
        image = engine.load_bytes(alpha_beta_bytes)
        hit, miss = engine.symbolicate(image, [0x1500, 0x10])
        assert hit.found
        assert hit.symbol == "alpha"
        assert hit.offset == 0x500
        assert hit.formatted == "alpha +0x500"
        assert not miss.found
        assert miss.formatted == "??"

    def test_function_lookup(self, engine: ScopeEngine, alpha_beta_bytes: bytes) -> None:
        report = engine.describe(engine.load_bytes(alpha_beta_bytes), function="beta")
        assert report.function_query == "beta"
        assert report.function is not None
        assert report.function.value == 0x2000

    def test_function_lookup_miss(self, engine: ScopeEngine, alpha_beta_bytes: bytes) -> None:
        image = engine.load_bytes(alpha_beta_bytes)
        assert engine.find_function(image, "gamma") is None

    def test_report_serialises(self, engine: ScopeEngine, alpha_beta_bytes: bytes) -> None:
        report = engine.describe(engine.load_bytes(alpha_beta_bytes), addresses=[0x2004])
        dumped = report.model_dump(mode="json")
        assert dumped["addresses"][0]["formatted"] == "beta +0x4"
        assert dumped["info"]["symbol_count"] == 3


def test_async_analyze(engine: ScopeEngine, alpha_beta_file: Path) -> None:
    report = asyncio.run(engine.analyze(alpha_beta_file, addresses=[0x1500], function="alpha"))
    assert report.info.path == str(alpha_beta_file.resolve())
    assert report.addresses[0].formatted == "alpha +0x500"
    assert report.function is not None
    assert report.function.name == "alpha"
