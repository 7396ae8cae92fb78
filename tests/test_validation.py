"""Header and program-header validation."""

from __future__ import annotations

import logging

import pytest

from elfscope.core.image import Image
from elfscope.parsers.structs import (
    ELF32_PHDR,
    ELFCLASS64,
    ELFDATA2MSB,
    ET_NONE,
    PT_INTERP,
    PT_LOAD,
    Elf32Header,
)
from elfscope.parsers.validation import validate_elf_header, validate_program_headers
from elf_builder import ElfBuilder, alpha_beta_image, patch_header


def _with_ident_byte(data: bytes, index: int, value: int) -> bytes:
    ident = bytearray(Elf32Header.unpack_from(data).e_ident)
    ident[index] = value
    return patch_header(data, e_ident=bytes(ident))


class TestFileHeader:
    def test_well_formed_image_is_accepted(self) -> None:
        assert validate_elf_header(alpha_beta_image(), verbose=False)

    @pytest.mark.parametrize("length", [0, 4, 16, 51])
    def test_short_buffer_is_invalid(self, length: int) -> None:
        data = alpha_beta_image()[:length]
        assert not validate_elf_header(data, verbose=False)
        assert not Image(data).is_valid()

    def test_bad_magic(self) -> None:
        data = b"\x7fELG" + alpha_beta_image()[4:]
        assert not Image(data).is_valid()

    def test_elf64_is_rejected(self) -> None:
        data = _with_ident_byte(alpha_beta_image(), 4, ELFCLASS64)
        assert not Image(data).is_valid()

    def test_big_endian_is_rejected(self) -> None:
        data = _with_ident_byte(alpha_beta_image(), 5, ELFDATA2MSB)
        assert not Image(data).is_valid()

    def test_bad_version(self) -> None:
        assert not Image(patch_header(alpha_beta_image(), e_version=2)).is_valid()

    def test_unsupported_object_type(self) -> None:
        assert not Image(patch_header(alpha_beta_image(), e_type=ET_NONE)).is_valid()

    def test_section_table_past_end_of_buffer(self) -> None:
        data = alpha_beta_image()
        assert not Image(patch_header(data, e_shoff=len(data))).is_valid()

    def test_section_count_past_end_of_buffer(self) -> None:
        data = alpha_beta_image()
        assert not Image(patch_header(data, e_shnum=1000)).is_valid()

    def test_section_table_overlapping_file_header(self) -> None:
        assert not Image(patch_header(alpha_beta_image(), e_shoff=8)).is_valid()

    def test_wrong_section_entry_size(self) -> None:
        assert not Image(patch_header(alpha_beta_image(), e_shentsize=64)).is_valid()

    def test_program_table_past_end_of_buffer(self) -> None:
        assert not Image(patch_header(alpha_beta_image(), e_phnum=4000, e_phoff=52)).is_valid()

    def test_section_name_index_out_of_range(self) -> None:
        data = alpha_beta_image()
        shnum = Elf32Header.unpack_from(data).e_shnum
        assert not Image(patch_header(data, e_shstrndx=shnum)).is_valid()

    def test_truncated_image_is_invalid(self) -> None:
        data = alpha_beta_image()
        assert not Image(data[:-1]).is_valid()


class TestProgramHeaders:
    def test_interpreter_is_extracted(self) -> None:
        builder = ElfBuilder()
        builder.add_segment(PT_INTERP, data=b"/lib/ld-linux.so.2\x00")
        image = Image(builder.build())
        assert image.is_valid()
        assert image.interpreter == "/lib/ld-linux.so.2"

    def test_unterminated_interpreter_is_rejected(self) -> None:
        builder = ElfBuilder()
        builder.add_segment(PT_INTERP, data=b"/lib/ld-linux.so.2")
        assert not Image(builder.build()).is_valid()

    def test_load_larger_in_file_than_memory_is_rejected(self) -> None:
        builder = ElfBuilder()
        builder.add_segment(PT_LOAD, data=b"\x90" * 16, memsz=8)
        assert not Image(builder.build()).is_valid()

    def test_load_with_bss_is_accepted(self) -> None:
        builder = ElfBuilder()
        builder.add_segment(PT_LOAD, data=b"\x90" * 16, memsz=0x1000, vaddr=0x8048000)
        assert Image(builder.build()).is_valid()

    def test_segment_past_end_of_buffer(self) -> None:
        builder = ElfBuilder()
        builder.add_segment(PT_LOAD, data=b"\x90" * 16, memsz=0x1000)
        data = bytearray(builder.build())
        header = Elf32Header.unpack_from(data)
        # p_filesz and p_memsz of the first program header
        ELF32_PHDR.pack_into(
            data, header.e_phoff,
            PT_LOAD, header.e_phoff + ELF32_PHDR.size, 0, 0,
            len(data), len(data) + 0x1000, 0, 4,
        )
        assert not Image(bytes(data)).is_valid()

    def test_interpreter_list_untouched_without_interp(self) -> None:
        data = alpha_beta_image()
        found: list[str] = []
        assert validate_program_headers(
            data, Elf32Header.unpack_from(data), interpreter_path=found, verbose=False
        )
        assert found == []


class TestDiagnostics:
    def test_quiet_by_default(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="elfscope"):
            Image(b"\x7fELF")
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_verbose_reports_reason(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="elfscope"):
            Image(b"\x7fELF", verbose_logging=True)
        messages = [r.getMessage() for r in caplog.records]
        assert any("too small" in m for m in messages)
        assert any("ELF header not valid" in m for m in messages)
