"""
ElfScope Engine
================

Loads ELF images from disk under the configured limits and turns them
into :class:`~elfscope.core.models.ImageReport` snapshots: header summary,
program headers, sections, symbols, symbolicated addresses and
function-name lookups.

Pipeline:
    1. Check the file exists and respects ``image.max_file_size``
    2. Read the file and construct an :class:`~elfscope.core.image.Image`
    3. Optionally pre-build the sorted symbol index
    4. Snapshot the requested structures into pydantic models
    5. Symbolicate the requested addresses
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from shared.config import ScopeConfig
from shared.logger import ScopeLogger

from elfscope.core.demangle import demangle
from elfscope.core.errors import ImageLoadError
from elfscope.core.image import Image
from elfscope.core.models import (
    ImageInfo,
    ImageReport,
    ProgramHeaderInfo,
    SectionInfo,
    SymbolicatedAddress,
    SymbolInfo,
)
from elfscope.core.views import Symbol
from elfscope.parsers.structs import (
    EM_NAMES,
    ET_NAMES,
    PT_NAMES,
    RELOCATION_PREFIX,
    SECTION_FLAG_LETTERS,
    SEGMENT_FLAG_LETTERS,
    flags_string,
)


class ScopeEngine:
    """Loads images and produces reports.

    Usage::

        engine = ScopeEngine()
        image = engine.load("/path/to/binary")
        report = engine.describe(image, addresses=[0x8049000])

    Or, from async code::

        report = await engine.analyze("/path/to/binary", addresses=[0x8049000])
    """

    def __init__(
        self,
        config: ScopeConfig | None = None,
        logger: ScopeLogger | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: ElfScope configuration.  Defaults are used if not provided.
            logger: Logger instance.  A new one is created if not provided.
        """
        self._config: ScopeConfig = config or ScopeConfig()
        self._logger: ScopeLogger = logger or ScopeLogger(
            "engine", log_level=self._config.global_settings.log_level
        )

    # ------------------------------------------------------------------ #
    #  Loading
    # ------------------------------------------------------------------ #

    def load(self, file_path: str | Path) -> Image:
        """Read *file_path* and return a valid :class:`Image`.

        Raises:
            ImageLoadError: If the file is missing, too large, or not a
                valid ELF32 image.
        """
        path = Path(file_path)
        if not path.is_file():
            raise ImageLoadError(f"File not found: {path}")

        file_size = path.stat().st_size
        max_size = self._config.image.max_file_size
        if file_size > max_size:
            raise ImageLoadError(
                f"File too large: {file_size:,} bytes (max: {max_size:,} bytes)"
            )

        with self._logger.operation("load"):
            self._logger.debug("Reading %s (%d bytes)", path, file_size)
            try:
                data = path.read_bytes()
            except OSError as exc:
                self._logger.exception("Failed to read %s", path)
                raise ImageLoadError(f"Cannot read {path}: {exc}") from exc
            return self.load_bytes(data, name=str(path))

    def load_bytes(self, data: bytes, name: str = "<memory>") -> Image:
        """Construct an image over *data*, which must outlive it."""
        image = Image(
            data,
            verbose_logging=self._config.image.verbose_logging,
            logger=self._logger,
        )
        if not image.is_valid():
            self._logger.debug("Rejected %s (%d bytes)", name, image.size)
            raise ImageLoadError(f"Not a valid ELF32 image: {name}")

        if self._config.image.prebuild_symbol_index:
            with self._logger.timed("symbol index build"):
                image.build_symbol_index()
        return image

    # ------------------------------------------------------------------ #
    #  Reports
    # ------------------------------------------------------------------ #

    def describe(
        self,
        image: Image,
        path: str = "<memory>",
        *,
        include_sections: bool = True,
        include_symbols: bool = True,
        addresses: Iterable[int] = (),
        function: Optional[str] = None,
    ) -> ImageReport:
        """Snapshot *image* into an :class:`ImageReport`."""
        report = ImageReport(info=self.image_info(image, path))
        report.program_headers = self.program_headers(image)
        if include_sections:
            report.sections = self.sections(image)
        if include_symbols:
            report.symbols = self.symbols(image)
        report.addresses = self.symbolicate(image, addresses)
        if function is not None:
            report.function_query = function
            report.function = self.find_function(image, function)
        return report

    @staticmethod
    def image_info(image: Image, path: str = "<memory>") -> ImageInfo:
        header = image.header()
        return ImageInfo(
            path=path,
            size=image.size,
            object_type=ET_NAMES.get(header.e_type, "(?)"),
            machine=header.e_machine,
            arch=EM_NAMES.get(header.e_machine, f"unknown({header.e_machine})"),
            entry_point=header.e_entry,
            interpreter=image.interpreter,
            section_count=image.section_count(),
            program_header_count=image.program_header_count(),
            symbol_count=image.symbol_count(),
            symbol_table_section=image.symbol_table_section_index,
            string_table_section=image.string_table_section_index,
        )

    @staticmethod
    def program_headers(image: Image) -> list[ProgramHeaderInfo]:
        return [
            ProgramHeaderInfo(
                index=ph.index,
                type=PT_NAMES.get(ph.type, f"{ph.type:#x}"),
                offset=ph.offset,
                vaddr=ph.vaddr,
                filesz=ph.size_in_image,
                memsz=ph.size_in_memory,
                flags=flags_string(ph.flags, SEGMENT_FLAG_LETTERS),
            )
            for ph in image.iter_program_headers()
        ]

    @staticmethod
    def sections(image: Image) -> list[SectionInfo]:
        # Relocation sections are matched by name in a single pass.
        named = [(section, section.name) for section in image.iter_sections()]
        names = {name for _, name in named}

        result: list[SectionInfo] = []
        for section, name in named:
            relocation_name = RELOCATION_PREFIX + name
            result.append(SectionInfo(
                index=section.index,
                name=name,
                type=section.type_name,
                flags=flags_string(section.flags, SECTION_FLAG_LETTERS),
                address=section.address,
                offset=section.offset,
                size=section.size,
                entry_count=section.entry_count,
                relocation_section=relocation_name if name and relocation_name in names else None,
            ))
        return result

    @staticmethod
    def symbol_info(image: Image, symbol: Symbol) -> SymbolInfo:
        name = symbol.name
        return SymbolInfo(
            index=symbol.index,
            name=name,
            demangled=demangle(name),
            value=symbol.value,
            size=symbol.size,
            type=symbol.type_name,
            bind=symbol.bind_name,
            section=image.section_index_to_string(symbol.section_index),
        )

    def symbols(self, image: Image) -> list[SymbolInfo]:
        # Entry 0 is the null symbol.
        return [
            self.symbol_info(image, symbol)
            for symbol in image.iter_symbols()
            if symbol.index != 0
        ]

    def symbolicate(self, image: Image, addresses: Iterable[int]) -> list[SymbolicatedAddress]:
        """Resolve each address against the image's symbol index."""
        result: list[SymbolicatedAddress] = []
        with self._logger.operation("symbolicate"):
            for address in addresses:
                name, offset = image.symbolicate_with_offset(address)
                found = image.find_symbol(address) is not None
                result.append(SymbolicatedAddress(
                    address=address,
                    found=found,
                    symbol=name,
                    offset=offset,
                    formatted=image.symbolicate(address),
                ))
                self._logger.debug("%#x -> %s", address, result[-1].formatted)
        return result

    def find_function(self, image: Image, name: str) -> Optional[SymbolInfo]:
        symbol = image.find_demangled_function(name)
        if symbol is None:
            self._logger.debug("No defined function named %r", name)
            return None
        return self.symbol_info(image, symbol)

    # ------------------------------------------------------------------ #
    #  One-shot analysis
    # ------------------------------------------------------------------ #

    def analyze_path(
        self,
        file_path: str | Path,
        *,
        include_sections: bool = True,
        include_symbols: bool = True,
        addresses: Iterable[int] = (),
        function: Optional[str] = None,
    ) -> ImageReport:
        """Load *file_path* and describe it in one step."""
        path = Path(file_path)
        image = self.load(path)
        report = self.describe(
            image,
            str(path.resolve()),
            include_sections=include_sections,
            include_symbols=include_symbols,
            addresses=list(addresses),
            function=function,
        )
        self._logger.info(
            "Analysis complete: %s | %s | sections: %d | symbols: %d",
            report.info.object_type,
            report.info.arch,
            report.info.section_count,
            report.info.symbol_count,
        )
        return report

    async def analyze(
        self,
        file_path: str | Path,
        *,
        include_sections: bool = True,
        include_symbols: bool = True,
        addresses: Iterable[int] = (),
        function: Optional[str] = None,
    ) -> ImageReport:
        """Async entry point; the parse runs in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self.analyze_path(
                file_path,
                include_sections=include_sections,
                include_symbols=include_symbols,
                addresses=list(addresses),
                function=function,
            ),
        )
