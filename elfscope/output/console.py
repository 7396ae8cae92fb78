"""
ElfScope Console Output
========================

Rich-powered terminal display for :class:`~elfscope.core.models.ImageReport`:
an image summary panel, program-header and section tables, the symbol
table, and symbolicated addresses.

Uses the ScopeConsole abstraction for consistent styling.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Optional

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from shared.console import ScopeConsole

from elfscope.core.models import (
    ImageInfo,
    ImageReport,
    ProgramHeaderInfo,
    SectionInfo,
    SymbolicatedAddress,
    SymbolInfo,
)


_SYMBOL_TYPE_COLOURS: dict[str, str] = {
    "FUNC": "bright_green",
    "OBJECT": "bright_cyan",
    "SECTION": "dim",
    "FILE": "dim",
    "TLS": "bright_magenta",
}


def _table() -> Table:
    return Table(
        border_style="bright_cyan",
        header_style="bold bright_magenta",
        show_lines=False,
        padding=(0, 1),
    )


class ImageConsoleOutput:
    """Rich terminal display for image reports.

    Usage::

        output = ImageConsoleOutput()
        output.display(report)
    """

    def __init__(
        self,
        console: ScopeConsole | None = None,
        *,
        max_symbols: int = 200,
    ) -> None:
        """Initialise the output renderer.

        Args:
            console: Optional ScopeConsole instance.  A new one is
                     created if not provided.
            max_symbols: Row limit for the symbol table.
        """
        self._console: ScopeConsole = console or ScopeConsole()
        self._max_symbols = max_symbols

    def display(self, report: ImageReport, *, version: str = "1.0.0") -> None:
        """Display everything present in *report*."""
        self._console.banner(version)
        self.display_header(report.info)

        if report.program_headers:
            self.display_program_headers(report.program_headers)
        if report.sections:
            self.display_sections(report.sections)
        if report.symbols:
            self.display_symbols(report.symbols)
        if report.addresses:
            self.display_addresses(report.addresses)
        if report.function_query is not None:
            self.display_function(report.function_query, report.function)

        self._console.divider()

    def display_header(self, info: ImageInfo) -> None:
        lines: list[str] = [
            f"[bold]File:[/bold]         {info.path}",
            f"[bold]Size:[/bold]         {info.size:,} bytes ({info.size / 1024:.1f} KiB)",
            f"[bold]Type:[/bold]         {info.object_type}",
            f"[bold]Machine:[/bold]      {info.arch} ({info.machine})",
            f"[bold]Entry Point:[/bold]  [scope.address]0x{info.entry_point:x}[/scope.address]",
        ]
        if info.interpreter:
            lines.append(f"[bold]Interpreter:[/bold]  {info.interpreter}")
        lines.append(
            f"[bold]Sections:[/bold]     {info.section_count}    "
            f"[bold]Segments:[/bold] {info.program_header_count}    "
            f"[bold]Symbols:[/bold] {info.symbol_count}"
        )

        panel = Panel(
            "\n".join(lines),
            title="[bold bright_cyan]ELF Image[/bold bright_cyan]",
            border_style="bright_cyan",
            padding=(1, 2),
        )
        self._console.rich.print(panel)
        self._console.blank()

    def display_program_headers(self, headers: list[ProgramHeaderInfo]) -> None:
        self._console.section("Program Headers")

        tbl = _table()
        tbl.add_column("#", style="dim", width=4, justify="right")
        tbl.add_column("Type", style="bold", min_width=10)
        tbl.add_column("Offset", justify="right")
        tbl.add_column("VAddr", justify="right")
        tbl.add_column("FileSz", justify="right")
        tbl.add_column("MemSz", justify="right")
        tbl.add_column("Flags")

        for ph in headers:
            tbl.add_row(
                str(ph.index),
                ph.type,
                f"0x{ph.offset:x}",
                f"0x{ph.vaddr:08x}",
                f"{ph.filesz:,}",
                f"{ph.memsz:,}",
                ph.flags,
            )

        self._console.rich.print(tbl)
        self._console.blank()

    def display_sections(self, sections: list[SectionInfo]) -> None:
        self._console.section("Sections")

        tbl = _table()
        tbl.add_column("#", style="dim", width=4, justify="right")
        tbl.add_column("Name", style="bold", min_width=12)
        tbl.add_column("Type")
        tbl.add_column("Addr", justify="right")
        tbl.add_column("Offset", justify="right")
        tbl.add_column("Size", justify="right")
        tbl.add_column("Entries", justify="right")
        tbl.add_column("Flags")
        tbl.add_column("Relocations", style="dim")

        for sec in sections:
            tbl.add_row(
                str(sec.index),
                escape(sec.name) or "<unnamed>",
                sec.type,
                f"0x{sec.address:08x}",
                f"0x{sec.offset:x}",
                f"{sec.size:,}",
                str(sec.entry_count) if sec.entry_count else "-",
                sec.flags,
                sec.relocation_section or "",
            )

        self._console.rich.print(tbl)
        self._console.blank()

    def display_symbols(self, symbols: list[SymbolInfo]) -> None:
        """Display the symbol table, capped at ``max_symbols`` rows.

        Args:
            symbols: SymbolInfo models, null symbol excluded.
        """
        self._console.section("Symbols")

        tbl = _table()
        tbl.add_column("#", style="dim", width=5, justify="right")
        tbl.add_column("Value", justify="right", width=10)
        tbl.add_column("Size", justify="right")
        tbl.add_column("Type", width=8)
        tbl.add_column("Bind", width=7)
        tbl.add_column("Section", width=12)
        tbl.add_column("Name", min_width=30, overflow="fold")

        for sym in symbols[:self._max_symbols]:
            colour = _SYMBOL_TYPE_COLOURS.get(sym.type, "white")
            name = escape(sym.demangled)
            if sym.demangled != sym.name:
                name = f"{escape(sym.demangled)} [dim]({escape(sym.name)})[/dim]"
            tbl.add_row(
                str(sym.index),
                f"0x{sym.value:08x}",
                str(sym.size),
                f"[{colour}]{sym.type}[/{colour}]",
                sym.bind,
                sym.section,
                name,
            )

        self._console.rich.print(tbl)
        if len(symbols) > self._max_symbols:
            self._console.info(
                f"Showing {self._max_symbols} of {len(symbols)} symbols. "
                f"Use --json to export the full table."
            )
        self._console.blank()

    def display_addresses(self, addresses: list[SymbolicatedAddress]) -> None:
        self._console.section("Symbolication")

        tbl = _table()
        tbl.add_column("Address", justify="right", style="scope.address")
        tbl.add_column("Symbol", min_width=30)

        for entry in addresses:
            if entry.found:
                cell = f"[scope.symbol]{escape(entry.symbol)}[/scope.symbol] +0x{entry.offset:x}"
            else:
                cell = f"[scope.miss]{entry.formatted}[/scope.miss]"
            tbl.add_row(f"0x{entry.address:08x}", cell)

        self._console.rich.print(tbl)
        self._console.blank()

    def display_function(self, query: str, symbol: Optional[SymbolInfo]) -> None:
        self._console.section("Function Lookup")
        if symbol is None:
            self._console.warning(f"No defined function named '{escape(query)}'.")
        else:
            self._console.success(
                f"{escape(query)}: {escape(symbol.demangled)} at 0x{symbol.value:08x} "
                f"({symbol.size} bytes, {symbol.section})"
            )
        self._console.blank()
