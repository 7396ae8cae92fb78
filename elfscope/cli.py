"""
ElfScope CLI -- ELF Image Introspection
========================================

Click-based command-line interface over :class:`~elfscope.core.engine.ScopeEngine`.
Prints an image summary and, on request, the section and symbol tables,
symbolicated addresses and a function lookup by demangled name.

Usage::

    # Header and program headers
    elfscope /path/to/binary

    # Sections and symbols
    elfscope /path/to/binary --sections --symbols

    # Symbolicate addresses (hex or decimal)
    elfscope /path/to/binary -a 0x8049012 -a 134516754

    # Find a function by its demangled name
    elfscope /path/to/binary --function foo

    # Machine-readable report
    elfscope /path/to/binary --symbols --json

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import asyncio
import json
import sys
import tomllib
from typing import Any, Optional

import click

from shared.config import ScopeConfig
from shared.console import ScopeConsole
from shared.logger import ScopeLogger

from elfscope.core.engine import ScopeEngine
from elfscope.core.errors import ImageLoadError
from elfscope.output.console import ImageConsoleOutput


class AddressParamType(click.ParamType):
    """A 32-bit address written in decimal, ``0x`` hex, ``0o`` or ``0b`` form."""

    name = "address"

    def convert(self, value: Any, param: Optional[click.Parameter], ctx: Optional[click.Context]) -> int:
        if isinstance(value, int):
            return value
        try:
            address = int(str(value).strip(), 0)
        except ValueError:
            self.fail(f"{value!r} is not a valid address", param, ctx)
        if not 0 <= address <= 0xFFFFFFFF:
            self.fail(f"{value!r} does not fit in 32 bits", param, ctx)
        return address


ADDRESS = AddressParamType()


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

@click.command("elfscope")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--address", "-a",
    "addresses",
    type=ADDRESS,
    multiple=True,
    help="Address to symbolicate.  May be repeated.",
)
@click.option(
    "--function", "-F",
    "function",
    default=None,
    help="Look up a defined function by demangled name (overloads ignored).",
)
@click.option(
    "--sections",
    "show_sections",
    is_flag=True,
    default=False,
    help="Show the section header table.",
)
@click.option(
    "--symbols",
    "show_symbols",
    is_flag=True,
    default=False,
    help="Show the symbol table.",
)
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Output the report as JSON to stdout.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging and diagnostics for malformed input.",
)
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="TOML configuration file.",
)
def elfscope_cli(
    path: str,
    addresses: tuple[int, ...],
    function: str | None,
    show_sections: bool,
    show_symbols: bool,
    json_output: bool,
    verbose: bool,
    config_path: str | None,
) -> None:
    """ElfScope -- ELF32 image introspection and symbolication.

    PATH is the ELF image to inspect.

    Examples:

    \b
        # Resolve a crash address
        elfscope ./kernel -a 0xc0101234

    \b
        # Dump symbols as JSON
        elfscope ./libc.so --symbols --json
    """
    console = ScopeConsole()

    try:
        config = ScopeConfig.load(config_path)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        console.error(f"Cannot load configuration: {exc}")
        sys.exit(1)

    if verbose:
        config.image.verbose_logging = True
        log_level = "DEBUG"
    elif json_output:
        # Keep stdout and stderr quiet enough for piping.
        log_level = "WARNING"
    else:
        log_level = config.global_settings.log_level

    logger = ScopeLogger(
        "cli",
        log_level=log_level,
        log_file=config.global_settings.log_file,
        json_logs=config.global_settings.log_json,
    )
    engine = ScopeEngine(config=config, logger=logger)

    try:
        report = asyncio.run(
            engine.analyze(
                path,
                include_sections=show_sections,
                include_symbols=show_symbols,
                addresses=addresses,
                function=function,
            )
        )
    except ImageLoadError as exc:
        console.error(str(exc))
        sys.exit(1)
    except KeyboardInterrupt:
        console.warning("Interrupted by user.")
        sys.exit(130)

    if json_output:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
        return

    output = ImageConsoleOutput(
        console=console,
        max_symbols=config.image.max_symbols_displayed,
    )
    output.display(report, version=config.global_settings.version)

    misses = sum(1 for entry in report.addresses if not entry.found)
    if misses:
        console.warning(f"{misses} of {len(report.addresses)} addresses did not resolve.")


# ---------------------------------------------------------------------------
# Module entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Entry point for ``python -m elfscope.cli``."""
    elfscope_cli()


if __name__ == "__main__":
    main()
