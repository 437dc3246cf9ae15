"""
bingrep CLI -- Binary Introspection and Pattern Correlation
============================================================

Click-based command-line interface for bingrep.  A single command
renders the structure of a binary and, optionally, every occurrence of
a pattern together with the ranges containing it.

Usage::

    # Structural listing
    bingrep /path/to/binary

    # Find a string and show which segments and sections contain it
    bingrep /path/to/binary --search GLIBC

    # Hex pattern
    bingrep /path/to/binary --search "de ad be ef" --hex

    # Which ranges contain file offset 0x1234?
    bingrep /path/to/binary --offset 0x1234

    # Machine-readable output
    bingrep /path/to/binary --search main --json

Exit status is 0 on success, 2 for caller-fixable input problems (empty
or malformed pattern, negative offset, truncated tables, oversized
file) and 1 when the file cannot be parsed.

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import sys
import traceback
from typing import Any, Optional

import click
from rich.pretty import Pretty

from shared.config import BingrepConfig
from shared.console import BingrepConsole
from shared.logger import ToolLogger

from bingrep import __version__
from bingrep.core.engine import BingrepEngine
from bingrep.core.errors import InputError, ParseError
from bingrep.output.console import BingrepConsoleOutput
from bingrep.output.report import BingrepReportGenerator


EXIT_PARSE_ERROR: int = 1
EXIT_INPUT_ERROR: int = 2

_FORMATS: list[str] = ["auto", "elf", "macho", "macho-fat", "pe", "archive"]


class IntLiteral(click.ParamType):
    """Integer option accepting ``0x``, ``0o`` and ``0b`` prefixes."""

    name = "integer"

    def convert(self, value: Any, param: Any, ctx: Any) -> int:
        if isinstance(value, int):
            return value
        try:
            return int(str(value).replace("_", ""), 0)
        except ValueError:
            self.fail(f"{value!r} is not a valid integer", param, ctx)


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

@click.command("bingrep")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--search", "-s",
    default=None,
    help="Pattern to search for (text, or hex digits with --hex).",
)
@click.option(
    "--hex", "hex_pattern",
    is_flag=True,
    default=False,
    help="Interpret --search as hex bytes, e.g. 'de ad be ef'.",
)
@click.option(
    "--offset", "-O",
    type=IntLiteral(),
    default=None,
    help="File offset to locate (decimal or 0x-prefixed).",
)
@click.option(
    "--format", "-f",
    "file_format",
    type=click.Choice(_FORMATS, case_sensitive=False),
    default="auto",
    help="Container format override.  Default: auto-detect.",
)
@click.option(
    "--demangle", "-D",
    is_flag=True,
    default=False,
    help="Apply Rust/C++ demangling to symbol, import and export names.",
)
@click.option(
    "--pretty/--compact", "-p",
    default=None,
    help="Bordered tables with column headers, or compact rows.",
)
@click.option(
    "--color/--no-color",
    default=None,
    help="Force or disable coloured output.  Default: detect the terminal.",
)
@click.option(
    "--debug", "-d",
    is_flag=True,
    default=False,
    help="Dump the range table and the full report model.",
)
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Output the report as JSON to stdout.",
)
@click.option(
    "--output", "-o",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the JSON report to this path.",
)
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Configuration file (TOML).  Default: config.toml in the project root.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging and print tracebacks on failure.",
)
@click.version_option(__version__, prog_name="bingrep")
def bingrep_cli(
    path: str,
    search: Optional[str],
    hex_pattern: bool,
    offset: Optional[int],
    file_format: str,
    demangle: bool,
    pretty: Optional[bool],
    color: Optional[bool],
    debug: bool,
    json_output: bool,
    output_path: Optional[str],
    config_path: Optional[str],
    verbose: bool,
) -> None:
    """bingrep -- binary introspection and pattern correlation.

    Render the structure of an ELF, Mach-O, PE or ar file and report
    where a pattern or an offset falls inside it.

    PATH is the file to inspect.

    Examples:

    \b
        bingrep /bin/ls
        bingrep /bin/ls --search GLIBC --pretty
        bingrep lib.so --search "7f 45 4c 46" --hex
        bingrep a.out --offset 0x1040
        bingrep libstd.so --search alloc --demangle
    """
    try:
        config = BingrepConfig.load(config_path)
    except (OSError, ValueError) as exc:
        BingrepConsole(color=color).error(f"Cannot load configuration: {exc}")
        sys.exit(EXIT_INPUT_ERROR)

    if color is None:
        color = config.display.color
    if pretty is None:
        pretty = config.display.pretty

    console = BingrepConsole(color=color)
    logger = ToolLogger.from_config("cli", config, verbose=verbose)
    engine = BingrepEngine(
        config=config,
        logger=ToolLogger.from_config("engine", config, verbose=verbose),
    )

    if hex_pattern and search is None:
        console.error("--hex requires --search.")
        sys.exit(EXIT_INPUT_ERROR)

    try:
        report = engine.analyze(
            path,
            search=search,
            hex_pattern=hex_pattern,
            offset=offset,
            format=file_format.lower(),
            demangle=demangle,
        )
    except KeyboardInterrupt:
        console.warning("Analysis interrupted by user.")
        sys.exit(130)
    except InputError as exc:
        logger.debug("Input error: %s", exc)
        console.error(str(exc))
        if verbose:
            traceback.print_exc()
        sys.exit(EXIT_INPUT_ERROR)
    except ParseError as exc:
        logger.debug("Parse error: %s", exc)
        console.error(f"Cannot parse {path}: {exc}")
        if verbose:
            traceback.print_exc()
        sys.exit(EXIT_PARSE_ERROR)

    generator = BingrepReportGenerator(version=__version__)

    if json_output:
        click.echo(generator.to_json(report))
    else:
        output = BingrepConsoleOutput(
            console=console,
            pretty=pretty,
            max_matches=config.display.max_matches,
        )
        output.display(report)
        if debug:
            console.section("Debug")
            output.display_ranges(report.ranges)
            console.print(Pretty(report))

    if output_path:
        report_path = generator.generate_json(report, output_path)
        if not json_output:
            console.success(f"JSON report saved: {report_path}")


# ---------------------------------------------------------------------------
# Module entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Entry point for the ``bingrep`` console script and ``python -m bingrep``."""
    bingrep_cli()


if __name__ == "__main__":
    main()
