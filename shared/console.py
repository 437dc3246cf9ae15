"""
bingrep Console Interface
==========================

Rich-powered console abstraction providing a unified presentation layer.

The class wraps :class:`rich.console.Console` and adds convenience methods
for section headers, severity-coloured messages and tables, all with
consistent styling.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

# ---------------------------------------------------------------------------
# Theme -- one palette for every renderer
# ---------------------------------------------------------------------------
_BINGREP_THEME = Theme(
    {
        "bingrep.header": "dim white underline",
        "bingrep.section": "bold bright_magenta",
        "bingrep.success": "bold green",
        "bingrep.warning": "bold yellow",
        "bingrep.error": "bold red",
        "bingrep.info": "bold bright_blue",
        "bingrep.dim": "dim white",
        "bingrep.addr": "red",
        "bingrep.offset": "yellow",
        "bingrep.size": "green",
        "bingrep.string": "reverse bold yellow",
        "bingrep.library": "reverse bold blue",
        "bingrep.sentinel": "italic white",
        "bingrep.bad": "italic red",
    }
)


class BingrepConsole:
    """Unified console interface for the bingrep renderers.

    Usage::

        con = BingrepConsole()
        con.header("ProgramHeaders", 9)
        con.error("bad magic")
    """

    def __init__(
        self,
        *,
        color: bool | None = None,
        quiet: bool = False,
        record: bool = False,
        width: int | None = None,
    ) -> None:
        """Initialise the console.

        Args:
            color:  ``True`` forces colour, ``False`` disables it, ``None``
                    lets Rich detect the terminal.
            quiet:  Suppress all output (useful in library / test mode).
            record: Enable Rich recording for text / HTML export.
            width:  Fixed console width; ``None`` uses the terminal width.
        """
        self._console = Console(
            theme=_BINGREP_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
            width=width,
            force_terminal=True if color else None,
            no_color=color is False,
        )

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def rich(self) -> Console:
        """Direct access to the underlying Rich Console instance."""
        return self._console

    # ------------------------------------------------------------------ #
    #  Headers
    # ------------------------------------------------------------------ #

    def header(self, name: str, count: int | None = None) -> None:
        """Print a ``Name(count):`` table header followed by a blank line."""
        label = escape(name if count is None else f"{name}({count})")
        self._console.print(f"[bingrep.header]{label}[/bingrep.header]:")
        self._console.print()

    def section(self, title: str) -> None:
        """Print a prominent section rule."""
        self._console.rule(
            f"  {title}  ",
            style="bingrep.section",
            characters="─",
        )
        self._console.print()

    # ------------------------------------------------------------------ #
    #  Message helpers (severity-coloured)
    # ------------------------------------------------------------------ #

    def success(self, message: str) -> None:
        """Print a success message."""
        self._console.print(
            f"[bingrep.success][✔] SUCCESS:[/bingrep.success] {escape(message)}"
        )

    def warning(self, message: str) -> None:
        """Print a warning message."""
        self._console.print(
            f"[bingrep.warning][⚠] WARNING:[/bingrep.warning] {escape(message)}"
        )

    def error(self, message: str) -> None:
        """Print an error message."""
        self._console.print(
            f"[bingrep.error][✘] ERROR:[/bingrep.error] {escape(message)}"
        )

    def info(self, message: str) -> None:
        """Print an informational message."""
        self._console.print(
            f"[bingrep.info][ℹ] INFO:[/bingrep.info] {escape(message)}"
        )

    # ------------------------------------------------------------------ #
    #  Table display
    # ------------------------------------------------------------------ #

    def new_table(self, columns: Sequence[str], *, pretty: bool = True) -> Table:
        """Create a table in the house style.

        ``pretty`` tables are bordered with a bold header row; compact
        tables have neither borders nor header, one row per entry.

        Args:
            columns: Column header labels.
            pretty:  Bordered (``True``) or compact (``False``) layout.
        """
        if pretty:
            tbl = Table(
                border_style="bright_cyan",
                header_style="bold bright_magenta",
                show_lines=False,
                padding=(0, 1),
            )
        else:
            tbl = Table(
                box=None,
                show_header=False,
                show_edge=False,
                padding=(0, 1),
            )
        for col_name in columns:
            tbl.add_column(col_name, no_wrap=True)
        return tbl

    def table(
        self,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        pretty: bool = True,
    ) -> None:
        """Render a styled Rich table from plain rows (cells are stringified)."""
        tbl = self.new_table(columns, pretty=pretty)
        for row in rows:
            tbl.add_row(*(str(cell) for cell in row))
        self._console.print(tbl)

    # ------------------------------------------------------------------ #
    #  Utility
    # ------------------------------------------------------------------ #

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Proxy to :meth:`rich.console.Console.print`."""
        self._console.print(*args, **kwargs)

    def blank(self, count: int = 1) -> None:
        """Print *count* blank lines."""
        for _ in range(count):
            self._console.print()

    def divider(self, style: str = "dim") -> None:
        """Print a thin horizontal rule."""
        self._console.rule(style=style)

    def export_text(self) -> str:
        """Export recorded console output as plain text (requires ``record=True``)."""
        return self._console.export_text()
