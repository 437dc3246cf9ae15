"""
bingrep Configuration Management
=================================

Centralized configuration for bingrep using Python dataclasses and
TOML-based persistence.

Configuration is kept separate from code: every tunable (logging,
file-size limits, search chunking, display defaults) lives in a
``config.toml`` file next to the project root, and each section falls
back to the dataclass defaults below when absent.

References:
    - PEP 681 -- Data Class Transforms (2022).
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


# ---------------------------------------------------------------------------
# Default configuration file path relative to the project root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"


# ============================ Sections =====================================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Global settings: logging verbosity and log destinations."""

    log_level: str = "WARNING"
    log_file: str = ""
    log_json: bool = False
    debug: bool = False


@dataclass(frozen=False, slots=True)
class SearchConfig:
    """Configuration for the pattern search and input limits.

    ``chunk_size`` of ``0`` scans the whole buffer in one pass; any
    positive value scans in chunks that overlap by ``len(needle) - 1``
    bytes so no match straddling a boundary is lost.
    """

    max_file_size: int = 536_870_912  # 512 MiB
    chunk_size: int = 0
    encoding: str = "utf-8"


@dataclass(frozen=False, slots=True)
class DisplayConfig:
    """Presentation defaults for the console renderer."""

    pretty: bool = False
    color: bool | None = None
    max_matches: int = 1000


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class BingrepConfig:
    """Master configuration aggregating all sections.

    Usage:
        >>> config = BingrepConfig.load()                  # from default path
        >>> config = BingrepConfig.load("custom.toml")     # from custom path
        >>> config.search.chunk_size
        0
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)

    # ------------------------------------------------------------------ #
    #  TOML Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: str | Path | None = None) -> BingrepConfig:
        """Load configuration from a TOML file.

        If *path* is ``None`` the loader looks for ``config.toml`` in the
        project root.  Missing keys fall back to dataclass defaults.

        Args:
            path: Filesystem path to a TOML configuration file.

        Returns:
            A fully-populated :class:`BingrepConfig` instance.

        Raises:
            FileNotFoundError: If the specified path does not exist
                *and* was explicitly provided by the caller.
        """
        config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(
                    f"Configuration file not found: {config_path}"
                )
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=cls._build_section(GlobalConfig, raw.get("global", {})),
            search=cls._build_section(SearchConfig, raw.get("search", {})),
            display=cls._build_section(DisplayConfig, raw.get("display", {})),
        )

    # ------------------------------------------------------------------ #
    #  Serialisation helpers
    # ------------------------------------------------------------------ #

    def to_dict(self) -> dict[str, Any]:
        """Serialise the entire configuration tree to a plain dictionary."""
        return asdict(self)

    # ------------------------------------------------------------------ #
    #  Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _build_section(cls: type, data: dict[str, Any]) -> Any:
        """Instantiate a dataclass *cls* using only the keys it declares.

        Unknown keys in the TOML source are ignored.
        """
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)

