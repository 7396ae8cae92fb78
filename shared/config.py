"""
ElfScope Configuration Management
==================================

Centralized configuration for the ElfScope toolkit using Python
dataclasses and TOML-based persistence.

References:
    - Wiggins, A. (2011). The Twelve-Factor App. https://12factor.net/
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Default configuration file path relative to the project root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"


# ========================== Tool-Specific Configs ==========================


@dataclass(frozen=False, slots=True)
class ImageConfig:
    """Configuration for ELF image loading and symbolication.

    Attributes:
        max_file_size: Largest file the engine will read into memory.
        verbose_logging: Emit diagnostics for malformed headers and
            out-of-bounds string-table offsets.
        prebuild_symbol_index: Build the sorted symbol index right after
            loading instead of on the first address query.
        max_symbols_displayed: Row limit for the console symbol table.
    """

    max_file_size: int = 268_435_456  # 256 MiB
    verbose_logging: bool = False
    prebuild_symbol_index: bool = False
    max_symbols_displayed: int = 200


@dataclass(frozen=False, slots=True)
class ServerConfig:
    """Configuration for the local-socket acceptor.

    The supervising process hands listening sockets over through
    *takeover_env_var*, formatted as ``"path:fd path:fd ..."``.
    """

    socket_path: str = "/tmp/elfscope.sock"
    takeover_env_var: str = "SOCKET_TAKEOVER"
    backlog: int = 5


# =========================== Global Settings ===============================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Global settings shared across all ElfScope modules."""

    log_level: str = "INFO"
    log_file: str | None = None
    log_json: bool = False
    version: str = "1.0.0"


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class ScopeConfig:
    """Master configuration aggregating all tool-specific and global settings.

    Usage:
        >>> config = ScopeConfig.load()                  # from default path
        >>> config = ScopeConfig.load("custom.toml")     # from custom path
        >>> config.image.max_file_size
        268435456
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # ------------------------------------------------------------------ #
    #  TOML Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: str | Path | None = None) -> ScopeConfig:
        """Load configuration from a TOML file.

        If *path* is ``None`` the loader looks for ``config.toml`` in the
        project root.  Missing keys fall back to dataclass defaults.

        Args:
            path: Filesystem path to a TOML configuration file.

        Returns:
            A fully-populated :class:`ScopeConfig` instance.

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
            image=cls._build_section(ImageConfig, raw.get("image", {})),
            server=cls._build_section(ServerConfig, raw.get("server", {})),
        )

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
