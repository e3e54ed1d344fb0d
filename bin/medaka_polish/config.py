"""Parse and validate the optional medaka-polish tool configuration TOML.

The file only names executables and a couple of tuning knobs; every key is
optional and falls back to the tool names found on ``PATH``::

    [tools]
    medaka = "/opt/medaka/bin/medaka"
    bcftools = "bcftools"

    [stitch]
    max_threads = 8
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

# The stitcher never gets more threads than this
STITCH_THREAD_CAP = 8


class ConfigError(Exception):
    """Raised when a tool configuration file fails validation."""


@dataclass
class ToolPaths:
    """Executables invoked by the pipeline ([tools] section)."""

    medaka: str = "medaka"
    mini_align: str = "mini_align"
    bgzip: str = "bgzip"
    bcftools: str = "bcftools"
    version_report: str = "medaka_version_report"


@dataclass
class StitchConfig:
    """Stitching settings ([stitch] section)."""

    max_threads: int = STITCH_THREAD_CAP


@dataclass
class PolishConfig:
    """Complete tool configuration."""

    tools: ToolPaths = field(default_factory=ToolPaths)
    stitch: StitchConfig = field(default_factory=StitchConfig)


_SECTIONS = {"tools", "stitch"}


def load_config(path: Path | str | None) -> PolishConfig:
    """Load a tool configuration file, or the defaults when *path* is None.

    Raises
    ------
    ConfigError
        If the file is missing, is not valid TOML, or holds unknown keys or
        values of the wrong type.
    """
    if path is None:
        return PolishConfig()

    path = Path(path)
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from None

    unknown = set(data) - _SECTIONS
    if unknown:
        raise ConfigError(f"Unknown section(s) in {path}: {sorted(unknown)}")

    tool_data = data.get("tools", {})
    _check_keys(tool_data, ToolPaths, "tools")
    for key, value in tool_data.items():
        if not isinstance(value, str) or not value:
            raise ConfigError(f"[tools] {key} must be a non-empty string")

    stitch_data = data.get("stitch", {})
    _check_keys(stitch_data, StitchConfig, "stitch")
    max_threads = stitch_data.get("max_threads", STITCH_THREAD_CAP)
    if (
        isinstance(max_threads, bool)
        or not isinstance(max_threads, int)
        or not 1 <= max_threads <= STITCH_THREAD_CAP
    ):
        raise ConfigError(
            f"[stitch] max_threads must be an integer from 1 to {STITCH_THREAD_CAP}"
        )

    return PolishConfig(
        tools=ToolPaths(**tool_data),
        stitch=StitchConfig(max_threads=max_threads),
    )


def _check_keys(section: dict, cls: type, name: str) -> None:
    """Reject keys that the section's dataclass does not define."""
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    allowed = {f.name for f in fields(cls)}
    for key in section:
        if key not in allowed:
            raise ConfigError(
                f"Unknown key '{key}' in [{name}]: expected one of {sorted(allowed)}"
            )
