from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .execution.libraries import SUPPORTED_LIBRARIES, validate_library_table
from .execution.types import LibraryDescriptor

API_URL_ENV = "LEARNIX_API_URL"
PREVIEW_MODES = {"component", "frame"}


def _default_settings_path() -> Path:
    """Return bundled default settings TOML path.

    Example:
        ```python
        path = _default_settings_path()
        ```
    """
    return Path(__file__).with_name("default_settings.toml")


def _read_settings_toml(path: Path) -> dict[str, Any]:
    """Read settings TOML and return the flattened settings dictionary.

    Example:
        ```python
        raw = _read_settings_toml(Path("/tmp/learnix.toml"))
        ```
    """
    if not path.exists():
        return {
            "api_url": "http://localhost:3000/api",
            "remote_timeout_seconds": 30,
            "transpiler_url": "https://unpkg.com/@babel/standalone/babel.min.js",
            "transpiler_global": "Babel",
            "transpiler_presets": ["env", "react"],
            "transpiler_filename": "main.jsx",
            "max_output_kb": 128,
            "eval_timeout_seconds": 5,
            "preview_mode": "component",
            "scroll_tolerance_px": 50,
            "initial_check_delay_seconds": 0.1,
        }
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    settings_obj = raw.get("learnix", raw)
    if not isinstance(settings_obj, dict):
        raise ValueError("Settings config must be a TOML table")
    out = {key: value for key, value in settings_obj.items() if key != "libraries"}
    if "libraries" in raw:
        out["libraries"] = raw["libraries"]
    return out


def _list_of_str(value: Any, field_name: str) -> list[str]:
    """Validate and normalize a list-of-strings settings field.

    Example:
        ```python
        presets = _list_of_str(["env", "react"], "transpiler_presets")
        ```
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be a list of strings")
    out: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"'{field_name}' must contain only strings")
        out.append(item)
    return out


_DEFAULT_SETTINGS_RAW = _read_settings_toml(_default_settings_path())
DEFAULT_API_URL = str(_DEFAULT_SETTINGS_RAW.get("api_url", "http://localhost:3000/api"))
DEFAULT_REMOTE_TIMEOUT_SECONDS = float(_DEFAULT_SETTINGS_RAW.get("remote_timeout_seconds", 30))
DEFAULT_TRANSPILER_URL = str(
    _DEFAULT_SETTINGS_RAW.get("transpiler_url", "https://unpkg.com/@babel/standalone/babel.min.js")
)
DEFAULT_TRANSPILER_GLOBAL = str(_DEFAULT_SETTINGS_RAW.get("transpiler_global", "Babel"))
DEFAULT_TRANSPILER_PRESETS = _list_of_str(
    _DEFAULT_SETTINGS_RAW.get("transpiler_presets", ["env", "react"]), "transpiler_presets"
)
DEFAULT_TRANSPILER_FILENAME = str(_DEFAULT_SETTINGS_RAW.get("transpiler_filename", "main.jsx"))
DEFAULT_MAX_OUTPUT_KB = int(_DEFAULT_SETTINGS_RAW.get("max_output_kb", 128))
DEFAULT_EVAL_TIMEOUT_SECONDS = float(_DEFAULT_SETTINGS_RAW.get("eval_timeout_seconds", 5))
DEFAULT_PREVIEW_MODE = str(_DEFAULT_SETTINGS_RAW.get("preview_mode", "component"))
DEFAULT_SCROLL_TOLERANCE_PX = int(_DEFAULT_SETTINGS_RAW.get("scroll_tolerance_px", 50))
DEFAULT_INITIAL_CHECK_DELAY_SECONDS = float(
    _DEFAULT_SETTINGS_RAW.get("initial_check_delay_seconds", 0.1)
)
DEFAULT_LIBRARIES = validate_library_table(_DEFAULT_SETTINGS_RAW.get("libraries")) or dict(
    SUPPORTED_LIBRARIES
)


@dataclass(slots=True)
class LearnixSettings:
    """Runtime settings for the execution bridge and the completion gate.

    Example:
        ```python
        settings = LearnixSettings(api_url="https://learnix.example/api", preview_mode="frame")
        ```
    """

    api_url: str = DEFAULT_API_URL
    remote_timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT_SECONDS
    transpiler_url: str = DEFAULT_TRANSPILER_URL
    transpiler_global: str = DEFAULT_TRANSPILER_GLOBAL
    transpiler_presets: list[str] = field(default_factory=lambda: DEFAULT_TRANSPILER_PRESETS.copy())
    transpiler_filename: str = DEFAULT_TRANSPILER_FILENAME
    max_output_kb: int = DEFAULT_MAX_OUTPUT_KB
    eval_timeout_seconds: float = DEFAULT_EVAL_TIMEOUT_SECONDS
    preview_mode: str = DEFAULT_PREVIEW_MODE
    scroll_tolerance_px: int = DEFAULT_SCROLL_TOLERANCE_PX
    initial_check_delay_seconds: float = DEFAULT_INITIAL_CHECK_DELAY_SECONDS
    libraries: dict[str, LibraryDescriptor] = field(default_factory=lambda: dict(DEFAULT_LIBRARIES))
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate field values after dataclass initialization.

        Example:
            ```python
            LearnixSettings(preview_mode="component")
            ```
        """
        if self.preview_mode not in PREVIEW_MODES:
            raise ValueError("preview_mode must be 'component' or 'frame'")
        if self.remote_timeout_seconds <= 0:
            raise ValueError("remote_timeout_seconds must be positive")
        if self.max_output_kb <= 0:
            raise ValueError("max_output_kb must be positive")
        if self.eval_timeout_seconds <= 0:
            raise ValueError("eval_timeout_seconds must be positive")
        if self.scroll_tolerance_px < 0:
            raise ValueError("scroll_tolerance_px must not be negative")
        if self.initial_check_delay_seconds < 0:
            raise ValueError("initial_check_delay_seconds must not be negative")
        self.api_url = self.api_url.rstrip("/")

    @classmethod
    def from_file(cls, config_path: str) -> "LearnixSettings":
        """Create a settings instance from a TOML file.

        `[libraries.<name>]` tables extend or override the default allow-list.

        Example:
            ```python
            settings = LearnixSettings.from_file("/tmp/learnix.toml")
            ```
        """
        raw = _read_settings_toml(Path(config_path))
        libraries = dict(DEFAULT_LIBRARIES)
        libraries.update(validate_library_table(raw.get("libraries")))
        return cls(
            api_url=str(raw.get("api_url", DEFAULT_API_URL)),
            remote_timeout_seconds=float(
                raw.get("remote_timeout_seconds", DEFAULT_REMOTE_TIMEOUT_SECONDS)
            ),
            transpiler_url=str(raw.get("transpiler_url", DEFAULT_TRANSPILER_URL)),
            transpiler_global=str(raw.get("transpiler_global", DEFAULT_TRANSPILER_GLOBAL)),
            transpiler_presets=_list_of_str(
                raw.get("transpiler_presets", DEFAULT_TRANSPILER_PRESETS), "transpiler_presets"
            ),
            transpiler_filename=str(raw.get("transpiler_filename", DEFAULT_TRANSPILER_FILENAME)),
            max_output_kb=int(raw.get("max_output_kb", DEFAULT_MAX_OUTPUT_KB)),
            eval_timeout_seconds=float(raw.get("eval_timeout_seconds", DEFAULT_EVAL_TIMEOUT_SECONDS)),
            preview_mode=str(raw.get("preview_mode", DEFAULT_PREVIEW_MODE)),
            scroll_tolerance_px=int(raw.get("scroll_tolerance_px", DEFAULT_SCROLL_TOLERANCE_PX)),
            initial_check_delay_seconds=float(
                raw.get("initial_check_delay_seconds", DEFAULT_INITIAL_CHECK_DELAY_SECONDS)
            ),
            libraries=libraries,
            config_path=config_path,
        )

    @classmethod
    def from_env(cls, config_path: str | None = None) -> "LearnixSettings":
        """Load settings from an optional file, then apply environment overrides.

        Example:
            ```python
            settings = LearnixSettings.from_env()
            ```
        """
        settings = cls.from_file(config_path) if config_path else cls()
        api_url = os.environ.get(API_URL_ENV, "").strip()
        if api_url:
            settings = replace(settings, api_url=api_url)
        return settings
