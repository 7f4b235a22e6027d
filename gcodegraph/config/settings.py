"""
Editor settings — single source of truth for parser, view and edit defaults.

Loads configs/editor_settings.json once and exposes typed accessors.  Set
``GCODEGRAPH_SETTINGS`` to point at another file.  Keys missing from the
file fall back to the built-in defaults below.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path


SETTINGS_PATH = Path(__file__).resolve().parents[2] / "configs" / "editor_settings.json"

_DEFAULTS: dict = {
    "parser": {
        "layer_band_mm": 0.05,
        "epsilon": 1e-6,
    },
    "view": {
        "visible_labels": [
            "preprint", "planar_extrusion", "nonplanar_extrusion",
            "retraction", "deretraction", "wipe", "lift_z", "travel",
        ],
        "z_min": None,
        "z_max": None,
    },
    "edit": {
        "subdivide_max_mm": 5.0,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8000,
    },
}


def _settings_path() -> Path:
    override = os.environ.get("GCODEGRAPH_SETTINGS")
    return Path(override) if override else SETTINGS_PATH


def load_settings(path: Path | None = None) -> dict:
    """Read a settings file and merge it over the defaults (one level deep)."""
    merged = {section: dict(values) for section, values in _DEFAULTS.items()}
    p = path or _settings_path()
    if p.exists():
        data = json.loads(p.read_text(encoding="utf-8"))
        for section, values in data.items():
            merged.setdefault(section, {}).update(values)
    return merged


@lru_cache(maxsize=1)
def _load() -> dict:
    return load_settings()


class _Settings:
    """Typed accessor for editor settings."""

    # ── parser ──────────────────────────────────────────────────────
    @property
    def layer_band_mm(self) -> float:
        return float(_load()["parser"]["layer_band_mm"])

    @property
    def epsilon(self) -> float:
        return float(_load()["parser"]["epsilon"])

    # ── view ────────────────────────────────────────────────────────
    @property
    def visible_labels(self) -> list[str]:
        return list(_load()["view"]["visible_labels"])

    @property
    def z_min(self) -> float | None:
        return _load()["view"]["z_min"]

    @property
    def z_max(self) -> float | None:
        return _load()["view"]["z_max"]

    # ── edit ────────────────────────────────────────────────────────
    @property
    def subdivide_max_mm(self) -> float:
        return float(_load()["edit"]["subdivide_max_mm"])

    # ── server ──────────────────────────────────────────────────────
    @property
    def host(self) -> str:
        return _load()["server"]["host"]

    @property
    def port(self) -> int:
        return int(_load()["server"]["port"])

    def reload(self) -> None:
        """Drop the cached file contents (after editing the file or env)."""
        _load.cache_clear()


settings = _Settings()
