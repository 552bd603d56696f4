"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from placematch.common.errors import ConfigError, SetupError
from placematch.common.fs import read_yaml
from placematch.common.schema import validate_enrichment_config

CONFIG_FILENAME = "enrichment.yml"


@dataclass(frozen=True)
class ConfigBundle:
    enrichment: dict

    def path(self, data_dir: Path, key: str) -> Path:
        return data_dir / self.enrichment["files"][key]


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    overlay_path = overlay_config_dir / CONFIG_FILENAME if overlay_config_dir is not None else None
    cfg = _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path)
    return ConfigBundle(enrichment=validate_enrichment_config(cfg, allow_unknown=allow_unknown))


def resolve_api_key(bundle: ConfigBundle, environ: dict[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    name = bundle.enrichment["directory"]["api_key_env"]
    value = env.get(name, "").strip()
    if not value:
        raise SetupError(f"{name} environment variable not set")
    return value
