"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from placematch.common.errors import ConfigError

SECTIONS = {
    "directory": {
        "base_url",
        "api_key_env",
        "language_code",
        "region_label",
        "region_bbox",
        "search_radius_m",
        "max_results",
        "search_field_mask",
        "details_field_mask",
        "max_photos",
        "max_reviews",
        "photo_max_width",
        "photo_max_height",
        "resolve_photos",
    },
    "http": {"requests_per_second", "max_retries", "backoff_seconds", "timeout"},
    "matching": {
        "min_confidence",
        "name_weight",
        "location_weight",
        "coordinate_refresh_confidence",
        "linked_confidence",
    },
    "pipeline": {"save_interval", "freshness_days", "cache_ttl_seconds"},
    "costs_per_1000": {"search", "details", "photo"},
    "acquisition": {"workers", "save_interval", "delay_seconds", "default_region"},
    "files": {
        "input",
        "output",
        "progress",
        "stats",
        "acquisition_results",
        "applied_output",
        "backup_dir",
    },
}

MAX_WORKERS = 8


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_range(value: object, ctx: str, *, minimum: float, maximum: float | None = None) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{ctx} must be a number")
    if value < minimum or (maximum is not None and value > maximum):
        bound = f"[{minimum}, {maximum}]" if maximum is not None else f">= {minimum}"
        raise ConfigError(f"{ctx} must be in {bound}, got {value}")


def validate_enrichment_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_required_keys(cfg, set(SECTIONS), "enrichment config")
    _assert_no_unknown_keys(cfg, set(SECTIONS), "enrichment config", allow_unknown)
    for section, keys in SECTIONS.items():
        _assert_required_keys(cfg[section], keys, section)
        _assert_no_unknown_keys(cfg[section], keys, section, allow_unknown)

    directory = cfg["directory"]
    _assert_required_keys(
        directory["region_bbox"],
        {"low_lat", "low_lng", "high_lat", "high_lng"},
        "directory.region_bbox",
    )
    _assert_range(directory["search_radius_m"], "directory.search_radius_m", minimum=1)
    _assert_range(directory["max_results"], "directory.max_results", minimum=1, maximum=20)
    if not directory["details_field_mask"]:
        raise ConfigError("directory.details_field_mask must be a non-empty list")

    http = cfg["http"]
    _assert_range(http["requests_per_second"], "http.requests_per_second", minimum=0.01)
    _assert_range(http["max_retries"], "http.max_retries", minimum=1)
    if not isinstance(http["backoff_seconds"], list) or not http["backoff_seconds"]:
        raise ConfigError("http.backoff_seconds must be a non-empty list")
    _assert_required_keys(http["timeout"], {"connect", "read"}, "http.timeout")

    matching = cfg["matching"]
    for key in ("min_confidence", "coordinate_refresh_confidence", "linked_confidence"):
        _assert_range(matching[key], f"matching.{key}", minimum=0, maximum=100)
    weight_total = float(matching["name_weight"]) + float(matching["location_weight"])
    if abs(weight_total - 1.0) > 1e-6:
        raise ConfigError(f"matching weights must sum to 1.0, got {weight_total}")

    pipeline = cfg["pipeline"]
    _assert_range(pipeline["save_interval"], "pipeline.save_interval", minimum=1)
    _assert_range(pipeline["freshness_days"], "pipeline.freshness_days", minimum=0)
    _assert_range(pipeline["cache_ttl_seconds"], "pipeline.cache_ttl_seconds", minimum=0)

    acquisition = cfg["acquisition"]
    _assert_range(acquisition["workers"], "acquisition.workers", minimum=1, maximum=MAX_WORKERS)
    _assert_range(acquisition["save_interval"], "acquisition.save_interval", minimum=1)
    delay = acquisition["delay_seconds"]
    if not isinstance(delay, list) or len(delay) != 2 or delay[0] > delay[1]:
        raise ConfigError("acquisition.delay_seconds must be a [low, high] pair")

    return cfg
