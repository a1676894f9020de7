"""Load and validate the polled-source configuration.

The config lives in ``sources.yaml`` alongside this module (override with
the ``SOURCES_CONFIG_PATH`` setting).  It is read once at startup; every
problem found is collected and reported in a single
``ConfigValidationError`` so a bad deploy fails with the full list.

Usage::

    from skywatch.sync.sources import build_descriptors, load_source_config

    specs = load_source_config(settings=settings)
    descriptors = build_descriptors(specs, fetchers, targets)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from skywatch.config import Settings, get_settings
from skywatch.errors import ConfigValidationError
from skywatch.storage.base import DurableTarget
from skywatch.sync.base import FetchOperation, SourceDescriptor

logger = logging.getLogger("skywatch.sync.sources")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sources.yaml"

# Postgres advisory lock keys are signed 64-bit integers.
_LOCK_ID_MIN = -(2**63)
_LOCK_ID_MAX = 2**63 - 1


@dataclass(frozen=True)
class SourceSpec:
    """One validated entry of ``sources.yaml``, before wiring.

    Attributes:
        name:      Source slug (the YAML key).
        lock_id:   Distributed lock id.
        interval:  Resolved poll interval in seconds.
        fetcher:   Registered fetcher name.
        cache_key: Redis key.
        cache_ttl: Redis expiry in seconds.
        target:    Registered durable target name.
    """

    name: str
    lock_id: int
    interval: int
    fetcher: str
    cache_key: str
    cache_ttl: int
    target: str


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError:     If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Source config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_and_build(raw: dict, settings: Settings) -> list[SourceSpec]:
    """Validate the raw YAML dict and build one SourceSpec per source.

    Raises:
        ConfigValidationError: If any entry is missing fields or invalid, or
            two sources share a lock id.
    """
    errors: list[str] = []

    sources_raw = raw.get("sources")
    if not isinstance(sources_raw, dict) or not sources_raw:
        raise ConfigValidationError("'sources' section is missing or empty")

    specs: list[SourceSpec] = []
    seen_locks: dict[int, str] = {}

    for name, cfg in sources_raw.items():
        if not isinstance(cfg, dict):
            errors.append(f"sources.{name} must be a mapping")
            continue

        missing = [
            key
            for key in ("lock_id", "interval", "fetcher", "target")
            if key not in cfg
        ]
        if missing:
            errors.extend(f"Missing required key '{k}' in sources.{name}" for k in missing)
            continue

        # ── lock_id ──
        lock_id = cfg["lock_id"]
        if not _is_int(lock_id) or not (_LOCK_ID_MIN <= lock_id <= _LOCK_ID_MAX):
            errors.append(f"sources.{name}.lock_id must be a 64-bit integer, got {lock_id!r}")
            continue
        if lock_id in seen_locks:
            errors.append(
                f"sources.{name}.lock_id {lock_id} is already used by '{seen_locks[lock_id]}'"
            )
            continue
        seen_locks[lock_id] = name

        # ── interval ──
        interval = cfg["interval"]
        if isinstance(interval, str):
            resolved = getattr(settings, interval, None)
            if not _is_int(resolved):
                errors.append(
                    f"sources.{name}.interval refers to unknown setting '{interval}'"
                )
                continue
            interval = resolved
        if not _is_int(interval) or interval <= 0:
            errors.append(f"sources.{name}.interval must be a positive integer, got {interval!r}")
            continue

        # ── cache ──
        cache_ttl = cfg.get("cache_ttl", interval)
        if not _is_int(cache_ttl) or cache_ttl <= 0:
            errors.append(f"sources.{name}.cache_ttl must be a positive integer, got {cache_ttl!r}")
            continue

        specs.append(
            SourceSpec(
                name=str(name),
                lock_id=lock_id,
                interval=interval,
                fetcher=str(cfg["fetcher"]),
                cache_key=str(cfg.get("cache_key") or f"skywatch:{name}"),
                cache_ttl=cache_ttl,
                target=str(cfg["target"]),
            )
        )

    if errors:
        raise ConfigValidationError(
            f"source config has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return specs


def load_source_config(
    path: Path | None = None, settings: Settings | None = None
) -> list[SourceSpec]:
    """Load and validate the source config from disk.

    Args:
        path:     Override path to YAML. Falls back to
                  ``settings.sources_config_path``, then the bundled file.
        settings: Settings used to resolve named intervals.

    Returns:
        Validated SourceSpec list in file order.
    """
    s = settings or get_settings()
    target = path or (Path(s.sources_config_path) if s.sources_config_path else _CONFIG_PATH)
    specs = _validate_and_build(_load_yaml(target), s)
    logger.info("Loaded %d sources from %s", len(specs), target)
    return specs


def build_descriptors(
    specs: list[SourceSpec],
    fetchers: Mapping[str, FetchOperation],
    targets: Mapping[str, DurableTarget],
) -> list[SourceDescriptor]:
    """Wire validated specs to their fetch operations and durable targets.

    Raises:
        ConfigValidationError: If an entry names an unregistered fetcher or
            target.
    """
    errors: list[str] = []
    descriptors: list[SourceDescriptor] = []

    for spec in specs:
        fetch = fetchers.get(spec.fetcher)
        target = targets.get(spec.target)
        if fetch is None:
            errors.append(
                f"sources.{spec.name}.fetcher '{spec.fetcher}' is not registered. "
                f"Available: {sorted(fetchers)}"
            )
        if target is None:
            errors.append(
                f"sources.{spec.name}.target '{spec.target}' is not registered. "
                f"Available: {sorted(targets)}"
            )
        if fetch is None or target is None:
            continue
        descriptors.append(
            SourceDescriptor(
                name=spec.name,
                lock_id=spec.lock_id,
                interval=spec.interval,
                fetch=fetch,
                cache_key=spec.cache_key,
                cache_ttl=spec.cache_ttl,
                target=target,
            )
        )

    if errors:
        raise ConfigValidationError(
            f"source config has {len(errors)} wiring error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )
    return descriptors
