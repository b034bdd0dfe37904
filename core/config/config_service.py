"""Typed, layered configuration loader with precedence handling.

Layers (later wins):

0. embedded defaults (``_DEFAULTS``)
1. ``defaults.ini`` shipped next to the deployment
2. environment overlay (``DOCSIGN_<SECTION>__<KEY>``), only if an environ
   mapping is handed in explicitly
3. machine INI (operator overrides)

The engine never reads this module's state implicitly; the composition root
builds an :class:`AppConfig` and passes the relevant pieces into
constructors.
"""
from __future__ import annotations

import configparser
from dataclasses import dataclass, fields
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, get_type_hints

# --------------------------------------------------------------------------- #
#  Default definitions
# --------------------------------------------------------------------------- #

ENV_PREFIX = "DOCSIGN_"

_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "Signing": {
        "base_url": "http://localhost:3000",
        "token_ttl_days": "7",
        "document_ttl_days": "30",
        "default_rejection_reason": "No reason provided",
    },
    "Storage": {
        "root": "data",
        "uploads_dir": "uploads",
        "signed_dir": "signed",
        "database": "data/docsign.db",
    },
    "Audit": {
        "queue_size": "1000",
        "query_limit": "100",
        "database": "data/audit.db",
    },
    "Logging": {
        "level": "INFO",
        "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
    },
    "Security": {
        "signature_key": "",
    },
}


# --------------------------------------------------------------------------- #
#  Datamodels
# --------------------------------------------------------------------------- #

@dataclass
class SigningConfig:
    base_url: str = "http://localhost:3000"
    token_ttl_days: int = 7
    document_ttl_days: int = 30
    default_rejection_reason: str = "No reason provided"


@dataclass
class StorageConfig:
    root: Path = Path("data")
    uploads_dir: str = "uploads"
    signed_dir: str = "signed"
    database: Path = Path("data/docsign.db")


@dataclass
class AuditConfig:
    queue_size: int = 1000
    query_limit: int = 100
    database: Path = Path("data/audit.db")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass
class SecurityConfig:
    signature_key: str = ""


@dataclass
class AppConfig:
    signing: SigningConfig
    storage: StorageConfig
    audit: AuditConfig
    logging: LoggingConfig
    security: SecurityConfig


# --------------------------------------------------------------------------- #
#  Helpers
# --------------------------------------------------------------------------- #

def _cp_to_dict(cp: configparser.ConfigParser) -> Dict[str, Dict[str, Any]]:
    data: Dict[str, Dict[str, Any]] = {}
    for section in cp.sections():
        data[section] = {k: v for k, v in cp.items(section, raw=True)}
    return data


def _read_ini(path: Path) -> Dict[str, Dict[str, Any]]:
    cp = configparser.ConfigParser(interpolation=None)
    cp.read(path, encoding="utf-8")
    return _cp_to_dict(cp)


def _apply(target: Dict[str, Dict[str, Any]], source: Dict[str, Dict[str, Any]],
           layer: str, origin: str,
           sources: Dict[Tuple[str, str], Dict[str, str]]) -> None:
    for section, items in source.items():
        sec = target.setdefault(section, {})
        for key, value in items.items():
            sec[key] = value
            sources[(section, key)] = {"layer": layer, "source": origin}


def _cast(value: Any, typ: type) -> Any:
    if typ is Path:
        return Path(str(value)).expanduser()
    if typ is bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    if typ is int:
        return int(value)
    if typ is float:
        return float(value)
    return typ(value)


def _build_dataclass(cls: type, data: Dict[str, Any]) -> Any:
    hints = get_type_hints(cls)
    kwargs = {}
    for field in fields(cls):
        val = data.get(field.name, field.default)
        kwargs[field.name] = _cast(val, hints[field.name])
    return cls(**kwargs)


def _env_overlays(environ: Mapping[str, str]) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for env_key, value in environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        remainder = env_key[len(ENV_PREFIX):]
        parts = remainder.split("__", 1)
        if len(parts) != 2:
            continue
        section, key = parts
        result.setdefault(section.title(), {})[key.lower()] = value
    return result


# --------------------------------------------------------------------------- #
#  ConfigService
# --------------------------------------------------------------------------- #


class ConfigService:
    """Facade merging layered configuration with type safety."""

    def __init__(
        self,
        *,
        defaults_ini: Optional[Path] = None,
        machine_ini: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._lock = RLock()
        self._defaults_ini = Path(defaults_ini) if defaults_ini else None
        self._machine_ini = Path(machine_ini) if machine_ini else None
        self._environ: Mapping[str, str] = dict(environ or {})
        self.reload()

    # ------------------------------------------------------------------ #
    def reload(self) -> None:
        with self._lock:
            merged: Dict[str, Dict[str, Any]] = {}
            sources: Dict[Tuple[str, str], Dict[str, str]] = {}

            # Layer 0: embedded defaults
            _apply(merged, _DEFAULTS, "code", "embedded", sources)

            # Layer 1: defaults.ini
            if self._defaults_ini and self._defaults_ini.exists():
                _apply(merged, _read_ini(self._defaults_ini), "defaults.ini",
                       str(self._defaults_ini), sources)

            # Layer 2: environment variables
            _apply(merged, _env_overlays(self._environ), "env", "environ", sources)

            # Layer 3: machine config
            if self._machine_ini and self._machine_ini.exists():
                _apply(merged, _read_ini(self._machine_ini), "machine",
                       str(self._machine_ini), sources)

            self._merged = merged
            self._sources = sources

            self.signing = _build_dataclass(SigningConfig, merged.get("Signing", {}))
            self.storage = _build_dataclass(StorageConfig, merged.get("Storage", {}))
            self.audit = _build_dataclass(AuditConfig, merged.get("Audit", {}))
            self.logging = _build_dataclass(LoggingConfig, merged.get("Logging", {}))
            self.security = _build_dataclass(SecurityConfig, merged.get("Security", {}))

    # ------------------------------------------------------------------ #
    def get(self, section: str, key: str, *, cast: Callable[[Any], Any] | type = str) -> Any:
        val = self._merged.get(section, {}).get(key)
        if val is None:
            return None
        if isinstance(cast, type):
            return _cast(val, cast)
        return cast(val)

    def meta_source(self, section: str, key: str) -> Dict[str, str] | None:
        return self._sources.get((section, key))

    def app_config(self) -> AppConfig:
        with self._lock:
            return AppConfig(
                signing=self.signing,
                storage=self.storage,
                audit=self.audit,
                logging=self.logging,
                security=self.security,
            )
