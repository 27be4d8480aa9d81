from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from mldeploy.services.config import DeploySettingsConfig


logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_.\-]+)\}")


class SettingsServiceError(RuntimeError):
    pass


class SettingsNotFoundError(SettingsServiceError):
    pass


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with `overlay` merged on top of `base` (nested dicts merged, rest replaced)."""

    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class SettingsService:
    """Resolves resource definitions (JSON files) into request payloads.

    Nothing is cached: every call re-reads disk and returns a fresh dict, so callers
    may safely derive new payloads from the result without affecting later reads.
    """

    def __init__(self, config: DeploySettingsConfig) -> None:
        self._config = config

    @property
    def environment(self) -> str:
        return self._config.environment

    @staticmethod
    def _read_json(path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise SettingsServiceError(f"Invalid JSON in settings file: {path}") from exc
        except OSError as exc:
            raise SettingsServiceError(f"Failed reading settings file: {path}") from exc

    def _env_properties(self) -> dict[str, Any]:
        path = self._config.config_dir / "env" / f"{self._config.environment}.json"
        if not path.is_file():
            return {}
        properties = self._read_json(path)
        if not isinstance(properties, dict):
            raise SettingsServiceError(f"Environment properties must be a JSON object: {path}")
        return properties

    @classmethod
    def _substitute(cls, value: Any, properties: dict[str, Any]) -> Any:
        if isinstance(value, str):
            whole = _PLACEHOLDER.fullmatch(value)
            if whole and whole.group(1) in properties:
                # Keep the property's own type (numbers, lists) when it is the whole value.
                return properties[whole.group(1)]
            return _PLACEHOLDER.sub(
                lambda m: str(properties[m.group(1)]) if m.group(1) in properties else m.group(0),
                value,
            )
        if isinstance(value, dict):
            return {k: cls._substitute(v, properties) for k, v in value.items()}
        if isinstance(value, list):
            return [cls._substitute(v, properties) for v in value]
        return value

    def _overlay_path(self, namespace: str) -> Path:
        return self._config.config_dir / "env" / self._config.environment / f"{namespace}.json"

    def resolve(self, namespace: str) -> dict[str, Any]:
        """Load the settings of one named resource, e.g. "databases/content"."""

        base_path = self._config.config_dir / f"{namespace}.json"
        overlay_path = self._overlay_path(namespace)
        if not base_path.is_file() and not overlay_path.is_file():
            raise SettingsNotFoundError(f"No settings found for {namespace!r} under {self._config.config_dir}")

        settings: dict[str, Any] = {}
        for path in (base_path, overlay_path):
            if not path.is_file():
                continue
            loaded = self._read_json(path)
            if not isinstance(loaded, dict):
                raise SettingsServiceError(f"Settings must be a JSON object: {path}")
            settings = deep_merge(settings, loaded)

        logger.debug("Resolved settings for %s (env=%s)", namespace, self._config.environment)
        return self._substitute(settings, self._env_properties())

    def list_items(self, namespace: str) -> list[str]:
        """Names of the definitions registered under a multi-object namespace (sorted)."""

        names: set[str] = set()
        for directory in (
            self._config.config_dir / namespace,
            self._config.config_dir / "env" / self._config.environment / namespace,
        ):
            if directory.is_dir():
                names.update(p.stem for p in directory.glob("*.json") if p.is_file())
        return sorted(names)
