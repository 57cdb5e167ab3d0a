"""Settings file handling for the conference tracker."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import voluptuous as vol

from .const import (
    CONF_CLOUD_ACCESS_TOKEN,
    CONF_CLOUD_ACCOUNT_EMAIL,
    CONF_CLOUD_API_KEY,
    CONF_CLOUD_BASE_URL,
    CONF_CLOUD_REFRESH_TOKEN,
    CONF_CLOUD_SYNC_ENABLED,
    CONF_CLOUD_SYNC_INTERVAL,
    CONF_CLOUD_TOKEN_EXPIRES_AT,
    CONF_CLOUD_USER_ID,
    CONF_DATABASE_PATH,
    CONF_LAST_SYNC_AT,
    DEFAULT_CLOUD_SYNC_INTERVAL,
    DEFAULT_DATABASE_PATH,
    MIN_CLOUD_SYNC_INTERVAL,
)

_LOGGER = logging.getLogger(__name__)

_OPTIONAL_TEXT = vol.Any(None, vol.All(vol.Coerce(str), vol.Strip))

SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_CLOUD_SYNC_ENABLED, default=False): vol.Boolean(),
        vol.Optional(CONF_CLOUD_BASE_URL, default=""): vol.All(vol.Coerce(str), vol.Strip),
        vol.Optional(CONF_CLOUD_API_KEY, default=""): vol.All(vol.Coerce(str), vol.Strip),
        vol.Optional(CONF_CLOUD_SYNC_INTERVAL, default=DEFAULT_CLOUD_SYNC_INTERVAL): vol.All(
            vol.Coerce(int), vol.Clamp(min=MIN_CLOUD_SYNC_INTERVAL)
        ),
        vol.Optional(CONF_CLOUD_ACCESS_TOKEN): _OPTIONAL_TEXT,
        vol.Optional(CONF_CLOUD_REFRESH_TOKEN): _OPTIONAL_TEXT,
        vol.Optional(CONF_CLOUD_TOKEN_EXPIRES_AT): _OPTIONAL_TEXT,
        vol.Optional(CONF_CLOUD_USER_ID): _OPTIONAL_TEXT,
        vol.Optional(CONF_CLOUD_ACCOUNT_EMAIL): _OPTIONAL_TEXT,
        vol.Optional(CONF_LAST_SYNC_AT): _OPTIONAL_TEXT,
        vol.Optional(CONF_DATABASE_PATH, default=DEFAULT_DATABASE_PATH): vol.All(vol.Coerce(str), vol.Length(min=1)),
    },
    extra=vol.REMOVE_EXTRA,
)

# Environment variables take precedence over values stored on disk.
ENV_OVERRIDES = {
    "CONFERENCE_CLOUD_URL": CONF_CLOUD_BASE_URL,
    "CONFERENCE_CLOUD_API_KEY": CONF_CLOUD_API_KEY,
    "CONFERENCE_SYNC_INTERVAL": CONF_CLOUD_SYNC_INTERVAL,
    "CONFERENCE_DB": CONF_DATABASE_PATH,
}


class SettingsError(ValueError):
    """Raised when the settings file cannot be parsed or validated."""


def validate_settings(options: Mapping[str, Any]) -> dict[str, Any]:
    try:
        return SETTINGS_SCHEMA(dict(options))
    except vol.Invalid as err:
        raise SettingsError(f"invalid settings: {err}") from err


class SettingsStore:
    """JSON settings file holding cloud options and tokens."""

    def __init__(self, path: str | Path, *, environ: Mapping[str, str] | None = None) -> None:
        self.path = Path(path)
        self._environ = os.environ if environ is None else environ
        self._options: dict[str, Any] | None = None

    @property
    def options(self) -> dict[str, Any]:
        if self._options is None:
            self._options = self.load()
        return self._options

    def load(self) -> dict[str, Any]:
        raw: dict[str, Any] = {}
        if self.path.exists():
            try:
                loaded = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            except json.JSONDecodeError as err:
                raise SettingsError(f"settings file {self.path} is not valid JSON") from err
            if not isinstance(loaded, dict):
                raise SettingsError(f"settings file {self.path} must contain a JSON object")
            raw.update(loaded)
        for env_key, option in ENV_OVERRIDES.items():
            value = self._environ.get(env_key)
            if value:
                raw[option] = value
        self._options = validate_settings(raw)
        return self._options

    def save(self, options: Mapping[str, Any]) -> dict[str, Any]:
        """Validate and atomically write ``options`` to disk."""

        validated = validate_settings(options)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(validated, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.path)
        self._options = validated
        _LOGGER.debug("Saved settings to %s", self.path)
        return validated

    def update(self, **changes: Any) -> dict[str, Any]:
        opts = dict(self.options)
        for key, value in changes.items():
            if value is None:
                opts.pop(key, None)
            else:
                opts[key] = value
        return self.save(opts)


__all__ = ["SETTINGS_SCHEMA", "SettingsError", "SettingsStore", "validate_settings"]
