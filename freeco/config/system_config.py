"""Admin-tunable runtime settings with an explicit schema.

Only the keys declared on :class:`SystemConfig` are accepted; anything else
is rejected instead of being merged into the stored document.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from freeco.moderation.errors import StoreFailure, ValidationError

logger = logging.getLogger(__name__)


class SystemConfig(BaseModel):
    """Recognised system configuration keys."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    site_name: str = "FreecoSystem"
    site_description: str = "A platform for free exchange of goods and services"
    contact_email: str = "support@freecosystem.com"
    contact_phone: str = "+1234567890"
    max_images_per_ad: int = Field(default=4, ge=1, le=20)  # enforced at listing creation
    max_ad_duration_days: int = Field(default=30, ge=1, le=365)  # sets listing expires_at
    allow_user_registration: bool = True
    maintenance_mode: bool = False  # HTTP adapter refuses non-admin writes
    disclaimer_text: str = ""
    terms_of_service: str = ""


def _validate(data: dict[str, Any]) -> SystemConfig:
    try:
        return SystemConfig.model_validate(data)
    except pydantic.ValidationError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise ValidationError("Invalid system configuration", details={"errors": problems})


def load_system_config(path: str | Path) -> SystemConfig:
    """Load a system configuration from a YAML file."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValidationError(f"Failed to parse {path}: {exc}")
    if not isinstance(data, dict):
        raise ValidationError("System configuration file must contain a mapping")
    return _validate(data)


class SystemConfigStore:
    """File-based storage for the system configuration document.

    Storage path: ``~/.freeco/config/system_config.json``.
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".freeco" / "config"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._path = self._base / "system_config.json"
        self._lock = threading.Lock()

    def _read_sync(self) -> SystemConfig:
        if not self._path.exists():
            return SystemConfig()
        try:
            data = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Failed to read %s: %s", self._path, exc)
            raise StoreFailure() from exc
        return _validate(data)

    def _write_sync(self, config: SystemConfig) -> None:
        try:
            fd, tmp = tempfile.mkstemp(dir=self._base, suffix=".tmp")
            with os.fdopen(fd, "w") as fh:
                json.dump(config.model_dump(), fh, indent=2)
            os.replace(tmp, self._path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", self._path, exc)
            raise StoreFailure() from exc

    def _update_sync(self, changes: dict[str, Any]) -> SystemConfig:
        with self._lock:
            current = self._read_sync()
            updated = _validate({**current.model_dump(), **changes})
            self._write_sync(updated)
            return updated

    def _replace_sync(self, config: SystemConfig) -> SystemConfig:
        with self._lock:
            self._write_sync(config)
            return config

    def _get_sync(self) -> SystemConfig:
        with self._lock:
            return self._read_sync()

    async def get(self) -> SystemConfig:
        """Return the stored configuration, or the defaults when none is stored."""
        return await asyncio.to_thread(self._get_sync)

    async def update(self, changes: dict[str, Any]) -> SystemConfig:
        """Merge *changes* into the stored configuration.

        Raises ``ValidationError`` for unknown keys or values of the wrong type.
        """
        if not isinstance(changes, dict):
            raise ValidationError("Configuration changes must be an object")
        config = await asyncio.to_thread(self._update_sync, changes)
        logger.info("System configuration updated: %s", sorted(changes))
        return config

    async def replace(self, config: SystemConfig) -> SystemConfig:
        """Overwrite the stored configuration (used when seeding from YAML)."""
        return await asyncio.to_thread(self._replace_sync, config)
