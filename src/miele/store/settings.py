"""Local preferences and backend health, kept in the config dir's settings.yaml."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any

from miele import config as _config
from miele.models.activity import ActivityPeriod
from miele.services.remote import RemoteAccessor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Preferences:
    period: str = ActivityPeriod.TODAY.value
    notifications: bool = True
    email_notifications: bool = True
    sound_enabled: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> Preferences:
        """Build from settings.yaml, ignoring unknown keys and bad periods."""
        period = d.get("period", cls.period)
        if period not in {p.value for p in ActivityPeriod}:
            logger.warning("Periodo invalido em settings.yaml: %r", period)
            period = cls.period
        return cls(
            period=period,
            notifications=bool(d.get("notifications", cls.notifications)),
            email_notifications=bool(d.get("email_notifications", cls.email_notifications)),
            sound_enabled=bool(d.get("sound_enabled", cls.sound_enabled)),
        )


@dataclass(frozen=True)
class SystemStatus:
    status: str = "checking"  # checking | online | offline
    response_time_ms: float | None = None
    last_checked: datetime | None = None
    detail: str | None = None


class SettingsStore:
    def __init__(self, accessor: RemoteAccessor | None = None) -> None:
        self.accessor = accessor
        self.preferences = Preferences.from_dict(_config.load_settings())
        self.system_status = SystemStatus()

    def update(self, **changes: Any) -> Preferences:
        """Apply preference changes and persist them right away."""
        prefs = replace(self.preferences, **changes)
        if prefs.period not in {p.value for p in ActivityPeriod}:
            raise ValueError(f"Periodo invalido: '{prefs.period}'. Use today, week ou month.")
        data = _config.load_settings()
        data.update(asdict(prefs))
        _config.save_settings(data)
        self.preferences = prefs
        return prefs

    def set_period(self, period: ActivityPeriod | str) -> Preferences:
        return self.update(period=ActivityPeriod(period).value)

    async def check_system_status(self) -> SystemStatus:
        """Probe the backend with a cheap read and record how long it took."""
        if self.accessor is None:
            self.system_status = SystemStatus(
                status="offline", last_checked=datetime.now(_config.BRT), detail="Sem backend configurado"
            )
            return self.system_status
        self.system_status = SystemStatus()
        start = time.monotonic()
        try:
            await self.accessor.ping()
        except Exception as exc:
            logger.warning("Health check falhou: %s", exc, exc_info=True)
            self.system_status = SystemStatus(
                status="offline", last_checked=datetime.now(_config.BRT), detail=str(exc)
            )
            return self.system_status
        elapsed = (time.monotonic() - start) * 1000
        self.system_status = SystemStatus(
            status="online", response_time_ms=round(elapsed, 1), last_checked=datetime.now(_config.BRT)
        )
        return self.system_status
