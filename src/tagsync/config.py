"""Client settings."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping

from tagsync.duration import parse_duration
from tagsync.types import Duration

_DURATION_FIELDS = (
    "timeout",
    "eviction_grace",
    "retry_base_delay",
    "retry_max_delay",
    "tick",
)


@dataclasses.dataclass(frozen=True)
class ClientSettings:
    """Keyword options for ``ApiClient``; validated on construction."""

    base_url: str = "http://localhost:5000/api/v1"
    timeout: Duration = "30s"
    eviction_grace: Duration = "60s"
    max_attempts: int = 3
    retry_base_delay: Duration = "250ms"
    retry_max_delay: Duration = "5s"
    cooldown: int = 5
    tick: Duration = "1s"
    max_verify_attempts: int = 3
    refresh_path: str | None = "/auth/refresh-token"

    def __post_init__(self) -> None:
        for name in _DURATION_FIELDS:
            parse_duration(getattr(self, name))
        if parse_duration(self.tick) == 0:
            raise ValueError("tick must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_verify_attempts < 1:
            raise ValueError("max_verify_attempts must be at least 1")
        if self.cooldown < 0:
            raise ValueError("cooldown must not be negative")

    @property
    def timeout_seconds(self) -> float:
        return parse_duration(self.timeout) / 1000

    @property
    def retry_base_seconds(self) -> float:
        return parse_duration(self.retry_base_delay) / 1000

    @property
    def retry_max_seconds(self) -> float:
        return parse_duration(self.retry_max_delay) / 1000

    @classmethod
    def from_env(
        cls, prefix: str = "TAGSYNC_", environ: Mapping[str, str] | None = None
    ) -> ClientSettings:
        """Read settings from ``<prefix><FIELD>`` environment variables."""
        environ = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for field in dataclasses.fields(cls):
            raw = environ.get(f"{prefix}{field.name.upper()}")
            if raw is None:
                continue
            if field.name in ("max_attempts", "max_verify_attempts", "cooldown"):
                values[field.name] = int(raw)
            elif field.name == "refresh_path":
                values[field.name] = raw or None
            elif raw.isdigit():
                values[field.name] = int(raw)
            else:
                values[field.name] = raw
        return cls(**values)  # type: ignore[arg-type]
