"""Runtime configuration for checksum sweeps."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from fixity_sweep.errors import ConfigError
from fixity_sweep.sweep.models import TickConfig
from fixity_sweep.sweep.planner import build_tick_config


@dataclass(slots=True)
class RepositorySettings:
    """Repository API connection settings."""

    base_url: str = ""
    timeout_seconds: float = 30.0
    max_retries: int = 3
    page_size: int = 500
    username: str | None = None
    password: str | None = None


@dataclass(slots=True)
class TickSettings:
    """Per-tick planning parameters."""

    fixed_limit: int | None = 100
    horizon_days: int | None = None
    tick_hours: int | None = None
    stale_claim_seconds: int = 3_600


@dataclass(slots=True)
class NotificationSettings:
    """Mismatch report delivery."""

    smtp_host: str | None = None
    smtp_port: int = 25
    smtp_starttls: bool = False
    smtp_username: str | None = None
    smtp_password: str | None = None
    sender: str = "fixity-sweep@localhost"
    recipients: tuple[str, ...] = ()


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    db_path: Path = Path(".fixity_sweep.db")
    worker_id: str = "fixity-sweep"
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "INFO"
    repository: RepositorySettings = field(default_factory=RepositorySettings)
    tick: TickSettings = field(default_factory=TickSettings)
    notification: NotificationSettings = field(default_factory=NotificationSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults suitable for a cron job."""

        return cls(
            db_path=db_path or Path(os.getenv("FIXITY_SWEEP_DB_PATH", ".fixity_sweep.db")),
            worker_id=os.getenv("FIXITY_SWEEP_WORKER_ID", "fixity-sweep"),
            sqlite_busy_timeout_ms=_env_int("FIXITY_SWEEP_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            log_level=os.getenv("FIXITY_SWEEP_LOG_LEVEL", "INFO").strip().upper(),
            repository=RepositorySettings(
                base_url=os.getenv("FIXITY_SWEEP_REPOSITORY_URL", "").strip(),
                timeout_seconds=_env_float("FIXITY_SWEEP_REPOSITORY_TIMEOUT_SECONDS", 30.0),
                max_retries=_env_int("FIXITY_SWEEP_REPOSITORY_MAX_RETRIES", 3),
                page_size=_env_int("FIXITY_SWEEP_REPOSITORY_PAGE_SIZE", 500),
                username=os.getenv("FIXITY_SWEEP_REPOSITORY_USERNAME") or None,
                password=os.getenv("FIXITY_SWEEP_REPOSITORY_PASSWORD") or None,
            ),
            tick=TickSettings(
                fixed_limit=_env_optional_int("FIXITY_SWEEP_FIXED_LIMIT", default=100),
                horizon_days=_env_optional_int("FIXITY_SWEEP_HORIZON_DAYS"),
                tick_hours=_env_optional_int("FIXITY_SWEEP_TICK_HOURS"),
                stale_claim_seconds=_env_int("FIXITY_SWEEP_STALE_CLAIM_SECONDS", 3_600),
            ),
            notification=NotificationSettings(
                smtp_host=os.getenv("FIXITY_SWEEP_SMTP_HOST") or None,
                smtp_port=_env_int("FIXITY_SWEEP_SMTP_PORT", 25),
                smtp_starttls=_env_bool("FIXITY_SWEEP_SMTP_STARTTLS", default=False),
                smtp_username=os.getenv("FIXITY_SWEEP_SMTP_USERNAME") or None,
                smtp_password=os.getenv("FIXITY_SWEEP_SMTP_PASSWORD") or None,
                sender=os.getenv("FIXITY_SWEEP_MAIL_FROM", "fixity-sweep@localhost"),
                recipients=_collect_recipients(),
            ),
        )

    def tick_config(
        self,
        *,
        fixed_limit: int | None = None,
        horizon_days: int | None = None,
        tick_hours: int | None = None,
    ) -> TickConfig:
        """Build the tick config; CLI values replace the environment as a group.

        Paced parameters passed on the command line replace both env values
        so a half-specified override is reported instead of silently merged.
        """

        if horizon_days is not None or tick_hours is not None:
            paced = (horizon_days, tick_hours)
        else:
            paced = (self.tick.horizon_days, self.tick.tick_hours)
        return build_tick_config(
            fixed_limit=fixed_limit if fixed_limit is not None else self.tick.fixed_limit,
            horizon_days=paced[0],
            tick_hours=paced[1],
        )

    def validate_for_sweep(self) -> None:
        """Raise ConfigError if settings cannot drive a tick."""

        if not self.repository.base_url:
            raise ConfigError(
                "Repository base URL is required. Set FIXITY_SWEEP_REPOSITORY_URL "
                "or pass --repository-url.",
            )
        _validate_base_url(self.repository.base_url)
        if self.repository.timeout_seconds <= 0:
            raise ConfigError("FIXITY_SWEEP_REPOSITORY_TIMEOUT_SECONDS must be > 0.")
        if self.repository.max_retries < 0:
            raise ConfigError("FIXITY_SWEEP_REPOSITORY_MAX_RETRIES must be >= 0.")
        if self.repository.page_size <= 0:
            raise ConfigError("FIXITY_SWEEP_REPOSITORY_PAGE_SIZE must be a positive integer.")
        if self.tick.stale_claim_seconds <= 0:
            raise ConfigError("FIXITY_SWEEP_STALE_CLAIM_SECONDS must be > 0.")
        if self.notification.smtp_host and not self.notification.recipients:
            raise ConfigError(
                "FIXITY_SWEEP_MAIL_TO is required when FIXITY_SWEEP_SMTP_HOST is set.",
            )


def _collect_recipients() -> tuple[str, ...]:
    raw = os.getenv("FIXITY_SWEEP_MAIL_TO", "")
    deduped: list[str] = []
    for part in raw.split(","):
        address = part.strip()
        if address and address not in deduped:
            deduped.append(address)
    return tuple(deduped)


def _validate_base_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigError(
            "Invalid repository URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigError(f"Invalid integer value for {name}: {value!r}") from error


def _env_optional_int(name: str, default: int | None = None) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigError(f"Invalid number for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean value for {name}: {value!r}")
