"""Builder configuration settings.

BuilderSettings is the single configuration object consumed by the
provisioning step. It is a plain frozen dataclass (not env-coupled) so tests
can inject config without touching os.environ.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from .errors import ConfigurationError

DEFAULT_API_BASE_URL = "https://api.upcloud.com/1.3"
DEFAULT_TEMPLATE_PREFIX = "packer-builder-upcloud"
DEFAULT_STATE_TIMEOUT_SECONDS = 300.0

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$")
_DURATION_UNITS = {"": 1.0, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(frozen=True, slots=True)
class BuilderSettings:
    """Configuration for one server provisioning run.

    Sizing fields use ``0`` to mean "not set": the resolved plan's value is
    used instead.
    """

    # ── API credentials ────────────────────────────────────────────
    api_user: str = ""
    """UpCloud API username. Never log the password."""

    api_password: str = ""

    api_base_url: str = DEFAULT_API_BASE_URL

    # ── Placement / sizing ─────────────────────────────────────────
    zone: str = ""
    """Zone identifier, e.g. ``fi-hel1``."""

    plan: str = ""
    """Named plan, e.g. ``1xCPU-1GB``. Empty selects by cpu/memory."""

    cpu: int = 0
    memory: int = 0
    """Memory in MiB."""

    storage_uuid: str = ""
    """UUID of the template or storage to clone for the build disk."""

    storage_size: int = 0
    """Disk size override in GB."""

    # ── Lifecycle ──────────────────────────────────────────────────
    state_timeout: float = DEFAULT_STATE_TIMEOUT_SECONDS
    """Upper bound, in seconds, for every server state wait."""

    template_prefix: str = DEFAULT_TEMPLATE_PREFIX
    ssh_username: str = "root"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.api_user:
            errors.append("api_user is required")
        if not self.api_password:
            errors.append("api_password is required")
        if not self.zone:
            errors.append("zone is required")
        if not self.storage_uuid:
            errors.append("storage_uuid is required")
        if self.state_timeout <= 0:
            errors.append("state_timeout must be positive")
        if not self.ssh_username:
            errors.append("ssh_username is required")
        return errors

    def require_valid(self) -> BuilderSettings:
        """Raise ConfigurationError listing every problem, else return self."""
        errors = self.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> BuilderSettings:
        """Build settings from environment variables.

        Convenience factory for production use. Tests should construct
        BuilderSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        timeout_raw = env.get("UPCLOUD_STATE_TIMEOUT", "")
        state_timeout = (
            parse_duration(timeout_raw) if timeout_raw else DEFAULT_STATE_TIMEOUT_SECONDS
        )

        return cls(
            api_user=env.get("UPCLOUD_API_USER", ""),
            api_password=env.get("UPCLOUD_API_PASSWORD", ""),
            api_base_url=env.get("UPCLOUD_API_BASE_URL", DEFAULT_API_BASE_URL),
            zone=env.get("UPCLOUD_ZONE", ""),
            plan=env.get("UPCLOUD_PLAN", ""),
            cpu=_env_int(env, "UPCLOUD_CPU"),
            memory=_env_int(env, "UPCLOUD_MEMORY"),
            storage_uuid=env.get("UPCLOUD_STORAGE_UUID", ""),
            storage_size=_env_int(env, "UPCLOUD_STORAGE_SIZE"),
            state_timeout=state_timeout,
            template_prefix=env.get("UPCLOUD_TEMPLATE_PREFIX", DEFAULT_TEMPLATE_PREFIX),
            ssh_username=env.get("UPCLOUD_SSH_USERNAME", "root"),
        )


def parse_duration(value: str) -> float:
    """Parse ``"300"``, ``"90s"``, ``"5m"`` or ``"1h"`` into seconds."""
    match = _DURATION_RE.match(value)
    if match is None:
        raise ConfigurationError(f"invalid duration {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit]


def _env_int(env: dict[str, str], key: str) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None
