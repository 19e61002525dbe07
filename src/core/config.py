"""Core configuration.

Why here:
- Centralizes environment variables (pydantic-settings) without leaking them
  into the CLI.
- Lets adapters (bridge, telemetry sink) read configuration consistently.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IpcTimeout:
    """Timeout tiers (milliseconds) shared by every command wrapper."""

    # queries, status checks
    FAST = 5_000
    # list loads, single-row updates
    NORMAL = 30_000
    # batch updates, imports
    SLOW = 60_000
    # large data processing
    LONG = 120_000
    # recalculation, very large imports
    VERY_SLOW = 300_000


APP_DIR_NAME = "ipc-gateway"


def get_user_config_dir() -> Path:
    """%APPDATA%, ~/Library/Application Support or $XDG_CONFIG_HOME, plus the app dir."""

    home = Path.home()
    if sys.platform.startswith("win"):
        root = Path(os.environ.get("APPDATA") or home)
    elif sys.platform == "darwin":
        root = home / "Library" / "Application Support"
    else:
        root = Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config")
    return root / APP_DIR_NAME


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def read_env_file(path: Path) -> dict[str, str]:
    """KEY=VALUE pairs of a .env file. Comments and malformed lines are skipped."""

    if not path.is_file():
        return {}
    pairs: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.strip().partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        pairs[key] = value.strip().strip("'\"")
    return pairs


def write_user_env_vars(values: Mapping[str, str | None], *, env_path: Path | None = None) -> Path:
    """Merge `values` into the user .env file (None values are skipped)."""

    target = env_path or get_user_env_file()
    merged = read_env_file(target)
    merged.update((key, value) for key, value in values.items() if value is not None)

    target.parent.mkdir(parents=True, exist_ok=True)
    body = "".join(f"{key}={merged[key]}\n" for key in sorted(merged))
    target.write_text(f"# {APP_DIR_NAME} user config (.env)\n{body}", encoding="utf-8")
    return target


class GatewaySettings(BaseSettings):
    """Central gateway configuration.

    Why pydantic-settings:
    - Typed and validated at the edge (env vars) without polluting the core.
    - One configuration contract for the CLI, the gateway and the adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="IPC_GATEWAY_",
        extra="ignore",
        case_sensitive=False,
        # Order: project first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    bridge_url: str = Field(
        default="http://127.0.0.1:8765",
        min_length=8,
        description="Base URL of the backend bridge (commands are posted to /invoke/<command>).",
    )
    bridge_connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Connect timeout for the bridge transport (seconds).",
    )

    default_timeout_ms: int = Field(
        default=IpcTimeout.NORMAL,
        gt=0,
        description="Per-attempt deadline used when a call does not set one.",
    )
    retry_base_delay_ms: int = Field(
        default=1_000,
        ge=0,
        description="Base delay between attempts of a retried call.",
    )
    retry_backoff: Literal["linear", "exponential"] = Field(
        default="linear",
        description="Backoff growth between attempts.",
    )
    cancel_on_timeout: bool = Field(
        default=False,
        description="Cancel the backend call that lost the race against the deadline.",
    )
    debug_ipc: bool = Field(
        default=False,
        description="Log command, params and raw results of every call (may leak sensitive data).",
    )

    telemetry_enabled: bool = Field(
        default=True,
        description="Forward user-visible failures to the backend audit log.",
    )
    telemetry_dedupe_window_ms: int = Field(
        default=30_000,
        ge=0,
        description="Identical failures within this window are reported once.",
    )
    telemetry_max_events_per_session: int = Field(
        default=50,
        ge=0,
        description="Hard cap of telemetry events sent by this process.",
    )
    telemetry_max_fingerprints: int = Field(
        default=1_024,
        ge=1,
        description="Fingerprint map size that triggers eviction of expired entries.",
    )
    telemetry_max_text_len: int = Field(
        default=16_000,
        ge=64,
        description="Maximum length of free text sent to the audit log.",
    )
    telemetry_send_timeout_ms: int = Field(
        default=5_000,
        gt=0,
        description="Deadline of one audit report (version lookup + send); late reports are dropped.",
    )

    stale_rev_toast_cooldown_ms: int = Field(
        default=4_000,
        description="Minimum interval between two stale plan revision notices.",
    )

    environment: str = Field(
        default="production",
        min_length=1,
        description="Environment label attached to telemetry reports.",
    )
    actor: str | None = Field(
        default=None,
        description="Operator name attached to telemetry reports.",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level.",
    )
