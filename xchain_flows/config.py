"""
Settings loaded from the environment.

Variables (all optional):

    XCHAIN_MODE              hosted | self-hosted        (self-hosted)
    XCHAIN_POLL_INTERVAL_MS  reconciler interval, ms     (3000)
    XCHAIN_HISTORY_LIMIT     ledger retention            (50)
    XCHAIN_STORAGE_KEY       ledger storage key          (hyperlane-history)
    XCHAIN_DB_PATH           SQLite file; unset = memory
    XCHAIN_EXPLORER_API_URL  explorer API endpoint
    XCHAIN_HTTP_TIMEOUT_S    HTTP timeout, seconds       (30)
    XCHAIN_STALE_AFTER_S     stop polling older pending  (unset = never)
    XCHAIN_RPC_URL_<chainId> per-chain RPC override

A ``.env`` file in the working directory is read first (python-dotenv);
real environment variables win over it.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from dotenv import load_dotenv

from xchain_flows.explorer import DEFAULT_EXPLORER_API_URL
from xchain_flows.ledger import DEFAULT_STORAGE_KEY, HISTORY_LIMIT
from xchain_flows.models import DeliveryMode

POLLING_INTERVAL_MS = 3000
HTTP_TIMEOUT_S = 30.0

_RPC_PREFIX = "XCHAIN_RPC_URL_"


@dataclass(frozen=True)
class Settings:
    mode: DeliveryMode = DeliveryMode.SELF_HOSTED
    poll_interval_ms: int = POLLING_INTERVAL_MS
    history_limit: int = HISTORY_LIMIT
    storage_key: str = DEFAULT_STORAGE_KEY
    db_path: str | None = None
    explorer_api_url: str = DEFAULT_EXPLORER_API_URL
    http_timeout_s: float = HTTP_TIMEOUT_S
    stale_after_s: float | None = None
    rpc_overrides: dict[int, str] = field(default_factory=dict)

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000


def _int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float | None) -> float | None:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _rpc_overrides(env: Mapping[str, str]) -> dict[int, str]:
    overrides: dict[int, str] = {}
    for name, url in env.items():
        if not name.startswith(_RPC_PREFIX) or not url:
            continue
        suffix = name[len(_RPC_PREFIX) :]
        if not suffix.isdigit():
            raise ValueError(f"{name}: expected a numeric chain id suffix")
        overrides[int(suffix)] = url
    return overrides


def load_settings(env: Mapping[str, str] | None = None, *, dotenv: bool = True) -> Settings:
    """Build Settings from ``env`` (default: ``os.environ``).

    Args:
        env: Variables to read. Pass a dict in tests.
        dotenv: Load ``.env`` into ``os.environ`` first. Ignored when
            ``env`` is given.

    Raises:
        ValueError: A variable is present but invalid.
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    raw_mode = env.get("XCHAIN_MODE") or DeliveryMode.SELF_HOSTED.value
    try:
        mode = DeliveryMode(raw_mode.strip().lower())
    except ValueError:
        raise ValueError(f"XCHAIN_MODE must be 'hosted' or 'self-hosted', got {raw_mode!r}") from None

    http_timeout = _float(env, "XCHAIN_HTTP_TIMEOUT_S", HTTP_TIMEOUT_S)
    assert http_timeout is not None

    return Settings(
        mode=mode,
        poll_interval_ms=_int(env, "XCHAIN_POLL_INTERVAL_MS", POLLING_INTERVAL_MS),
        history_limit=_int(env, "XCHAIN_HISTORY_LIMIT", HISTORY_LIMIT),
        storage_key=env.get("XCHAIN_STORAGE_KEY") or DEFAULT_STORAGE_KEY,
        db_path=env.get("XCHAIN_DB_PATH") or None,
        explorer_api_url=env.get("XCHAIN_EXPLORER_API_URL") or DEFAULT_EXPLORER_API_URL,
        http_timeout_s=http_timeout,
        stale_after_s=_float(env, "XCHAIN_STALE_AFTER_S", None),
        rpc_overrides=_rpc_overrides(env),
    )
