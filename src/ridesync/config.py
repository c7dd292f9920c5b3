"""Client configuration for ridesync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from ridesync._constants import (
    BASE_URL,
    CACHE_CLEANUP_INTERVAL,
    CACHE_MAX_AGE_DAYS,
    DEFAULT_MAX_ATTEMPTS,
    ENQUEUE_DEBOUNCE,
    HANDLER_TIMEOUT,
    INTER_ACTION_DELAY,
    NETWORK_DEBOUNCE,
    REACHABILITY_INTERVAL,
    SYNC_INTERVAL,
)
from ridesync.exceptions import RideSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, raw: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(raw)
    except ValueError as exc:
        raise RideSyncConfigError(f"{env_key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class RideSyncConfig:
    """Offline sync configuration.

    Parameters
    ----------
    base_url : str
        Base URL of the ride-hailing API the action handlers write to.
    db_path : str or None
        SQLite database file for the persistent store.  ``None`` keeps
        everything in memory (no persistence across restarts).
    default_max_attempts : int
        Attempt ceiling given to actions enqueued without an explicit value.
    inter_action_delay : float
        Seconds to wait between two dispatches within one drain.
    enqueue_debounce : float
        Seconds to wait after a submit before draining, so bursts of
        submits collapse into one drain.
    sync_interval : float
        Background safety-net drain interval in seconds.  ``0`` disables
        the periodic drain.
    handler_timeout : float
        Per-handler timeout in seconds.  A handler exceeding it counts as a
        failed attempt.  ``0`` disables the timeout.
    retry_backoff_base : float
        Base delay in seconds for exponential retry backoff.  ``0`` (the
        default) keeps flat retries: every drain retries every action.
    network_debounce : float
        Window in seconds within which connectivity flapping collapses to
        the last reported state.
    reachability_url : str or None
        URL probed by :class:`~ridesync.network.ReachabilityMonitor`.
        Defaults to ``base_url``.
    reachability_interval : float
        Seconds between two reachability probes.
    cache_max_age_days : float
        Age after which single-use cached trips/places are evicted.
    cache_cleanup_interval : float
        Seconds between two cache cleanup passes.  ``0`` disables it.
    request_timeout : float
        Total HTTP timeout in seconds applied by the JSON transport.
    """

    base_url: str = BASE_URL
    db_path: str | None = None
    default_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    inter_action_delay: float = INTER_ACTION_DELAY
    enqueue_debounce: float = ENQUEUE_DEBOUNCE
    sync_interval: float = SYNC_INTERVAL
    handler_timeout: float = HANDLER_TIMEOUT
    retry_backoff_base: float = 0.0
    network_debounce: float = NETWORK_DEBOUNCE
    reachability_url: str | None = None
    reachability_interval: float = REACHABILITY_INTERVAL
    cache_max_age_days: float = CACHE_MAX_AGE_DAYS
    cache_cleanup_interval: float = CACHE_CLEANUP_INTERVAL
    request_timeout: float = 10.0
    persist_enabled: bool = True

    def __post_init__(self) -> None:
        if self.default_max_attempts < 1:
            raise RideSyncConfigError("default_max_attempts must be >= 1")
        for name in (
            "inter_action_delay",
            "enqueue_debounce",
            "sync_interval",
            "handler_timeout",
            "retry_backoff_base",
            "network_debounce",
            "reachability_interval",
            "cache_max_age_days",
            "cache_cleanup_interval",
            "request_timeout",
        ):
            if getattr(self, name) < 0:
                raise RideSyncConfigError(f"{name} must be >= 0")

    @property
    def probe_url(self) -> str:
        return self.reachability_url or self.base_url

    @classmethod
    def from_env(cls, **overrides: Any) -> RideSyncConfig:
        """Create configuration from environment variables.

        Reads optional ``RIDESYNC_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        RideSyncConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "RIDESYNC_BASE_URL": "base_url",
            "RIDESYNC_DB_PATH": "db_path",
            "RIDESYNC_REACHABILITY_URL": "reachability_url",
        }
        _ENV_NUMBER_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "RIDESYNC_MAX_ATTEMPTS": ("default_max_attempts", int),
            "RIDESYNC_INTER_ACTION_DELAY": ("inter_action_delay", float),
            "RIDESYNC_ENQUEUE_DEBOUNCE": ("enqueue_debounce", float),
            "RIDESYNC_SYNC_INTERVAL": ("sync_interval", float),
            "RIDESYNC_HANDLER_TIMEOUT": ("handler_timeout", float),
            "RIDESYNC_RETRY_BACKOFF_BASE": ("retry_backoff_base", float),
            "RIDESYNC_NETWORK_DEBOUNCE": ("network_debounce", float),
            "RIDESYNC_REACHABILITY_INTERVAL": ("reachability_interval", float),
            "RIDESYNC_CACHE_MAX_AGE_DAYS": ("cache_max_age_days", float),
            "RIDESYNC_CACHE_CLEANUP_INTERVAL": ("cache_cleanup_interval", float),
            "RIDESYNC_REQUEST_TIMEOUT": ("request_timeout", float),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        for env_key, (field_name, cast) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        if "persist_enabled" not in overrides:
            config_kwargs["persist_enabled"] = _env_bool(env.get("RIDESYNC_PERSIST_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
