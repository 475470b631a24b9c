"""Configuration package."""

from .settings import (
    AppSettings,
    BackendSettings,
    PolicySettings,
    RetrySettings,
    create_backend_config,
    detect_auth_kind,
    get_settings,
    reload_settings,
)
from .policy_loader import build_policy_engine, load_policy_config

__all__ = [
    "AppSettings",
    "BackendSettings",
    "PolicySettings",
    "RetrySettings",
    "create_backend_config",
    "detect_auth_kind",
    "get_settings",
    "reload_settings",
    "build_policy_engine",
    "load_policy_config",
]
