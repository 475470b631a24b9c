"""
Configuration settings - Infrastructure component for managing engine configuration.
Uses Pydantic for validation and environment variable loading.
"""

from __future__ import annotations
import json
from typing import Annotated, Optional, List, Dict, Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from ...domain.errors import ConfigurationError
from ...domain.models.content import AuthKind, BackendConfig
from ...domain.models.policy import PolicyDecision
from ...domain.services.model_catalog import default_model_for


def _env(*names: str) -> AliasChoices:
    """Accept the field name itself or any of the listed environment variables."""
    return AliasChoices(*names)


class BackendSettings(BaseSettings):
    """Backend selection and transport configuration."""

    model_config = SettingsConfigDict(env_file='.env', extra='ignore', case_sensitive=False, populate_by_name=True)

    auth_kind: Optional[AuthKind] = Field(None, validation_alias=_env('auth_kind', 'TURN_ENGINE_AUTH_KIND'))
    model: Optional[str] = Field(None, validation_alias=_env('model', 'TURN_ENGINE_MODEL'))

    gemini_api_key: Optional[str] = Field(None, validation_alias=_env('gemini_api_key', 'GEMINI_API_KEY'))
    google_api_key: Optional[str] = Field(None, validation_alias=_env('google_api_key', 'GOOGLE_API_KEY'))
    google_cloud_project: Optional[str] = Field(None, validation_alias=_env('google_cloud_project', 'GOOGLE_CLOUD_PROJECT'))
    google_cloud_location: Optional[str] = Field(None, validation_alias=_env('google_cloud_location', 'GOOGLE_CLOUD_LOCATION'))
    use_vertex_ai: bool = Field(False, validation_alias=_env('use_vertex_ai', 'GOOGLE_GENAI_USE_VERTEXAI'))
    use_code_assist: bool = Field(False, validation_alias=_env('use_code_assist', 'GOOGLE_GENAI_USE_GCA'))

    gateway_base_url: Optional[str] = Field(None, validation_alias=_env('gateway_base_url', 'GATEWAY_BASE_URL'))
    code_assist_endpoint: str = Field(
        'https://cloudcode-pa.googleapis.com',
        validation_alias=_env('code_assist_endpoint', 'CODE_ASSIST_ENDPOINT'),
    )
    proxy: Optional[str] = Field(None, validation_alias=_env('proxy', 'HTTPS_PROXY'))

    # Timeout settings
    connect_timeout_s: float = Field(5.0, validation_alias=_env('connect_timeout_s', 'CLI_CONNECT_TIMEOUT_S'))
    read_timeout_s: float = Field(600.0, validation_alias=_env('read_timeout_s', 'CLI_READ_TIMEOUT_S'))


class RetrySettings(BaseSettings):
    """Retry and resilience configuration."""

    model_config = SettingsConfigDict(env_file='.env', extra='ignore', populate_by_name=True)

    max_attempts: int = Field(5, validation_alias=_env('max_attempts', 'CLI_MAX_RETRIES'))
    backoff_base: float = Field(5.0, validation_alias=_env('backoff_base', 'CLI_RETRY_BACKOFF_BASE'))
    max_delay: float = Field(30.0, validation_alias=_env('max_delay', 'CLI_RETRY_MAX_DELAY'))
    jitter_max: float = Field(0.3, validation_alias=_env('jitter_max', 'CLI_RETRY_JITTER_MAX'))

    # Retryable HTTP status codes
    retryable_status_codes: Annotated[List[int], NoDecode] = Field(
        default_factory=lambda: [429, 500, 502, 503, 504],
        validation_alias=_env('retryable_status_codes', 'CLI_RETRYABLE_STATUS_CODES'),
    )

    @field_validator('retryable_status_codes', mode='before')
    @classmethod
    def parse_status_codes(cls, v):
        """Parse comma-separated status codes into list."""
        if isinstance(v, str):
            try:
                return [int(code.strip()) for code in v.split(',') if code.strip()]
            except ValueError:
                return [429, 500, 502, 503, 504]
        if isinstance(v, int):
            return [v]
        return v

    @field_validator('max_attempts')
    @classmethod
    def validate_max_attempts(cls, v):
        """At least one attempt is always made."""
        return max(1, v)


class PolicySettings(BaseSettings):
    """Tool call policy configuration."""

    model_config = SettingsConfigDict(env_file='.env', extra='ignore', populate_by_name=True)

    default_decision: PolicyDecision = Field(
        PolicyDecision.ASK_USER,
        validation_alias=_env('default_decision', 'POLICY_DEFAULT_DECISION'),
    )
    non_interactive: bool = Field(False, validation_alias=_env('non_interactive', 'POLICY_NON_INTERACTIVE'))
    rules: Annotated[List[Dict[str, Any]], NoDecode] = Field(default_factory=list, validation_alias=_env('rules', 'POLICY_RULES'))

    @field_validator('rules', mode='before')
    @classmethod
    def parse_rules(cls, v):
        """Rules arrive from the environment as a JSON array."""
        if v is None or v == '':
            return []
        if isinstance(v, str):
            try:
                return json.loads(v)
            except ValueError as e:
                raise ValueError(f"POLICY_RULES is not valid JSON: {e}") from e
        return v


class AppSettings(BaseSettings):
    """Main engine settings."""

    model_config = SettingsConfigDict(env_file='.env', extra='ignore', case_sensitive=False, populate_by_name=True)

    # Sub-configurations
    backend: BackendSettings = Field(default_factory=BackendSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)

    usage_statistics_enabled: bool = Field(True, validation_alias=_env('usage_statistics_enabled', 'USAGE_STATISTICS_ENABLED'))
    state_dir: str = Field('~/.turn-engine', validation_alias=_env('state_dir', 'TURN_ENGINE_STATE_DIR'))

    # Logging
    log_level: str = Field('INFO', validation_alias=_env('log_level', 'LOG_LEVEL'))
    log_format: str = Field(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        validation_alias=_env('log_format', 'LOG_FORMAT'),
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            return 'INFO'
        return v.upper()

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary, with secrets masked."""
        data = self.model_dump(mode='json')
        for key in ('gemini_api_key', 'google_api_key'):
            if data['backend'].get(key):
                data['backend'][key] = '***'
        return data


def detect_auth_kind(settings: BackendSettings) -> Optional[AuthKind]:
    """Pick an auth kind from explicit settings, in precedence order."""
    if settings.auth_kind is not None:
        return settings.auth_kind
    if settings.use_code_assist:
        return AuthKind.OAUTH_PERSONAL
    if settings.use_vertex_ai:
        return AuthKind.VERTEX_AI
    if settings.gateway_base_url:
        return AuthKind.GATEWAY
    if settings.gemini_api_key:
        return AuthKind.API_KEY
    return None


def create_backend_config(settings: BackendSettings, auth_kind: Optional[AuthKind] = None) -> BackendConfig:
    """Build the backend config for ``auth_kind``.

    The API key is attached only for API-key backends.
    """
    auth_kind = auth_kind or detect_auth_kind(settings)
    if auth_kind is None:
        raise ConfigurationError(
            "No auth kind configured; set TURN_ENGINE_AUTH_KIND or provide credentials"
        )

    if auth_kind is AuthKind.GATEWAY:
        model = default_model_for(auth_kind)
    else:
        model = settings.model or default_model_for(auth_kind)

    if auth_kind is AuthKind.API_KEY:
        if not settings.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is required for gemini-api-key auth")
        return BackendConfig(model=model, auth_kind=auth_kind, api_key=settings.gemini_api_key,
                             use_vertex=False, proxy=settings.proxy)

    if auth_kind is AuthKind.VERTEX_AI:
        has_project = bool(settings.google_cloud_project and settings.google_cloud_location)
        if not settings.google_api_key and not has_project:
            raise ConfigurationError(
                "Vertex AI requires GOOGLE_API_KEY or GOOGLE_CLOUD_PROJECT and GOOGLE_CLOUD_LOCATION"
            )
        return BackendConfig(model=model, auth_kind=auth_kind, api_key=settings.google_api_key,
                             use_vertex=True, proxy=settings.proxy)

    return BackendConfig(model=model, auth_kind=auth_kind, proxy=settings.proxy)


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reload_settings() -> AppSettings:
    """Reload settings from environment (for testing)."""
    global _settings
    _settings = AppSettings()
    return _settings
