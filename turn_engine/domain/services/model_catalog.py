"""
Model catalog - default and fallback model names per auth kind.

Model selection is keyed by an explicit auth kind taken from the session;
there is no process-wide cache of the active auth.
"""

from __future__ import annotations
from typing import Dict

from ..models.content import AuthKind
from ..errors import ConfigurationError


DEFAULT_GEMINI_MODEL = "gemini-2.5-pro"
DEFAULT_GEMINI_FLASH_MODEL = "gemini-2.5-flash"
DEFAULT_GEMINI_FLASH_LITE_MODEL = "gemini-2.5-flash-lite"
DEFAULT_GEMINI_EMBEDDING_MODEL = "gemini-embedding-001"

DEFAULT_GATEWAY_MODEL = "llmgateway__BedrockAnthropicClaude4Sonnet"
DEFAULT_GATEWAY_FALLBACK_MODEL = "llmgateway__OpenAIGPT4OmniMini"
DEFAULT_GATEWAY_EMBEDDING_MODEL = "text-embedding-model"

MODEL_KINDS = ("default", "fallback", "embeddings", "generate_json", "prompt_completion")

_GOOGLE_MODELS: Dict[str, str] = {
    "default": DEFAULT_GEMINI_MODEL,
    "fallback": DEFAULT_GEMINI_FLASH_MODEL,
    "embeddings": DEFAULT_GEMINI_EMBEDDING_MODEL,
    "generate_json": DEFAULT_GEMINI_FLASH_MODEL,
    "prompt_completion": DEFAULT_GEMINI_FLASH_LITE_MODEL,
}

_GATEWAY_MODELS: Dict[str, str] = {
    "default": DEFAULT_GATEWAY_MODEL,
    "fallback": DEFAULT_GATEWAY_FALLBACK_MODEL,
    "embeddings": DEFAULT_GATEWAY_EMBEDDING_MODEL,
    "generate_json": DEFAULT_GATEWAY_MODEL,
    "prompt_completion": DEFAULT_GATEWAY_MODEL,
}

_MODELS: Dict[AuthKind, Dict[str, str]] = {
    AuthKind.API_KEY: _GOOGLE_MODELS,
    AuthKind.VERTEX_AI: _GOOGLE_MODELS,
    AuthKind.OAUTH_PERSONAL: _GOOGLE_MODELS,
    AuthKind.CLOUD_SHELL: _GOOGLE_MODELS,
    AuthKind.GATEWAY: _GATEWAY_MODELS,
}


def get_model(kind: str, auth_kind: AuthKind) -> str:
    """Return the model name of ``kind`` for ``auth_kind``."""
    models = _MODELS.get(auth_kind)
    if models is None:
        raise ConfigurationError(f"Unsupported auth kind for model retrieval: {auth_kind}")
    if kind not in models:
        raise ConfigurationError(f"Unknown model kind {kind!r}; expected one of {MODEL_KINDS}")
    return models[kind]


def default_model_for(auth_kind: AuthKind) -> str:
    return get_model("default", auth_kind)


def fallback_model_for(auth_kind: AuthKind) -> str:
    return get_model("fallback", auth_kind)
