import httpx
import pytest

from turn_engine.domain.errors import ConfigurationError, UnsupportedAuthKindError
from turn_engine.domain.models.content import AuthKind, BackendConfig, CountTokensRequest, GenerateRequest
from turn_engine.domain.models.session import Session
from turn_engine.infrastructure.backends import (
    STRATEGIES,
    CodeAssistContentGenerator,
    GatewayContentGenerator,
    GeminiApiContentGenerator,
    LoggingContentGenerator,
    create_content_generator,
)
from turn_engine.infrastructure.backends.base import INSTALLATION_ID_HEADER
from turn_engine.infrastructure.config.settings import AppSettings, BackendSettings


async def _token():
    return "tok"


def _settings(tmp_path, **backend):
    backend.setdefault("gateway_base_url", "https://gw.test")
    backend.setdefault("proxy", None)
    return AppSettings(backend=BackendSettings(**backend), state_dir=str(tmp_path))


def test_every_auth_kind_has_a_strategy():
    assert set(STRATEGIES) == set(AuthKind)


@pytest.mark.asyncio
@pytest.mark.parametrize("auth_kind,api_key,expected", [
    (AuthKind.API_KEY, "k", GeminiApiContentGenerator),
    (AuthKind.VERTEX_AI, "k", GeminiApiContentGenerator),
    (AuthKind.OAUTH_PERSONAL, None, CodeAssistContentGenerator),
    (AuthKind.CLOUD_SHELL, None, CodeAssistContentGenerator),
    (AuthKind.GATEWAY, None, GatewayContentGenerator),
])
async def test_dispatches_on_auth_kind(tmp_path, auth_kind, api_key, expected):
    config = BackendConfig(model="m", auth_kind=auth_kind, api_key=api_key, use_vertex=auth_kind is AuthKind.VERTEX_AI)
    generator = create_content_generator(
        config, Session(backend=config), token_provider=_token, settings=_settings(tmp_path),
    )
    assert isinstance(generator, LoggingContentGenerator)
    assert isinstance(generator.wrapped, expected)
    await generator.aclose()


def test_unsupported_auth_kind_fails_at_construction(tmp_path):
    config = BackendConfig(model="m", auth_kind="login-with-carrier-pigeon")
    with pytest.raises(UnsupportedAuthKindError) as excinfo:
        create_content_generator(config, Session(backend=config), settings=_settings(tmp_path))
    assert "Unsupported auth kind" in str(excinfo.value)


def test_oauth_without_token_provider_fails(tmp_path):
    config = BackendConfig(model="m", auth_kind=AuthKind.OAUTH_PERSONAL)
    with pytest.raises(ConfigurationError):
        create_content_generator(config, Session(backend=config), settings=_settings(tmp_path))


@pytest.mark.asyncio
async def test_installation_header_uses_state_dir(tmp_path):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"totalTokens": 1})

    config = BackendConfig(model="m", auth_kind=AuthKind.API_KEY, api_key="k", use_vertex=False)
    generator = create_content_generator(
        config, Session(backend=config), settings=_settings(tmp_path), transport=httpx.MockTransport(handler),
    )
    await generator.count_tokens(CountTokensRequest(model="m", contents="x"))
    await generator.aclose()

    installation_id = (tmp_path / "installation_id").read_text()
    assert seen[0].headers[INSTALLATION_ID_HEADER] == installation_id


@pytest.mark.asyncio
async def test_no_installation_header_without_api_key(tmp_path):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"response": {"candidates": []}})

    config = BackendConfig(model="m", auth_kind=AuthKind.CLOUD_SHELL)
    generator = create_content_generator(
        config, Session(backend=config), token_provider=_token,
        settings=_settings(tmp_path), transport=httpx.MockTransport(handler),
    )
    await generator.generate(GenerateRequest(model="m", contents="x"), "p")
    await generator.aclose()

    assert INSTALLATION_ID_HEADER not in seen[0].headers
    assert not (tmp_path / "installation_id").exists()


@pytest.mark.parametrize("auth_kind,backend", [
    (AuthKind.OAUTH_PERSONAL, {}),
    (AuthKind.GATEWAY, {"gateway_base_url": None}),
    (AuthKind.API_KEY, {}),
])
def test_rejected_config_never_opens_a_client(tmp_path, monkeypatch, auth_kind, backend):
    opened = []
    monkeypatch.setattr(httpx, "AsyncClient", lambda *args, **kwargs: opened.append(kwargs))

    config = BackendConfig(model="m", auth_kind=auth_kind, use_vertex=False)
    with pytest.raises(ConfigurationError):
        create_content_generator(config, Session(backend=config), settings=_settings(tmp_path, **backend))
    assert opened == []
