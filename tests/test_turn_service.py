import asyncio

import pytest

from turn_engine.application.turn_service import TurnController
from turn_engine.domain.errors import BackendError, FallbackIntentError
from turn_engine.domain.models.content import (
    AuthKind,
    BackendConfig,
    Candidate,
    Content,
    FunctionCall,
    GenerateRequest,
    GenerateResponse,
    Part,
    Role,
)
from turn_engine.domain.models.events import (
    ContentEvent,
    ErrorEvent,
    ThoughtEvent,
    ToolCallRequestEvent,
    ToolCallResponseEvent,
)
from turn_engine.domain.models.policy import PolicyDecision, PolicyEngineConfig, PolicyRule
from turn_engine.domain.models.session import Session
from turn_engine.domain.services.model_catalog import DEFAULT_GEMINI_FLASH_MODEL, DEFAULT_GEMINI_MODEL
from turn_engine.domain.services.policy_engine import PolicyEngine
from turn_engine.infrastructure.config.settings import AppSettings, BackendSettings, PolicySettings, RetrySettings
from turn_engine.infrastructure.retry import RetryConfig


PRO_QUOTA = "Quota exceeded for quota metric 'Gemini 2.5 Pro Requests' and limit 'Requests per day'"
READ_CALL = '{"functionCall":{"name":"read_file","args":{"path":"a.txt"}}}'


def _chunk(*parts):
    return GenerateResponse(candidates=[Candidate(content=Content(role=Role.MODEL, parts=list(parts)))])


def _text(text):
    return _chunk(Part(text=text))


class _ScriptedGenerator:
    """Each generate_stream call plays the next script; exceptions in a script are raised in place."""

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.models = []
        self.closed = 0

    async def generate_stream(self, request, prompt_id):
        self.models.append(request.model)
        script = self.scripts.pop(0)
        try:
            for item in script:
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.closed += 1


class _Sleeper:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _session(auth_kind=AuthKind.API_KEY, **kwargs):
    return Session(backend=BackendConfig(model=DEFAULT_GEMINI_MODEL, auth_kind=auth_kind), **kwargs)


def _policy(*rules, default=PolicyDecision.ALLOW, non_interactive=False):
    return PolicyEngine(PolicyEngineConfig(rules=list(rules), default_decision=default, non_interactive=non_interactive))


def _controller(generator, policy=None, session=None, **kwargs):
    kwargs.setdefault("sleep", _Sleeper())
    return TurnController(generator, policy or _policy(), session or _session(), **kwargs)


async def _collect(controller, abort_signal=None):
    request = GenerateRequest(model="ignored", contents="check a.txt")
    return [event async for event in controller.run(request, "prompt-1", abort_signal)]


@pytest.mark.asyncio
async def test_end_to_end_content_then_allowed_call():
    generator = _ScriptedGenerator([_text("I'll check the file. "), _text(READ_CALL)])
    policy = _policy(PolicyRule(tool_name="read_file", decision=PolicyDecision.ALLOW), default=PolicyDecision.ASK_USER)

    events = await _collect(_controller(generator, policy))

    assert len(events) == 2
    assert events[0] == ContentEvent(text="I'll check the file. ")
    call = events[1]
    assert isinstance(call, ToolCallRequestEvent)
    assert (call.name, call.args, call.decision) == ("read_file", {"path": "a.txt"}, PolicyDecision.ALLOW)
    assert call.prompt_id == "prompt-1"
    assert call.call_id.startswith("read_file-")
    assert generator.models == [DEFAULT_GEMINI_MODEL]
    assert generator.closed == 1


@pytest.mark.asyncio
async def test_thoughts_and_native_calls():
    generator = _ScriptedGenerator([_chunk(
        Part(text="**Planning** look at the file", thought=True),
        Part(function_call=FunctionCall(name="read_file", args={"path": "b"}, id="native-1")),
    )])
    events = await _collect(_controller(generator))

    assert events[0] == ThoughtEvent(subject="Planning", description="look at the file")
    assert events[1].call_id == "native-1"
    assert events[1].args == {"path": "b"}


@pytest.mark.asyncio
async def test_denied_call_becomes_tool_call_response():
    generator = _ScriptedGenerator([_text(READ_CALL)])
    events = await _collect(_controller(generator, _policy(default=PolicyDecision.DENY)))

    assert len(events) == 1
    assert isinstance(events[0], ToolCallResponseEvent)
    assert events[0].name == "read_file"
    assert "denied" in events[0].error


@pytest.mark.asyncio
async def test_ask_user_without_handler_is_forwarded():
    generator = _ScriptedGenerator([_text(READ_CALL)])
    events = await _collect(_controller(generator, _policy(default=PolicyDecision.ASK_USER)))
    assert events[0].decision is PolicyDecision.ASK_USER


@pytest.mark.asyncio
async def test_ask_user_in_non_interactive_mode_is_denied():
    generator = _ScriptedGenerator([_text(READ_CALL)])
    events = await _collect(_controller(generator, _policy(default=PolicyDecision.ASK_USER, non_interactive=True)))
    assert isinstance(events[0], ToolCallResponseEvent)


@pytest.mark.asyncio
@pytest.mark.parametrize("approved", [True, False])
async def test_confirmation_handler_decides_ask_user(approved):
    asked = []

    async def confirm(event):
        asked.append(event)
        return approved

    generator = _ScriptedGenerator([_text(READ_CALL)])
    controller = _controller(generator, _policy(default=PolicyDecision.ASK_USER), confirmation_handler=confirm)
    events = await _collect(controller)

    assert asked[0].decision is PolicyDecision.ASK_USER
    if approved:
        assert isinstance(events[0], ToolCallRequestEvent)
        assert events[0].decision is PolicyDecision.ALLOW
    else:
        assert isinstance(events[0], ToolCallResponseEvent)
        assert "rejected" in events[0].error


@pytest.mark.asyncio
async def test_abort_during_confirmation_emits_nothing():
    abort = asyncio.Event()

    async def confirm(event):
        abort.set()
        await asyncio.Event().wait()

    generator = _ScriptedGenerator([_text("before "), _text(READ_CALL), _text(" after")])
    controller = _controller(generator, _policy(default=PolicyDecision.ASK_USER), confirmation_handler=confirm)
    events = await _collect(controller, abort)

    assert events == [ContentEvent(text="before ")]
    assert generator.closed == 1


@pytest.mark.asyncio
async def test_abort_stops_event_emission():
    abort = asyncio.Event()
    generator = _ScriptedGenerator([_text(f"one {READ_CALL}"), _text("two"), _text("three")])
    controller = _controller(generator)

    events = []
    async for event in controller.run(GenerateRequest(model="m", contents="x"), "p", abort):
        events.append(event)
        abort.set()

    assert events == [ContentEvent(text="one ")]
    assert generator.closed == 1


@pytest.mark.asyncio
async def test_truncated_call_at_end_is_dropped():
    generator = _ScriptedGenerator([_text('done {"functionCall":{"name":"f"')])
    events = await _collect(_controller(generator))
    assert events == [ContentEvent(text="done ")]


@pytest.mark.asyncio
async def test_retries_before_first_chunk():
    sleeper = _Sleeper()
    generator = _ScriptedGenerator([BackendError("unavailable", status=503)], [_text("hello")])
    events = await _collect(_controller(generator, sleep=sleeper))

    assert events == [ContentEvent(text="hello")]
    assert len(generator.models) == 2
    assert len(sleeper.delays) == 1


@pytest.mark.asyncio
async def test_exhausted_retries_produce_error_event():
    generator = _ScriptedGenerator(*[[BackendError("unavailable", status=503)] for _ in range(2)])
    events = await _collect(_controller(generator, retry_config=RetryConfig(max_attempts=2)))
    assert events == [ErrorEvent(message="unavailable", status=503)]


@pytest.mark.asyncio
async def test_mid_stream_error_is_not_retried():
    generator = _ScriptedGenerator([_text(f"{READ_CALL}"), BackendError("boom", status=500)])
    events = await _collect(_controller(generator))

    assert isinstance(events[0], ToolCallRequestEvent)
    assert events[1] == ErrorEvent(message="boom", status=500)
    assert len(events) == 2
    assert len(generator.models) == 1


@pytest.mark.asyncio
async def test_quota_error_switches_to_fallback_model_once():
    telemetry = []

    async def on_fallback(failed, fallback, error):
        return "retry"

    session = _session(AuthKind.OAUTH_PERSONAL, fallback_model_handler=on_fallback, telemetry_hook=telemetry.append)
    generator = _ScriptedGenerator([BackendError(PRO_QUOTA, status=429)], [_text("from flash")])
    events = await _collect(_controller(generator, session=session))

    assert events == [ContentEvent(text="from flash")]
    assert generator.models == [DEFAULT_GEMINI_MODEL, DEFAULT_GEMINI_FLASH_MODEL]
    assert len(telemetry) == 1
    assert session.is_in_fallback_mode()


@pytest.mark.asyncio
async def test_two_quota_errors_emit_one_telemetry_event():
    telemetry = []

    async def on_fallback(failed, fallback, error):
        return "retry"

    session = _session(AuthKind.OAUTH_PERSONAL, fallback_model_handler=on_fallback, telemetry_hook=telemetry.append)
    generator = _ScriptedGenerator([BackendError(PRO_QUOTA, status=429)], [BackendError(PRO_QUOTA, status=429)])
    events = await _collect(_controller(generator, session=session))

    assert events == [ErrorEvent(message=PRO_QUOTA, status=429)]
    assert len(telemetry) == 1


@pytest.mark.asyncio
async def test_stop_intent_ends_turn_without_retry():
    async def on_fallback(failed, fallback, error):
        return "stop"

    session = _session(AuthKind.OAUTH_PERSONAL, fallback_model_handler=on_fallback)
    generator = _ScriptedGenerator([BackendError(PRO_QUOTA, status=429)], [_text("never")])
    events = await _collect(_controller(generator, session=session))

    assert len(events) == 1 and isinstance(events[0], ErrorEvent)
    assert events[0].status == 429
    assert len(generator.models) == 1
    assert session.effective_model() == DEFAULT_GEMINI_FLASH_MODEL


@pytest.mark.asyncio
async def test_auth_intent_ends_turn_without_latching():
    async def on_fallback(failed, fallback, error):
        return "auth"

    session = _session(AuthKind.OAUTH_PERSONAL, fallback_model_handler=on_fallback)
    generator = _ScriptedGenerator([BackendError(PRO_QUOTA, status=429)])
    events = await _collect(_controller(generator, session=session))

    assert "re-authentication" in events[0].message
    assert not session.is_in_fallback_mode()


@pytest.mark.asyncio
async def test_unknown_intent_is_fatal():
    async def on_fallback(failed, fallback, error):
        return "shrug"

    session = _session(AuthKind.OAUTH_PERSONAL, fallback_model_handler=on_fallback)
    generator = _ScriptedGenerator([BackendError(PRO_QUOTA, status=429)])
    with pytest.raises(FallbackIntentError):
        await _collect(_controller(generator, session=session))


class _StallingGenerator:
    """Sends one chunk, then never sends another."""

    def __init__(self):
        self.closed = False

    async def generate_stream(self, request, prompt_id):
        try:
            yield _text("first")
            await asyncio.Event().wait()
            yield _text("never")
        finally:
            self.closed = True


@pytest.mark.asyncio
async def test_abort_while_waiting_for_next_chunk_ends_turn():
    abort = asyncio.Event()
    generator = _StallingGenerator()
    asyncio.get_running_loop().call_later(0.05, abort.set)

    events = await asyncio.wait_for(_collect(_controller(generator), abort), timeout=2)

    assert events == [ContentEvent(text="first")]
    assert generator.closed


@pytest.mark.asyncio
async def test_abort_before_first_chunk_ends_turn():
    abort = asyncio.Event()

    class _SilentGenerator:
        async def generate_stream(self, request, prompt_id):
            abort.set()
            await asyncio.Event().wait()
            yield _text("never")

    events = await asyncio.wait_for(_collect(_controller(_SilentGenerator()), abort), timeout=2)
    assert events == []


@pytest.mark.asyncio
async def test_failure_after_abort_is_not_retried():
    abort = asyncio.Event()
    sleeper = _Sleeper()
    calls = []

    class _AbortingGenerator:
        async def generate_stream(self, request, prompt_id):
            calls.append(request.model)
            abort.set()
            raise BackendError("unavailable", status=503)
            yield

    events = await _collect(_controller(_AbortingGenerator(), sleep=sleeper), abort)

    assert events == []
    assert len(calls) == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_abort_interrupts_backoff_wait():
    abort = asyncio.Event()

    async def stalled_sleep(delay):
        abort.set()
        await asyncio.Event().wait()

    generator = _ScriptedGenerator([BackendError("unavailable", status=503)], [_text("never")])
    events = await asyncio.wait_for(_collect(_controller(generator, sleep=stalled_sleep), abort), timeout=2)

    assert events == []
    assert len(generator.models) == 1


def test_from_settings_uses_retry_and_policy_settings():
    settings = AppSettings(
        backend=BackendSettings(gateway_base_url=None),
        retry=RetrySettings(max_attempts=2, backoff_base=0.1),
        policy=PolicySettings(default_decision="deny", rules=[{"tool_name": "read_file", "decision": "allow"}]),
    )
    controller = TurnController.from_settings(_ScriptedGenerator(), _session(), settings)

    assert controller._retry_config.max_attempts == 2
    assert controller._retry_config.base_delay == 0.1
    assert controller._policy_engine.default_decision is PolicyDecision.DENY
    assert controller._policy_engine.rules[0].tool_name == "read_file"


@pytest.mark.asyncio
async def test_from_settings_policy_applies_to_calls():
    settings = AppSettings(policy=PolicySettings(default_decision="deny"))
    generator = _ScriptedGenerator([_text(READ_CALL)])
    controller = TurnController.from_settings(generator, _session(), settings, sleep=_Sleeper())

    events = await _collect(controller)
    assert isinstance(events[0], ToolCallResponseEvent)
