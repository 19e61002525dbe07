import json

import pytest

from core.domain.contracts import BatchUpdateConfigsResponse, ConfigItem
from core.domain.errors import ErrorCode, IpcCallError
from core.domain.models import CallOptions, CallRequest
from core.services.gateway import IpcClient
from core.services.retry_policy import RetryPolicy
from core.services.schema_validator import build_default_registry, contract_validator
from core.services.stale_revision import STALE_NOTICE, StaleRevisionHandler
from core.services.telemetry import TelemetryReporter, TelemetryState
from core.services.timeout_guard import TimeoutGuard
from tests.fakes import FakeSink, RecordingPresenter, ScriptedBackend, delayed

CONFIG = {"scope_id": "global", "scope_type": "GLOBAL", "key": "season_mode", "value": "AUTO"}


def _client(backend, settings, no_sleep, clock=None, **kwargs) -> IpcClient:
    sink = kwargs.pop("sink", None)
    telemetry = None
    if sink is not None:
        state = TelemetryState(clock=clock) if clock is not None else TelemetryState()
        telemetry = TelemetryReporter(sink, state=state)
    return IpcClient(backend, settings=settings, telemetry=telemetry, sleep=no_sleep, **kwargs)


@pytest.mark.asyncio
async def test_json_string_response_is_decoded_and_validated(settings, no_sleep):
    backend = ScriptedBackend(json.dumps(CONFIG))
    client = _client(backend, settings, no_sleep, registry=build_default_registry())

    item = await client.call("get_config", {"scope_id": "global", "key": "season_mode"})

    assert isinstance(item, ConfigItem)
    assert item.value == "AUTO"
    assert backend.calls == [("get_config", {"scope_id": "global", "key": "season_mode"})]


@pytest.mark.asyncio
async def test_unregistered_command_returns_plain_value(settings, no_sleep):
    client = _client(ScriptedBackend({"anything": 1}), settings, no_sleep, registry=build_default_registry())

    assert await client.call("custom_command") == {"anything": 1}


@pytest.mark.asyncio
async def test_explicit_validator_wins_over_registry(settings, no_sleep):
    backend = ScriptedBackend({"updated_count": 2})
    client = _client(backend, settings, no_sleep, registry=build_default_registry())
    options = CallOptions(validate=contract_validator(BatchUpdateConfigsResponse, "get_config"))

    result = await client.call("get_config", {}, options)

    assert result.updated_count == 2


@pytest.mark.asyncio
async def test_timeouts_use_every_attempt(settings, no_sleep):
    backend = ScriptedBackend(delayed("late", 200))
    client = _client(backend, settings, no_sleep)

    with pytest.raises(IpcCallError) as info:
        await client.call("list_materials", {}, CallOptions(retry=2, timeout_ms=10))

    assert info.value.code == ErrorCode.TIMEOUT
    assert info.value.attempts == 3
    assert len(backend.calls) == 3
    assert no_sleep.delays == [1_000, 2_000]
    await client.timeout_guard.drain()


@pytest.mark.asyncio
async def test_network_error_then_success(settings, no_sleep):
    backend = ScriptedBackend(
        IpcCallError.of(ErrorCode.NETWORK_ERROR, "connection reset"),
        {"updated_count": 4},
    )
    client = _client(backend, settings, no_sleep, registry=build_default_registry())

    result = await client.call("batch_update_configs", {"configs": []}, CallOptions(retry=2))

    assert result.updated_count == 4
    assert len(backend.calls) == 2
    assert no_sleep.delays == [1_000]


@pytest.mark.asyncio
async def test_schema_mismatch_is_never_retried(settings, no_sleep):
    backend = ScriptedBackend({"count": 4})
    presenter = RecordingPresenter()
    client = _client(backend, settings, no_sleep, registry=build_default_registry(), presenter=presenter)

    with pytest.raises(IpcCallError) as info:
        await client.call("batch_update_configs", {}, CallOptions(retry=3))

    err = info.value
    assert err.code == ErrorCode.SCHEMA_MISMATCH
    assert err.attempts == 1
    assert err.details["issues"]
    assert len(backend.calls) == 1
    assert no_sleep.delays == []
    assert presenter.presented == [err.error]


@pytest.mark.asyncio
async def test_business_error_is_not_retried(settings, no_sleep):
    backend = ScriptedBackend(RuntimeError(json.dumps({"code": "NOT_FOUND", "message": "no such material"})))
    client = _client(backend, settings, no_sleep)

    with pytest.raises(IpcCallError) as info:
        await client.call("get_material_detail", {"material_id": "M1"}, CallOptions(retry=2))

    assert info.value.code == "NOT_FOUND"
    assert info.value.message == "no such material"
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_failure_is_reported_and_presented(settings, no_sleep, clock):
    sink = FakeSink()
    presenter = RecordingPresenter()
    backend = ScriptedBackend(IpcCallError.of(ErrorCode.NETWORK_ERROR, "bridge down"))
    client = _client(backend, settings, no_sleep, clock, sink=sink, presenter=presenter)

    with pytest.raises(IpcCallError):
        await client.call("list_configs", {"scope_id": "global"})
    await client.drain()

    assert len(presenter.presented) == 1
    assert presenter.presented[0].code == ErrorCode.NETWORK_ERROR
    assert len(sink.reports) == 1
    payload = sink.reports[0].payload_json["payload"]
    assert payload["command"] == "list_configs"
    assert payload["params_keys"] == ["scope_id"]


@pytest.mark.asyncio
async def test_show_error_false_is_silent(settings, no_sleep, clock):
    sink = FakeSink()
    presenter = RecordingPresenter()
    backend = ScriptedBackend(IpcCallError.of(ErrorCode.NETWORK_ERROR, "bridge down"))
    client = _client(backend, settings, no_sleep, clock, sink=sink, presenter=presenter)

    with pytest.raises(IpcCallError) as info:
        await client.call("list_configs", {}, CallOptions(show_error=False))
    await client.drain()

    assert info.value.code == ErrorCode.NETWORK_ERROR
    assert presenter.presented == []
    assert sink.reports == []


@pytest.mark.asyncio
async def test_repeated_failures_are_deduplicated(settings, no_sleep, clock):
    sink = FakeSink()
    presenter = RecordingPresenter()
    backend = ScriptedBackend(IpcCallError.of(ErrorCode.NETWORK_ERROR, "bridge down"))
    client = _client(backend, settings, no_sleep, clock, sink=sink, presenter=presenter)

    for _ in range(3):
        with pytest.raises(IpcCallError):
            await client.call("list_configs")
    await client.drain()

    assert len(presenter.presented) == 3
    assert len(sink.reports) == 1


@pytest.mark.asyncio
async def test_side_channel_failures_do_not_mask_the_error(settings, no_sleep, clock):
    sink = FakeSink(fail=True)
    presenter = RecordingPresenter(fail=True)
    backend = ScriptedBackend(IpcCallError.of("NOT_FOUND", "missing"))
    client = _client(backend, settings, no_sleep, clock, sink=sink, presenter=presenter)

    with pytest.raises(IpcCallError) as info:
        await client.call("get_material_detail", {"material_id": "M1"})
    await client.drain()

    assert info.value.code == "NOT_FOUND"


@pytest.mark.asyncio
async def test_async_presenter_is_awaited(settings, no_sleep):
    shown = []

    class AsyncPresenter:
        async def present(self, error):
            shown.append(error.code)

        def notice(self, message):
            pass

    client = _client(ScriptedBackend(ValueError("bad")), settings, no_sleep, presenter=AsyncPresenter())

    with pytest.raises(IpcCallError):
        await client.call("x")

    assert shown == [ErrorCode.UNKNOWN]


@pytest.mark.asyncio
async def test_stale_revision_skips_dialog_and_telemetry(settings, no_sleep, clock):
    sink = FakeSink()
    presenter = RecordingPresenter()
    refreshed = []

    async def refresh(context):
        refreshed.append(context.details.version_id)

    stale = StaleRevisionHandler(notify=presenter.notice, refresh_handler=refresh, clock=clock)
    backend = ScriptedBackend(
        RuntimeError(json.dumps({"code": "STALE_PLAN_REV", "message": "stale", "details": {"version_id": "v3"}}))
    )
    client = _client(
        backend, settings, no_sleep, clock, sink=sink, presenter=presenter, stale_revisions=stale
    )

    with pytest.raises(IpcCallError) as info:
        await client.call("update_config", {"key": "k", "value": "v"})
    await client.drain()

    assert info.value.code == "STALE_PLAN_REV"
    assert presenter.notices == [STALE_NOTICE]
    assert presenter.presented == []
    assert sink.reports == []
    assert refreshed == ["v3"]


@pytest.mark.asyncio
async def test_get_config_times_out_with_one_retry(settings):
    # Backend answers after 200ms, deadline is 50ms, one retry: both attempts lose.
    backend = ScriptedBackend(delayed(CONFIG, 200))
    client = IpcClient(
        backend,
        settings=settings,
        registry=build_default_registry(),
        retry_policy=RetryPolicy(base_delay_ms=10),
    )

    with pytest.raises(IpcCallError) as info:
        await client.call("get_config", {"key": "season_mode"}, CallOptions(retry=1, timeout_ms=50))

    err = info.value
    assert err.code == ErrorCode.TIMEOUT
    assert err.details == {"command": "get_config", "timeout_ms": 50}
    assert err.attempts == 2
    assert backend.calls_to("get_config") == 2
    assert client.timeout_guard.abandoned_count == 2
    await client.timeout_guard.drain()


@pytest.mark.asyncio
async def test_cancel_on_timeout_option(settings, no_sleep):
    backend = ScriptedBackend(delayed("late", 500))
    client = _client(backend, settings, no_sleep, timeout_guard=TimeoutGuard())

    with pytest.raises(IpcCallError):
        await client.call("x", {}, CallOptions(timeout_ms=10, cancel_on_timeout=True))

    assert client.timeout_guard.abandoned_count == 0


@pytest.mark.asyncio
async def test_execute_with_non_mapping_params(settings, no_sleep):
    backend = ScriptedBackend("null")
    client = _client(backend, settings, no_sleep)

    request = CallRequest(command="ping", params=["ignored"], options=CallOptions())  # type: ignore[arg-type]

    assert await client.execute(request) is None
    assert backend.calls == [("ping", {})]


def test_options_use_default_timeout(settings, no_sleep):
    client = _client(
        ScriptedBackend(None), settings.model_copy(update={"default_timeout_ms": 5_000}), no_sleep
    )

    assert client.options().timeout_ms == 5_000
    assert client.options(timeout_ms=1_000, retry=2).max_attempts == 3


def test_invalid_options_are_rejected():
    with pytest.raises(ValueError):
        CallOptions(retry=-1)
    with pytest.raises(ValueError):
        CallOptions(timeout_ms=0)


@pytest.mark.asyncio
async def test_exhausted_retries_raise_the_last_error(settings, no_sleep):
    presenter = RecordingPresenter()
    backend = ScriptedBackend(
        IpcCallError.of(ErrorCode.TIMEOUT, "Timeout"),
        IpcCallError.of(ErrorCode.NETWORK_ERROR, "connection reset"),
    )
    client = _client(backend, settings, no_sleep, presenter=presenter)

    with pytest.raises(IpcCallError) as info:
        await client.call("list_configs", {}, CallOptions(retry=1))

    assert info.value.code == ErrorCode.NETWORK_ERROR
    assert info.value.attempts == 2
    assert info.value.command == "list_configs"
    assert no_sleep.delays == [1_000]
    assert [error.code for error in presenter.presented] == [ErrorCode.NETWORK_ERROR]
