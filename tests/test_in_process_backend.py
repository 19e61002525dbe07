import json

import pytest

from adapters.in_process import BackendError, InProcessBackend
from core.domain.contracts import MaterialPoolSummaryResponse
from core.domain.errors import IpcCallError
from core.services.gateway import IpcClient
from core.services.schema_validator import build_default_registry

backend = InProcessBackend()


@backend.command()
async def get_material_pool_summary(machine_code=None):
    return json.dumps(
        {
            "total_count": 3,
            "machines": [
                {
                    "machine_code": machine_code or "H032",
                    "total_count": 3,
                    "states": [{"sched_state": "READY", "count": 3}],
                }
            ],
        }
    )


@backend.command("get_material_detail")
async def material_detail(material_id):
    raise BackendError("NOT_FOUND", f"Material {material_id} not found", {"material_id": material_id})


def test_commands_are_listed():
    assert backend.commands == ["get_material_detail", "get_material_pool_summary"]


@pytest.mark.asyncio
async def test_handler_receives_named_params(settings, no_sleep):
    client = IpcClient(backend, settings=settings, registry=build_default_registry(), sleep=no_sleep)

    summary = await client.call("get_material_pool_summary", {"machine_code": "H033"})

    assert isinstance(summary, MaterialPoolSummaryResponse)
    assert summary.machines[0].machine_code == "H033"


@pytest.mark.asyncio
async def test_business_error_reaches_the_caller(settings, no_sleep):
    client = IpcClient(backend, settings=settings, sleep=no_sleep)

    with pytest.raises(IpcCallError) as info:
        await client.call("get_material_detail", {"material_id": "M9"}, client.options(show_error=False))

    assert info.value.code == "NOT_FOUND"
    assert info.value.details == {"material_id": "M9"}


@pytest.mark.asyncio
async def test_unknown_command_is_not_found():
    with pytest.raises(BackendError) as info:
        await InProcessBackend().invoke("nope", {})

    assert info.value.code == "NOT_FOUND"
    assert json.loads(str(info.value))["message"] == "Command not found: nope"
