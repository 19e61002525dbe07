"""IPC response contracts (pydantic v2).

Rules:
- Declared fields are checked strictly: no coercion ("4" is not an int,
  "false" and 0 are not booleans).
- Undeclared fields are kept as-is (`extra="allow"`): additive backend
  changes must not break older clients.
- The backend answers in snake_case; contracts validate the raw response.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

DateString = Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}$")]


class ContractModel(BaseModel):
    """Base for every response contract: strict declared fields, passthrough extras."""

    model_config = ConfigDict(extra="allow", strict=True)


@dataclass(frozen=True)
class ContractDescriptor:
    """Versioned schema of one command's response.

    `schema` is any type pydantic can validate (a `ContractModel`, a
    `list[...]`, an optional, ...).
    """

    command: str
    schema: Any
    version: str = "1"


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class EmptyOkResponse(ContractModel):
    """Acknowledgement of a command that returns nothing useful."""


class ConfigItem(ContractModel):
    scope_id: str
    scope_type: str
    key: str
    value: str
    updated_at: str | None = None


class BatchUpdateConfigsResponse(ContractModel):
    updated_count: int = Field(..., ge=0)


class ConfigSnapshot(ContractModel):
    snapshot_json: str
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Material
# ---------------------------------------------------------------------------


class MaterialWithState(ContractModel):
    material_id: str
    machine_code: str | None = None
    weight_t: float | None = None
    width_mm: float | None = None
    thickness_mm: float | None = None
    steel_mark: str | None = None
    contract_no: str | None = None
    due_date: DateString | None = None
    sched_state: str
    urgent_level: str
    lock_flag: bool
    manual_urgent_flag: bool
    scheduled_date: DateString | None = None
    scheduled_machine_code: str | None = None
    seq_no: int | None = None
    rolling_output_age_days: float | None = None
    stock_age_days: float | None = None


class MaterialMaster(ContractModel):
    material_id: str
    manufacturing_order_id: str | None = None
    steel_mark: str | None = None
    current_machine_code: str | None = None
    width_mm: float | None = None
    thickness_mm: float | None = None
    weight_t: float | None = None
    due_date: DateString | None = None
    rolling_output_date: DateString | None = None
    contract_no: str | None = None
    created_at: str
    updated_at: str


class MaterialState(ContractModel):
    material_id: str
    sched_state: str
    lock_flag: bool
    force_release_flag: bool
    urgent_level: str
    urgent_reason: str | None = None
    rush_level: str
    rolling_output_age_days: float
    ready_in_days: float
    earliest_sched_date: DateString | None = None
    stock_age_days: float
    scheduled_date: DateString | None = None
    scheduled_machine_code: str | None = None
    seq_no: int | None = None
    manual_urgent_flag: bool
    in_frozen_zone: bool
    updated_at: str
    updated_by: str | None = None


class MaterialDetailResponse(ContractModel):
    master: MaterialMaster | None = None
    state: MaterialState | None = None


class MaterialPoolStateSummary(ContractModel):
    sched_state: str
    count: int


class MaterialPoolMachineSummary(ContractModel):
    machine_code: str
    total_count: int
    states: list[MaterialPoolStateSummary]


class MaterialPoolSummaryResponse(ContractModel):
    total_count: int
    machines: list[MaterialPoolMachineSummary]


# ---------------------------------------------------------------------------
# Decision (D1 day summary)
# ---------------------------------------------------------------------------

RiskLevel = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]


class ReasonItem(ContractModel):
    code: str
    msg: str
    weight: float = Field(..., ge=0, le=1)
    affected_count: int | None = Field(default=None, ge=0)


class DaySummary(ContractModel):
    plan_date: DateString
    risk_score: float = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    capacity_util_pct: float = Field(..., ge=0)
    overload_weight_t: float = Field(..., ge=0)
    urgent_failure_count: int = Field(..., ge=0)
    top_reasons: list[ReasonItem]
    involved_machines: list[str]


class DecisionDaySummaryResponse(ContractModel):
    version_id: str
    as_of: str
    items: list[DaySummary]
    total_count: int = Field(..., ge=0)


DEFAULT_CONTRACTS: tuple[ContractDescriptor, ...] = (
    ContractDescriptor("list_configs", list[ConfigItem]),
    ContractDescriptor("get_config", ConfigItem | None),
    ContractDescriptor("update_config", EmptyOkResponse),
    ContractDescriptor("batch_update_configs", BatchUpdateConfigsResponse),
    ContractDescriptor("get_config_snapshot", ConfigSnapshot),
    ContractDescriptor("get_latest_active_version_id", str | None),
    ContractDescriptor("list_materials", list[MaterialWithState]),
    ContractDescriptor("get_material_detail", MaterialDetailResponse),
    ContractDescriptor("get_material_pool_summary", MaterialPoolSummaryResponse),
    ContractDescriptor("get_decision_day_summary", DecisionDaySummaryResponse),
)
