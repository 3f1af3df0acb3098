"""Typed request and response models for the monitor, workflow and event endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GroundcoverModel(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Serialize with wire aliases, dropping unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class EmptyResponse(GroundcoverModel):
    pass


class Filter(GroundcoverModel):
    op: str | None = None
    value: Any = None


class Condition(GroundcoverModel):
    key: str | None = None
    origin: str | None = None
    type: str | None = None
    filters: list[Filter] = Field(default_factory=list)


class MonitorDisplay(GroundcoverModel):
    header: str | None = None
    description: str | None = None
    resource_header_labels: list[str] | None = None
    context_header_labels: list[str] | None = None


class MonitorQuery(GroundcoverModel):
    name: str
    expression: str | None = None
    data_type: str | None = None
    datasource_type: str | None = None
    query_type: str | None = None
    filters: str | None = None
    conditions: list[Condition] | None = None


class MonitorThreshold(GroundcoverModel):
    name: str
    input_name: str
    operator: str
    values: list[float]


class MonitorReducer(GroundcoverModel):
    name: str
    type: str
    input_name: str | None = None
    expression: str | None = None


class MonitorQueryModel(GroundcoverModel):
    queries: list[MonitorQuery] = Field(default_factory=list)
    reducers: list[MonitorReducer] | None = None
    thresholds: list[MonitorThreshold] | None = None


class EvaluationInterval(GroundcoverModel):
    interval: str | None = None
    pending_for: str | None = None


class MonitorModel(GroundcoverModel):
    title: str
    display: MonitorDisplay | None = None
    severity: str | None = None
    measurement_type: str | None = None
    model: MonitorQueryModel = Field(default_factory=MonitorQueryModel)
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    category: str | None = None
    execution_error_state: str | None = None
    no_data_state: str | None = None
    evaluation_interval: EvaluationInterval | None = None
    auto_resolve: bool | None = None
    team: str | None = None
    routing: list[str] | None = None
    is_paused: bool | None = None


class CreateMonitorResponse(GroundcoverModel):
    monitor_id: str


class WorkflowCreateResponse(GroundcoverModel):
    workflow_id: str
    status: str | None = None
    revision: int | None = None


class EventsOverTimeRequest(GroundcoverModel):
    start: datetime
    end: datetime
    sort_by: str = "timestamp"
    sort_order: str = "desc"
    conditions: list[Condition] = Field(default_factory=list)
    sources: list[Condition] | None = None
    limit: int | None = None
    skip: int | None = None
    with_raw_events: bool | None = None


class EventOverTimeItem(GroundcoverModel):
    model_config = ConfigDict(extra="ignore", alias_generator=None, populate_by_name=True)

    uid: str | None = None
    timestamp: datetime | None = None
    namespace: str | None = None
    instance: str | None = None
    object_kind: str | None = None
    type: str | None = None
    reason: str | None = None
    message: str | None = None
    exit_code: str | None = Field(default=None, alias="exitCode")
    workload: str | None = None
    env: str | None = None
    cluster: str | None = None


class EventsOverTimeResponse(GroundcoverModel):
    events: list[EventOverTimeItem] = Field(default_factory=list)
    is_limit_reached: bool = False
    warning_indicator: bool = False


def new_equal_string_condition(key: str, value: str) -> Condition:
    return Condition(key=key, type="string", origin="root", filters=[Filter(op="eq", value=value)])
