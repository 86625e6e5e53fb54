"""Pydantic schemas for API request/response models."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PositionSchema(BaseModel):
    x: float = 0
    y: float = 0


class NodeSchema(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = ""
    type: str = "default"
    position: PositionSchema = Field(default_factory=PositionSchema)
    data: dict[str, Any] = {}
    parent_node: str | None = None
    parent_id: str | None = None
    head_of_group: bool = False
    height: float | None = None
    width: float | None = None
    style: dict[str, Any] = {}
    draggable: bool = True
    selectable: bool = True
    connectable: bool = True
    class_name: str | None = None


class EdgeSchema(CamelModel):
    id: str | None = None
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None
    type: str = "default"
    marker_end: dict[str, Any] | str | None = None


class PolicyGraphSchema(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    nodes: list[NodeSchema] = []
    edges: list[EdgeSchema] = []
    finish_id: str | None = None
    id: str | None = None
    remote_id: str | None = None
    name: str = ""
    description: str | None = None
    policy_type: str | None = None
    source: str | None = None
    zoom: float | None = None
    grid: bool | None = None
    navigator: bool = True
    navigator_position_index: int = 5
    connection_type: str | None = None
    color: bool | None = None
    translate_x: float | None = None
    translate_y: float | None = None


class ConnectorConfig(BaseModel):
    """CRM connector settings stamped onto outputs whose config is unset."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(None, alias="Id")
    dev_org_id: str | None = Field(None, alias="DevOrgId__c")
    connector_id: str | None = Field(None, alias="ConnectorId__c")
    notify_email_address: str | None = Field(None, alias="NotifyEmailAddress__c")


class SavePayload(BaseModel):
    """Record handed to the policy store: two JSON documents plus flat metadata."""

    model_config = ConfigDict(populate_by_name=True)

    body: str = Field(alias="Body__c")
    description: str = Field("", alias="Description__c")
    id: str | None = Field(None, alias="Id")
    remote_id: str | None = Field(None, alias="Id__c")
    name: str = Field("", alias="Name")
    policy: str = Field(alias="Policy__c")
    type: str = Field(alias="Type__c")
    phone_numbers: str = Field("", alias="PhoneNumbers__c")


# -- requests ---------------------------------------------------------------

class ImportRequest(CamelModel):
    policy: dict[str, Any] | None = None
    is_new: bool = False


class RemoveNodesRequest(CamelModel):
    policy: PolicyGraphSchema
    selected_nodes: list[str]


class RemoveEdgeRequest(CamelModel):
    policy: PolicyGraphSchema
    edge: EdgeSchema


class AddOutputsRequest(CamelModel):
    policy: PolicyGraphSchema
    outputs: list[NodeSchema]


class PlaceContainerRequest(CamelModel):
    policy: PolicyGraphSchema
    template: NodeSchema
    active_node_id: str | None = None


class PayloadRequest(CamelModel):
    policy: PolicyGraphSchema
    config: ConnectorConfig = Field(default_factory=ConnectorConfig)
    sounds: list[dict[str, Any]] = []
    license_data: dict[str, Any] = {}


class CloneRequest(CamelModel):
    policy: dict[str, Any]
    config: ConnectorConfig = Field(default_factory=ConnectorConfig)
    sounds: list[dict[str, Any]] = []
    users: list[dict[str, Any]] = []
    groups: list[dict[str, Any]] = []
    skills: list[dict[str, Any]] = []
    sf_users: list[dict[str, Any]] = []
    chatter_groups: list[dict[str, Any]] = []
    namespace_prefix: str = ""


# -- responses --------------------------------------------------------------

class RemoveNodesResponse(CamelModel):
    policy: dict[str, Any]
    new_active_node: dict[str, Any] | None = None
    blocked_nodes: list[str] = []


class RemoveEdgeResponse(CamelModel):
    edges: list[dict[str, Any]]
    nodes: list[dict[str, Any]]


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[str] = []


class PayloadResponse(CamelModel):
    payload: SavePayload
    finish_id: str


class CloneResponse(CamelModel):
    policy: dict[str, Any]
    report: dict[str, Any]
