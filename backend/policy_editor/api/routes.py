"""REST API routes."""
import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from ..config import settings
from ..engine.catalog import TemplateCatalog, default_catalog
from ..engine.cloning import clone_policy
from ..engine.display import NodeDisplayResolver
from ..engine.factory import place_container
from ..engine.graph import Edge, Node, Policy
from ..engine.importer import LegacyPolicyImporter
from ..engine.mutations import (
    remove_edge_and_update_node,
    remove_nodes,
    update_parent_on_new_output_creation,
)
from ..engine.payload import build_payload
from ..engine.validator import PolicyValidationError, ensure_valid, validate_policy
from ..models.schemas import (
    AddOutputsRequest, CloneRequest, CloneResponse, EdgeSchema, ImportRequest,
    NodeSchema, PayloadRequest, PayloadResponse, PlaceContainerRequest,
    PolicyGraphSchema, RemoveEdgeRequest, RemoveEdgeResponse,
    RemoveNodesRequest, RemoveNodesResponse, ValidationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _load_catalog() -> TemplateCatalog:
    if settings.catalog_path:
        return TemplateCatalog.from_file(settings.catalog_path)
    return default_catalog()


def _load_display() -> NodeDisplayResolver:
    if settings.display_overrides_path:
        return NodeDisplayResolver.from_file(settings.display_overrides_path)
    return NodeDisplayResolver()


catalog = _load_catalog()
display = _load_display()


def _schema_to_policy(schema: PolicyGraphSchema) -> Policy:
    return Policy.from_dict(schema.model_dump(by_alias=True))


def _schema_to_node(schema: NodeSchema) -> Node:
    return Node.from_dict(schema.model_dump(by_alias=True))


def _schema_to_edge(schema: EdgeSchema) -> Edge:
    return Edge.from_dict(schema.model_dump(by_alias=True))


@router.get("/templates")
async def get_templates():
    """Return the template catalog the engine classifies nodes with."""
    return catalog.model_dump()


@router.post("/policies/import")
async def import_policy(request: ImportRequest) -> dict[str, Any]:
    importer = LegacyPolicyImporter(catalog, display)
    policy = importer.import_policy(request.policy, is_new=request.is_new)
    return policy.to_dict()


@router.post("/policies/remove-nodes", response_model=RemoveNodesResponse)
async def remove_policy_nodes(request: RemoveNodesRequest):
    policy = _schema_to_policy(request.policy)
    blocked: list[str] = []
    result = remove_nodes(policy, request.selected_nodes, lambda node: blocked.append(node.id))
    active = result.new_active_node
    return RemoveNodesResponse(
        policy=result.updated_policy.to_dict(),
        new_active_node=active.to_dict() if active else None,
        blocked_nodes=blocked,
    )


@router.post("/policies/remove-edge", response_model=RemoveEdgeResponse)
async def remove_policy_edge(request: RemoveEdgeRequest):
    policy = _schema_to_policy(request.policy)
    edge = _schema_to_edge(request.edge)
    edges, nodes = remove_edge_and_update_node(policy, policy.edges, edge)
    return RemoveEdgeResponse(
        edges=[e.to_dict() for e in edges],
        nodes=[n.to_dict() for n in nodes],
    )


@router.post("/policies/outputs")
async def add_policy_outputs(request: AddOutputsRequest) -> dict[str, Any]:
    policy = _schema_to_policy(request.policy)
    outputs = [_schema_to_node(o) for o in request.outputs]
    if not outputs:
        raise HTTPException(status_code=400, detail="No outputs given")
    if policy.get_node(outputs[0].parent_node) is None:
        raise HTTPException(status_code=404, detail=f"Parent node '{outputs[0].parent_node}' not found")
    policy.nodes = update_parent_on_new_output_creation(policy.nodes, outputs)
    return policy.to_dict()


@router.post("/policies/containers")
async def place_policy_container(request: PlaceContainerRequest) -> dict[str, Any]:
    policy = _schema_to_policy(request.policy)
    template = _schema_to_node(request.template)
    updated = place_container(policy, template, request.active_node_id, catalog)
    return updated.to_dict()


@router.post("/policies/validate", response_model=ValidationResponse)
async def validate(request: PolicyGraphSchema):
    errors = validate_policy(_schema_to_policy(request))
    return ValidationResponse(valid=len(errors) == 0, errors=errors)


@router.post("/policies/payload", response_model=PayloadResponse)
async def save_payload(request: PayloadRequest):
    """Validate the policy and build the record the policy store persists."""
    policy = _schema_to_policy(request.policy)
    try:
        ensure_valid(policy)
    except PolicyValidationError as e:
        logger.info("Rejected save of %r: %d validation error(s)", policy.name, len(e.errors))
        raise HTTPException(status_code=422, detail=e.errors)

    payload = build_payload(
        policy,
        request.config,
        sounds=request.sounds,
        license_data=request.license_data,
        catalog=catalog,
    )
    return PayloadResponse(payload=payload, finish_id=policy.finish_id)


@router.post("/policies/clone", response_model=CloneResponse)
async def clone(request: CloneRequest):
    if not request.policy.get("nodes"):
        raise HTTPException(status_code=400, detail="Policy has no nodes to clone")
    cloned, report = clone_policy(
        request.policy,
        config=request.config,
        sounds=request.sounds,
        users=request.users,
        groups=request.groups,
        skills=request.skills,
        sf_users=request.sf_users,
        chatter_groups=request.chatter_groups,
        namespace_prefix=request.namespace_prefix,
        catalog=catalog,
    )
    return CloneResponse(policy=cloned, report={"messages": report.messages})
