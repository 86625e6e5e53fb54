"""Policy validation: required fields, selected events, graph invariants."""
from collections import Counter

from .graph import FINISH, Policy

SUPPORT_CHAT_TITLE = "SupportChat"


class PolicyValidationError(Exception):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Policy validation failed: {errors}")


def validate_policy(policy: Policy) -> list[str]:
    """Validate a policy before saving, returning error messages (empty = valid)."""
    errors: list[str] = []
    errors.extend(_check_required_fields(policy))
    errors.extend(_check_node_fields(policy))
    errors.extend(_check_unique_ids(policy))
    errors.extend(_check_successors(policy))
    errors.extend(_check_ownership(policy))
    errors.extend(_check_edges(policy))
    return errors


def ensure_valid(policy: Policy) -> None:
    errors = validate_policy(policy)
    if errors:
        raise PolicyValidationError(errors)


def _check_required_fields(policy: Policy) -> list[str]:
    errors: list[str] = []
    if not policy.name:
        errors.append("Policy name is required")
    if not policy.nodes:
        errors.append("Policy must have at least one node")
    return errors


def _check_node_fields(policy: Policy) -> list[str]:
    errors: list[str] = []
    for node in policy.nodes:
        if node.data.title == SUPPORT_CHAT_TITLE and not node.data.name:
            errors.append(f"Name field for {node.data.title} node is required!")

        component = (node.data.config or {}).get("component")
        if isinstance(component, dict) and "label" in component and component["label"] is None:
            errors.append("You need to select an Event from the list!")
    return errors


def _check_unique_ids(policy: Policy) -> list[str]:
    counts = Counter(n.id for n in policy.nodes)
    return [f"Duplicate node id '{node_id}'" for node_id, count in counts.items() if count > 1]


def _check_successors(policy: Policy) -> list[str]:
    errors: list[str] = []
    node_ids = policy.node_ids()
    for node in policy.nodes:
        target = node.data.connected_to
        if target in (None, FINISH) or target in node_ids:
            continue
        errors.append(f"Node '{node.id}' is connected to missing node '{target}'")
    return errors


def _check_ownership(policy: Policy) -> list[str]:
    errors: list[str] = []
    node_ids = policy.node_ids()
    owners: dict[str, str] = {}
    for node in policy.nodes:
        if node.parent_node is not None and node.parent_node not in node_ids:
            errors.append(f"Node '{node.id}' belongs to missing parent '{node.parent_node}'")
        for child_id in node.child_ids:
            if child_id in owners and owners[child_id] != node.id:
                errors.append(f"Node '{child_id}' is owned by both '{owners[child_id]}' and '{node.id}'")
            owners[child_id] = node.id
    return errors


def _check_edges(policy: Policy) -> list[str]:
    """Edges are authoritative: pointers must agree with them."""
    errors: list[str] = []
    node_ids = policy.node_ids()
    seen: set[tuple[str, str]] = set()
    for edge in policy.edges:
        if edge.source not in node_ids or edge.target not in node_ids:
            errors.append(f"Edge {edge.id} references missing node")
            continue
        if (edge.source, edge.target) in seen:
            errors.append(f"Duplicate edge {edge.source} -> {edge.target}")
            continue
        seen.add((edge.source, edge.target))

    for node in policy.nodes:
        target = node.data.connected_to
        if target in (None, FINISH) or target not in node_ids:
            continue
        if (node.id, target) not in seen:
            errors.append(f"Node '{node.id}' points at '{target}' but no edge connects them")
    return errors
