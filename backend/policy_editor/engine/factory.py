"""Node factory helpers used when a template is dropped onto the canvas."""
import copy
import logging

from . import ids, layout
from .catalog import TemplateCatalog, default_catalog
from .graph import FINISH, Node, NodeData, NodeKind, Policy, Position, make_output
from .mutations import update_parent_on_new_output_creation

logger = logging.getLogger(__name__)

EVENT_TITLE = "Event"


def initialize_container_config(container: Node | None, active_node_id: str | None) -> Node:
    """Give a dropped template an id and attach it to the active node."""
    if container is None:
        return Node(id=ids.generate_id(), parent_node=active_node_id)
    container = copy.deepcopy(container)
    if not container.id:
        container.id = ids.generate_id()
    container.parent_node = active_node_id
    return container


def initialize_start_container_config(container: Node, catalog: TemplateCatalog | None = None) -> Node:
    catalog = catalog or default_catalog()
    container = copy.deepcopy(container)
    if not container.id:
        container.id = ids.generate_id()
    if catalog.needs_start_config(container.data.template_id):
        config = dict(container.data.config or {})
        config["parentId"] = ids.generate_id()
        container.data.config = config
    return container


def generate_non_interactive_output(container: Node | None, catalog: TemplateCatalog | None = None) -> Node | None:
    """The single fixed output of templates whose outputs the user cannot edit."""
    catalog = catalog or default_catalog()
    if container is None:
        return None
    if not catalog.is_non_interactive(container.data.template_id) and container.data.title != EVENT_TITLE:
        return None

    internal_extension = (container.data.variables or {}).get("internalExtension")
    label = "" if internal_extension is None else str(internal_extension)
    return make_output(
        container.id,
        0,
        data=NodeData(label=label, connected_to=FINISH),
        parent_id=container.id,
    )


def place_container(
    policy: Policy,
    template: Node,
    active_node_id: str | None = None,
    catalog: TemplateCatalog | None = None,
) -> Policy:
    """Drop ``template`` onto the canvas.

    Inside an active container the template becomes one of its outputs at the
    next free slot. Otherwise it is a top-level node, and non-interactive
    templates get their fixed output immediately.
    """
    catalog = catalog or default_catalog()
    policy = copy.deepcopy(policy)
    parent = policy.get_node(active_node_id)
    if parent is not None and parent.kind in (NodeKind.INIT, NodeKind.OUTPUT):
        parent = None

    container = initialize_container_config(template, parent.id if parent else None)
    container = initialize_start_container_config(container, catalog)

    if parent is not None:
        if not container.is_group:
            container.kind = NodeKind.OUTPUT
        container.position = Position(0, layout.slot_y(len(parent.data.output_ids)))
        if container.data.connected_to is None:
            container.data.connected_to = FINISH
        policy.nodes = update_parent_on_new_output_creation(policy.nodes, [container])
        logger.debug("Placed %s inside %s", container.id, parent.id)
        return policy

    container.position = Position(
        layout.clamp_to_canvas(container.position.x),
        layout.clamp_to_canvas(container.position.y),
    )
    if container.height is None:
        container.set_height(layout.CONTAINER_BASE_HEIGHT)
    policy.nodes.append(container)

    output = generate_non_interactive_output(container, catalog)
    if output is not None:
        policy.nodes = update_parent_on_new_output_creation(policy.nodes, [output])
    logger.debug("Placed top-level container %s", container.id)
    return policy
