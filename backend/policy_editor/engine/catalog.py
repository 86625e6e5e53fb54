"""Template catalog: maps legacy template ids/classes to node kinds and CSS classes."""
import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from .graph import NodeKind


class NodeId:
    """Template ids used by the legacy policy runtime."""

    ACTION = 4
    DA_ACTION = 94
    DA_EVENT = 93
    DIGITAL_ACTION = 142
    DIGITAL_CONNECT = 140
    DIGITAL_FINISH = 144
    NATTERBOX_AI = 145
    CALL_NATTERBOX_AI = 146
    ANALYTICS_NATTERBOX_AI = 147
    DATA_ANALYTICS_FINISH = 120
    FROM_POLICY = 2
    FROM_SIP_TRUNK = 81
    INBOUND_NUMBER = 3
    SWITCHBOARD = 9
    CATCH_ALL = 16
    CATCH_ALL_DIGITAL = 141
    FINISH = 23
    FINISH_ANALYTICS = 58
    EXTENSION_NUMBER = 31
    DDI = 38
    OUTBOUND = 39
    TO_POLICY = 66
    SIP_TRUNK = 81
    INBOUND_MESSAGE = 93
    OMNI_CHANNEL_FLOW = 117
    RULE_NEXT = 124
    AI_TEST_NODE = 111
    AI_SUPPORT_CHAT = 112
    INVOKABLE_DESTINATION = 3100000
    GROUP_OUTPUT = "group_output"


class PolicyType(str, Enum):
    CALL = "POLICY_TYPE_CALL"
    DATA_ANALYTICS = "POLICY_TYPE_DATA_ANALYTICS"
    DIGITAL = "POLICY_TYPE_DIGITAL"


BASIC_POLICY_TYPES: dict[str, str] = {
    PolicyType.CALL.value: "CALL",
    PolicyType.DATA_ANALYTICS.value: "NON_CALL",
    PolicyType.DIGITAL.value: "DIGITAL",
}


def _default_class_names() -> dict[str, str]:
    return {
        str(NodeId.OMNI_CHANNEL_FLOW): "omniChannelFlow_node",
        str(NodeId.DIGITAL_ACTION): "digital_node",
        str(NodeId.FROM_POLICY): "from_policy_node",
        str(NodeId.INBOUND_NUMBER): "inbound_numbers_node",
        str(NodeId.ACTION): "action_node",
        str(NodeId.DA_ACTION): "action_node",
        str(NodeId.SWITCHBOARD): "switchboard_node",
        str(NodeId.CATCH_ALL): "catch_all_node",
        str(NodeId.CATCH_ALL_DIGITAL): "catch_all_node",
        str(NodeId.FINISH): "finish_node",
        str(NodeId.FINISH_ANALYTICS): "finish_node",
        str(NodeId.EXTENSION_NUMBER): "extension_number_node",
        str(NodeId.DDI): "ddi_node",
        str(NodeId.OUTBOUND): "outbound_node",
        str(NodeId.TO_POLICY): "to_policy_node",
        str(NodeId.SIP_TRUNK): "sip_trunk_node",
        str(NodeId.INBOUND_MESSAGE): "inbound_message",
        str(NodeId.NATTERBOX_AI): "natterbox_ai",
        str(NodeId.CALL_NATTERBOX_AI): "natterbox_ai",
        str(NodeId.ANALYTICS_NATTERBOX_AI): "natterbox_ai",
        str(NodeId.AI_TEST_NODE): "sip_trunk_node",
        str(NodeId.AI_SUPPORT_CHAT): "ai_support_chat_node",
        str(NodeId.INVOKABLE_DESTINATION): "invokable_destination_node",
    }


class TemplateCatalog(BaseModel):
    """Injected description of the template key space.

    Template ids are opaque to the engine; every rule that depends on a
    particular template is looked up here.
    """

    class_names: dict[str, str] = Field(default_factory=_default_class_names)
    class_name_kinds: dict[str, NodeKind] = Field(default_factory=lambda: {
        "from_policy_node": NodeKind.INIT,
        "to_policy_node": NodeKind.INIT,
        "finish_node": NodeKind.END,
        "catch_all_node": NodeKind.END,
        "outbound_node": NodeKind.OUTPUT,
    })
    template_class_kinds: dict[str, NodeKind] = Field(default_factory=lambda: {
        "ModFromPolicy": NodeKind.INIT,
        "ModToPolicy": NodeKind.INIT,
        "ModFinish": NodeKind.END,
        "ModOutbound": NodeKind.OUTPUT,
    })
    finish_templates: list[int] = [NodeId.FINISH, NodeId.TO_POLICY, NodeId.FINISH_ANALYTICS]
    non_interactive_templates: list[int] = [
        NodeId.EXTENSION_NUMBER,
        NodeId.INBOUND_MESSAGE,
        NodeId.INVOKABLE_DESTINATION,
    ]
    start_config_templates: list[int] = [NodeId.AI_TEST_NODE, NodeId.AI_SUPPORT_CHAT]
    accepted_payload_templates: list[int] = [
        NodeId.ACTION, NodeId.FINISH, NodeId.TO_POLICY, NodeId.DA_ACTION,
        NodeId.SWITCHBOARD, NodeId.SIP_TRUNK, NodeId.INBOUND_NUMBER,
        NodeId.INBOUND_MESSAGE, NodeId.EXTENSION_NUMBER,
        NodeId.INVOKABLE_DESTINATION, NodeId.DIGITAL_CONNECT,
        NodeId.DIGITAL_ACTION, NodeId.DATA_ANALYTICS_FINISH,
        NodeId.OMNI_CHANNEL_FLOW, NodeId.NATTERBOX_AI,
        NodeId.CALL_NATTERBOX_AI, NodeId.ANALYTICS_NATTERBOX_AI,
        NodeId.AI_TEST_NODE, NodeId.AI_SUPPORT_CHAT,
    ]
    finish_by_policy_type: dict[str, int] = Field(default_factory=lambda: {
        PolicyType.CALL.value: NodeId.FINISH,
        PolicyType.DATA_ANALYTICS.value: NodeId.FINISH_ANALYTICS,
        PolicyType.DIGITAL.value: NodeId.DIGITAL_FINISH,
    })
    next_id_templates: list[int] = [NodeId.RULE_NEXT]
    # Items whose sub-items are emitted without the successor check
    pass_through_templates: list[int] = [NodeId.DIGITAL_CONNECT, 1]
    inbound_number_template: int = NodeId.INBOUND_NUMBER
    group_output_template: str = NodeId.GROUP_OUTPUT
    # Titles whose nodes keep connect/screen ids in the saved graph document
    connect_id_titles: list[str] = ["Hunt Group", "Connect a Call", "Call Queue"]

    @classmethod
    def from_file(cls, path: str | Path) -> "TemplateCatalog":
        with open(path) as f:
            return cls.model_validate(json.load(f))

    def kind_for_template_class(self, template_class: str | None) -> NodeKind:
        if not template_class:
            return NodeKind.DEFAULT
        return self.template_class_kinds.get(template_class, NodeKind.DEFAULT)

    def base_class_name(self, template_id: Any) -> str:
        if template_id is None:
            return ""
        return self.class_names.get(str(template_id), "")

    def kind_for_template_id(self, template_id: Any) -> NodeKind:
        class_name = self.base_class_name(template_id)
        return self.class_name_kinds.get(class_name, NodeKind.DEFAULT)

    def node_class_name(self, template_id: Any, kind: NodeKind | str, with_parent_class: bool = True) -> str:
        classes = []
        if with_parent_class and NodeKind.parse(kind) != NodeKind.GROUP:
            classes.append("parent_node")
        base = self.base_class_name(template_id)
        if base:
            classes.append(base)
        return " ".join(classes)

    def is_finish(self, template_id: Any) -> bool:
        return template_id in self.finish_templates

    def is_non_interactive(self, template_id: Any) -> bool:
        return template_id in self.non_interactive_templates

    def needs_start_config(self, template_id: Any) -> bool:
        return template_id in self.start_config_templates

    def is_accepted_in_payload(self, template_id: Any) -> bool:
        return template_id in self.accepted_payload_templates

    def is_inbound_number(self, template_id: Any) -> bool:
        return template_id == self.inbound_number_template

    def is_pass_through(self, template_id: Any) -> bool:
        return template_id in self.pass_through_templates

    def finish_template_for(self, policy_type: str | None) -> int:
        return self.finish_by_policy_type.get(policy_type or PolicyType.CALL.value, NodeId.FINISH)


def merge_class_names(*class_names: str | None) -> str:
    """Join class name strings, dropping blanks and repeated classes."""
    seen: dict[str, None] = {}
    for names in class_names:
        for name in (names or "").split(" "):
            if name:
                seen.setdefault(name, None)
    return " ".join(seen)


def basic_policy_type(policy_type: str | None) -> str:
    return BASIC_POLICY_TYPES.get(policy_type or PolicyType.CALL.value, "CALL")


_default: TemplateCatalog | None = None


def default_catalog() -> TemplateCatalog:
    global _default
    if _default is None:
        _default = TemplateCatalog()
    return _default
