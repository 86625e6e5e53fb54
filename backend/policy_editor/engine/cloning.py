"""Policy cloning: fresh identifiers and no references to the source org."""
import copy
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping

from ..models.schemas import ConnectorConfig
from . import ids
from .catalog import PolicyType, TemplateCatalog, default_catalog

logger = logging.getLogger(__name__)

UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
SCREEN_HOOK_RE = re.compile(r"[0-9a-f]{32}", re.IGNORECASE)
MACRO_RE = re.compile(r"\$\([^)]+\)")
SOUND_TAG_RE = re.compile(r"\{[^}]+\}")

DEFAULT_NAMESPACE_PREFIX = "nbavs"


class TemplateClass:
    MOD_NUMBER = "ModNumber"
    MOD_START_DIGITAL = "ModStartDigital"
    MOD_POLICY = "ModPolicy"
    MOD_POLICY_NC = "ModPolicyNC"
    MOD_POLICY_TO_NON_CALL = "ModPolicy_ToNonCall"
    MOD_POLICY_TO_CALL = "ModPolicy_ToCall"
    MOD_CONNECT = "ModConnect"
    MOD_CONNECT_FOLLOW_ME = "ModConnect_FollowMe"
    MOD_CONNECT_QUEUE = "ModConnect_Queue"
    MOD_ACTION_RECORD = "ModAction_Record"
    MOD_ACTION_RECORD_ANALYSE = "ModAction_RecordAnalyse"
    MOD_ACTION_REQUEST_SKILLS = "ModAction_RequestSkills"
    MOD_ACTION_NOTIFY = "ModAction_Notify"
    MOD_FINISH_VOICEMAIL = "ModFinish_VoiceMail"
    VOICE_AI_KNOWLEDGE = "NatterboxAI_VoiceAIKnowledge"
    DIGITAL_AI_KNOWLEDGE = "NatterboxAI_DigitalAIKnowledge"
    DIGITAL_AI_AGENT = "NatterboxAI_DigitalAIAgent"
    VOICE_AI_AGENT = "NatterboxAIVoice_VoiceAIAgent"


POLICY_TYPE_DISPLAY = {
    "CALL": "Call",
    "DATA_ANALYTICS": "Data Analytics",
    "DIGITAL": "Digital",
    PolicyType.CALL.value: "Call",
    PolicyType.DATA_ANALYTICS.value: "Data Analytics",
    PolicyType.DIGITAL.value: "Digital",
}


@dataclass
class CloneReport:
    messages: list[str] = field(default_factory=list)

    def add(self, message: str) -> None:
        self.messages.append(message)

    def add_once(self, message: str) -> None:
        if message not in self.messages:
            self.messages.append(message)


@dataclass
class OrgDirectory:
    """Records that exist in the org the policy is being cloned into."""

    sounds: list[Mapping[str, Any]] = field(default_factory=list)
    users: list[Mapping[str, Any]] = field(default_factory=list)
    groups: list[Mapping[str, Any]] = field(default_factory=list)
    skills: list[Mapping[str, Any]] = field(default_factory=list)
    sf_users: list[Mapping[str, Any]] = field(default_factory=list)
    chatter_groups: list[Mapping[str, Any]] = field(default_factory=list)


def exists_in_org(records: Iterable[Mapping[str, Any]], record_id: Any) -> bool:
    if not record_id:
        return False
    wanted = str(record_id)
    for record in records:
        if record.get("Id__c") is not None and str(record["Id__c"]) == wanted:
            return True
        if record.get("Id") is not None and record["Id"] == wanted:
            return True
    return False


def _report_message(node_name: Any, element_name: Any, kind: str, target: Any, removed: bool) -> str:
    verb = "removed " if removed else ""
    return f"Component: {node_name} -> Element: {element_name} has {verb}reference to {kind} Id: {target}"


def _remap(text: str, pattern: re.Pattern, factory: Callable[[], str]) -> str:
    """Replace every match, mapping equal matches to the same new value."""
    mapping: dict[str, str] = {}

    def replace(match: re.Match) -> str:
        key = match.group(0).lower()
        if key not in mapping:
            mapping[key] = factory()
        return mapping[key]

    return pattern.sub(replace, text)


def _iter_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _iter_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _iter_strings(item)


def replace_policy_ids(policy: Mapping[str, Any], report: CloneReport) -> dict[str, Any]:
    text = json.dumps(policy)
    text = _remap(text, UUID_RE, ids.generate_id)
    text = _remap(text, SCREEN_HOOK_RE, ids.generate_hex_id)
    result = json.loads(text)

    for value in _iter_strings(result):
        for macro in MACRO_RE.findall(value):
            report.add_once(f"Policy is using Macro: {macro}")
        for tag in SOUND_TAG_RE.findall(value):
            report.add_once(f"Policy is using Sound Tag: {tag}")
    return result


# -- per-template checks ------------------------------------------------------

def _check_targets(items: Iterable[dict[str, Any]], report: CloneReport, node_name: Any,
                   element_name: Any, org: OrgDirectory) -> None:
    for item in items:
        method = item.get("method")
        if method == "USER":
            records, kind = org.users, "User"
        elif method == "GROUP":
            records, kind = org.groups, "Group"
        else:
            continue
        exists = exists_in_org(records, item.get("target"))
        report.add(_report_message(node_name, element_name, kind, item.get("target"), not exists))
        if not exists:
            item["target"] = None


def _check_connect(element: dict[str, Any], report: CloneReport, node_name: Any, org: OrgDirectory) -> None:
    connect_action = (element.get("config") or {}).get("connectAction")
    if isinstance(connect_action, dict):
        _check_targets(connect_action.values(), report, node_name, element.get("name"), org)


def _check_follow_me(element: dict[str, Any], report: CloneReport, node_name: Any, org: OrgDirectory) -> None:
    follow_me = (element.get("config") or {}).get("followMe")
    if isinstance(follow_me, list):
        _check_targets(follow_me, report, node_name, element.get("name"), org)


def _check_queue(element: dict[str, Any], report: CloneReport, node_name: Any, org: OrgDirectory) -> None:
    variables = element.get("variables") or {}
    name = element.get("name")

    for item in variables.get("ringTargets") or []:
        exists = exists_in_org(org.groups, item.get("groupId"))
        report.add(_report_message(node_name, name, "Group", item.get("groupId"), not exists))
        item.pop("$$hashKey", None)
        if not exists:
            item["groupId"] = None

    for item in variables.get("announcements") or []:
        if "soundId" in item:
            exists = exists_in_org(org.sounds, item["soundId"])
            report.add(_report_message(node_name, name, "Sound", item["soundId"], not exists))
            if not exists:
                item["soundId"] = ""

    sound_tags = {s.get("Tag__c") for s in org.sounds}
    for holder in ("configCallbackAndChime", "configForLuaScript"):
        for item in (element.get(holder) or {}).get("chime") or []:
            if item.get("chime") and item["chime"] not in sound_tags:
                item["chime"] = ""

    announcement = (element.get("configScreen") or {}).get("announcement")
    if isinstance(announcement, str) and "{" in announcement:
        report.add(
            f"Component: {node_name} -> Element: {name} might have a reference to a Sound Tag: {announcement}"
        )


def _check_request_skills(element: dict[str, Any], report: CloneReport, org: OrgDirectory) -> None:
    config = element.get("config") or {}
    skills = config.get("skills")
    if not isinstance(skills, list):
        return
    kept = []
    for skill in skills:
        if exists_in_org(org.skills, skill.get("Id__c")):
            kept.append(skill)
        else:
            report.add(f'Removed Skill "{skill.get("Name")}" from {element.get("name")}')
    config["skills"] = kept


def _check_notify_chatter(element: dict[str, Any], org: OrgDirectory) -> None:
    sub_items = element.get("subItems")
    chatter = sub_items.get("chatter") if isinstance(sub_items, dict) else None
    targets = {"group": org.chatter_groups, "user": org.sf_users}
    for item in chatter or []:
        records = targets.get(item.get("targetType"))
        if records is not None and not exists_in_org(records, item.get("target")):
            item["target"] = ""
    element.pop("$$hashKey", None)


def _check_voicemail(element: dict[str, Any], org: OrgDirectory) -> None:
    mailbox = (element.get("variables") or {}).get("mailbox")
    if not isinstance(mailbox, dict):
        return
    if mailbox.get("type") == "GROUP" and mailbox.get("groupId"):
        if not exists_in_org(org.groups, mailbox["groupId"]):
            del mailbox["groupId"]
    elif mailbox.get("type") == "USER" and mailbox.get("userId"):
        if not exists_in_org(org.users, mailbox["userId"]):
            del mailbox["userId"]


def _reset_knowledge_base(component: dict[str, Any], report: CloneReport) -> dict[str, Any]:
    if component.get("knowledgeBaseId"):
        report.add(f"Removed Knowledge base with ID: {component['knowledgeBaseId']}")
    for tag in component.get("tagFilter") or []:
        report.add(f"Removed Tag: {tag}")
    for meta in component.get("metaPropertyFilter") or []:
        report.add(f"Removed Meta Property: {meta.get('label')} / {meta.get('value')}")
    return {**component, "tagFilter": [], "metaPropertyFilter": [], "knowledgeBaseId": None}


def _reset_agent(component: dict[str, Any], report: CloneReport) -> dict[str, Any]:
    if component.get("agentId"):
        report.add(f"Removed Agent with ID: {component['agentId']}")
    return {**component, "tokens": [], "agentId": None, "agentVersion": "HEAD"}


def _process_output(element: dict[str, Any], node_name: Any, report: CloneReport, org: OrgDirectory,
                    config: ConnectorConfig, namespace_prefix: str) -> None:
    template_class = element.get("templateClass")
    if template_class == TemplateClass.MOD_CONNECT:
        _check_connect(element, report, node_name, org)
    elif template_class == TemplateClass.MOD_CONNECT_FOLLOW_ME:
        _check_follow_me(element, report, node_name, org)
    elif template_class == TemplateClass.MOD_CONNECT_QUEUE:
        _check_queue(element, report, node_name, org)
    elif template_class == TemplateClass.MOD_ACTION_RECORD:
        if isinstance(element.get("variables"), dict):
            element["variables"]["archivePolicyId"] = None
    elif template_class == TemplateClass.MOD_ACTION_RECORD_ANALYSE:
        element["config"] = {
            **(element.get("config") or {}),
            "connectorId": config.connector_id,
            "devOrgId": config.dev_org_id,
            "namespacePrefix": namespace_prefix or DEFAULT_NAMESPACE_PREFIX,
        }
    elif template_class == TemplateClass.MOD_ACTION_REQUEST_SKILLS:
        _check_request_skills(element, report, org)
    elif template_class == TemplateClass.MOD_ACTION_NOTIFY:
        _check_notify_chatter(element, org)
    elif template_class == TemplateClass.MOD_FINISH_VOICEMAIL:
        _check_voicemail(element, org)
    elif template_class in (TemplateClass.VOICE_AI_KNOWLEDGE, TemplateClass.DIGITAL_AI_KNOWLEDGE):
        component = (element.get("config") or {}).get("component")
        if isinstance(component, dict):
            element["config"]["component"] = _reset_knowledge_base(component, report)
    elif template_class in (TemplateClass.DIGITAL_AI_AGENT, TemplateClass.VOICE_AI_AGENT):
        component = (element.get("config") or {}).get("component")
        if isinstance(component, dict):
            element["config"]["component"] = _reset_agent(component, report)


def _drop_source_connections(policy: dict[str, Any], node_id: str) -> None:
    connections = policy.get("connections")
    if connections is None:
        return
    policy["connections"] = [
        c for c in connections if (c.get("source") or {}).get("nodeID") != node_id
    ]


def process_nodes_for_cloning(policy: dict[str, Any], org: OrgDirectory, report: CloneReport,
                              config: ConnectorConfig, namespace_prefix: str = "",
                              catalog: TemplateCatalog | None = None) -> dict[str, Any]:
    catalog = catalog or default_catalog()
    unlinked: list[str] = []
    nodes = []
    for node in policy.get("nodes") or []:
        template_class = node.get("templateClass")
        if catalog.is_inbound_number(node.get("templateId")) and not template_class:
            continue
        if template_class in (TemplateClass.MOD_POLICY_TO_NON_CALL, TemplateClass.MOD_POLICY_TO_CALL):
            if template_class == TemplateClass.MOD_POLICY_TO_NON_CALL:
                _drop_source_connections(policy, node["id"])
            continue

        if template_class in (TemplateClass.MOD_NUMBER, TemplateClass.MOD_START_DIGITAL):
            if node.get("subItems") is not None:
                for item in node["subItems"]:
                    variables = item.get("variables") or {}
                    if variables.get("publicNumber"):
                        report.add(f"Removed Public Number: {item.get('name')} / {variables['publicNumber']}")
                    elif variables.get("flowHook"):
                        report.add(f"Removed Digital Number: {item.get('name')}")
                node["subItems"] = []
        elif template_class in (TemplateClass.MOD_POLICY, TemplateClass.MOD_POLICY_NC):
            unlinked.append(node["id"])
            for output in node.get("outputs") or []:
                report.add(f"Removed Linked Policy: {output.get('name')}")
            _drop_source_connections(policy, node["id"])
            node["outputs"] = []
            if isinstance(node.get("data"), dict) and node["data"].get("outputs"):
                node["data"]["outputs"] = []
        else:
            for element in node.get("outputs") or []:
                _process_output(element, node.get("name"), report, org, config, namespace_prefix)
        nodes.append(node)

    for node in nodes:
        if node.get("connectedFromNode") in unlinked:
            node["connectedFromNode"] = None
            node["connectedFromItem"] = None

    policy["nodes"] = nodes
    return policy


def clone_policy(
    policy: Mapping[str, Any],
    *,
    config: ConnectorConfig | None = None,
    sounds: Iterable[Mapping[str, Any]] = (),
    users: Iterable[Mapping[str, Any]] = (),
    groups: Iterable[Mapping[str, Any]] = (),
    skills: Iterable[Mapping[str, Any]] = (),
    sf_users: Iterable[Mapping[str, Any]] = (),
    chatter_groups: Iterable[Mapping[str, Any]] = (),
    namespace_prefix: str = "",
    catalog: TemplateCatalog | None = None,
) -> tuple[dict[str, Any], CloneReport]:
    """Copy a legacy policy document for re-creation, possibly in another org.

    Every UUID is remapped consistently and screen hooks are regenerated.
    Numbers, linked policies, knowledge bases, agents and any user, group,
    sound or skill missing from the target org are stripped; each change is
    recorded in the returned report.
    """
    config = config or ConnectorConfig()
    org = OrgDirectory(
        sounds=list(sounds), users=list(users), groups=list(groups), skills=list(skills),
        sf_users=list(sf_users), chatter_groups=list(chatter_groups),
    )
    report = CloneReport()

    cloned = replace_policy_ids(copy.deepcopy(dict(policy)), report)
    cloned = process_nodes_for_cloning(cloned, org, report, config, namespace_prefix, catalog)

    policy_type = policy.get("type")
    advanced = policy_type.get("advanced") if isinstance(policy_type, Mapping) else None
    cloned.update({
        "Id": None,
        "Id__c": None,
        "Name": policy.get("name") or policy.get("Name") or "",
        "Description__c": policy.get("description") or policy.get("Description__c") or "",
        "Type__c": advanced or policy.get("Type__c") or PolicyType.CALL.value,
    })
    for key in ("id", "name", "remoteId", "description"):
        cloned.pop(key, None)

    logger.debug("Cloned policy %r with %d report messages", cloned["Name"], len(report.messages))
    return cloned, report


def generate_clone_report(report: CloneReport, policy_name: str) -> str:
    if not report.messages:
        return ""
    lines = "\n".join(sorted(report.messages))
    return f"Policy Clone Report for: {policy_name}\n{'=' * 50}\n\n{lines}"


def can_delete_policy(policy: Mapping[str, Any]) -> bool:
    return policy.get("Source__c") != "SYSTEM"


def get_policy_type_display(type_code: str | None) -> str:
    return POLICY_TYPE_DISPLAY.get(type_code or "", "Unknown")
