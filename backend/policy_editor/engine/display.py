"""Display titles, descriptions and placeholders for editor nodes."""
import html
import json
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel

from .graph import Node

DEFAULT_TITLE = "Node"
DEFAULT_PLACEHOLDER = "enter name"


class DisplayOverride(BaseModel):
    title: str | None = None
    description: str | None = None
    placeholder: str | None = None


DEFAULT_DISPLAY_OVERRIDES: dict[str, dict[str, str]] = {
    "Route": {"description": "AI-Powered Route Selector"},
    "Router": {
        "placeholder": "e.g. Main Switchboard",
        "description": "Uses AI to make routing decisions based on customer inquiries.",
    },
    "Response": {
        "placeholder": "e.g. Read out terms and conditions",
        "description": "Delivers announcements to your customers.",
    },
    "Get Info": {
        "placeholder": "e.g. Get booking reference",
        "description": "Collects key information from the user and saves it for later use.",
    },
    "Settings": {
        "placeholder": "e.g. Get booking reference",
        "description": "Control and manage the operational and security settings for your AI assistants and agents",
    },
    "Human Escalation": {"description": "Establish a route for the AI to escalate to a human."},
    "Knowledge": {
        "placeholder": "e.g. Product Information.",
        "description": "Use AI to Answer Questions from a Knowledgebase",
    },
    "Persona": {"placeholder": "e.g. Support Assistant Tone", "description": "Assistant Style and Tone"},
    "Get Skills": {
        "placeholder": "e.g. 1st Line Skills",
        "description": "Identifies customer needs and assigns relevant skills",
    },
    "Voicemail": {"description": "AI-powered voicemail with smart notifications"},
    "Agent": {
        "placeholder": "e.g. Booking Agent",
        "description": "AI agents that manage conversations and complete tasks",
    },
    "Record and Analyse": {
        "description": "Record calls, store them securely in the cloud, email them, "
                       "and run AI Advisor analysis to extract key information.",
    },
    "From Policy": {"description": "DialPlan Start provides the entry point for all routes."},
    "Inbound Numbers": {"description": "Inbound Numbers are the phone numbers that trigger this policy."},
    "Inbound Number": {"description": "Entry point for inbound calls."},
    "Extension": {"description": "Internal extension number."},
    "Inbound Message": {"description": "Entry point for messages."},
    "Call Queue": {"description": "Queue calls for agents."},
    "Hunt Group": {"description": "Ring multiple users."},
    "Connect Call": {"description": "Connect to user/number."},
    "Connect a Call": {"description": "Connect the caller to a user or external number."},
    "Rule": {"description": "Conditional branching."},
    "Speak": {"description": "Play audio/TTS."},
    "Record Call": {"description": "Record the call."},
    "Query Object": {"description": "Query Salesforce data."},
    "Create Record": {"description": "Create a Salesforce record."},
    "Manage Properties": {"description": "Set or modify call properties."},
    "Notify": {"description": "Send notifications."},
    "Retry": {"description": "Retry on failure."},
    "Switchboard": {"description": "Directory search."},
    "Debug": {"description": "Debug and troubleshoot."},
    "Omni-Channel Flow": {"description": "Salesforce Omni-Channel integration."},
    "Finish": {"description": "End the call flow."},
    "End": {"description": "End the call flow."},
}


def decode_html_entities(text: str | None) -> str:
    """Decode entities such as ``&amp;`` and ``&#39;`` found in legacy names."""
    return html.unescape(text or "")


def _lookup_fields(node: Node | Mapping[str, Any]) -> tuple[str | None, dict[str, Any]]:
    """Return (override key, data fields) for a Node or a legacy/editor mapping."""
    if isinstance(node, Node):
        data = {
            "title": node.data.title,
            "name": node.data.name,
            "description": node.data.description,
        }
        return node.data.title or node.data.name, data
    data = node.get("data") or {}
    return node.get("title") or node.get("name"), data


class NodeDisplayResolver:
    """Resolves display text through an injected override table keyed by node title."""

    def __init__(self, overrides: Mapping[str, DisplayOverride | Mapping[str, Any]] | None = None):
        source = DEFAULT_DISPLAY_OVERRIDES if overrides is None else overrides
        self.overrides: dict[str, DisplayOverride] = {
            key: value if isinstance(value, DisplayOverride) else DisplayOverride.model_validate(value)
            for key, value in source.items()
        }

    @classmethod
    def from_file(cls, path: str | Path) -> "NodeDisplayResolver":
        with open(path) as f:
            return cls(json.load(f))

    def override_for(self, title: str | None) -> DisplayOverride | None:
        if not title:
            return None
        return self.overrides.get(title)

    def title(self, node: Node | Mapping[str, Any]) -> str:
        key, data = _lookup_fields(node)
        override = self.override_for(key)
        if override and override.title is not None:
            return override.title
        return data.get("title") or data.get("name") or key or DEFAULT_TITLE

    def description(self, node: Node | Mapping[str, Any]) -> str | None:
        key, data = _lookup_fields(node)
        override = self.override_for(key)
        if override and override.description is not None:
            return override.description
        return data.get("description")

    def placeholder(self, title: str | None) -> str:
        override = self.override_for(title)
        if override and override.placeholder is not None:
            return override.placeholder
        return DEFAULT_PLACEHOLDER
