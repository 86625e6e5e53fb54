"""Identifier generation for nodes, outputs and policy items."""
import uuid


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_hex_id() -> str:
    """32 hex characters, the shape the runtime uses for screen hooks."""
    return uuid.uuid4().hex
