"""System and request prompts for AI-assisted workflow generation."""

import logging
from collections import defaultdict
from pathlib import Path

from comfyx.nodes.base import NodeDefinition

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are ComfyX AI assistant. You help users create ComfyUI workflows. "
    "When the user describes an image generation task, create a ComfyUI workflow in JSON API format. "
    "Each node in the workflow should have a unique string ID as the key, and contain "
    "\"class_type\", \"inputs\", and optionally \"_meta\" with a \"title\" field. "
    "Connect nodes by referencing other node IDs in the format [\"node_id\", output_index]. "
    "Always use standard ComfyUI node class names. "
    "If the user asks a general question, answer helpfully without generating a workflow."
)


def build_system_prompt(
    nodes: dict[str, NodeDefinition] | None = None,
    prompt_file: Path | None = None,
) -> str:
    """Base prompt (from *prompt_file* when it has content) plus a node catalogue."""
    parts = [_load_base_prompt(prompt_file)]

    if nodes:
        parts.append("")
        parts.append("## Available ComfyUI Nodes")
        parts.append("")
        parts.append(
            "Below are the node class names available on the connected ComfyUI server, "
            "grouped by category. Use only these class names when building workflows."
        )
        parts.append("")

        grouped: dict[str, list[NodeDefinition]] = defaultdict(list)
        for node in nodes.values():
            grouped[node.category.strip() or "Uncategorized"].append(node)

        for category in sorted(grouped):
            parts.append(f"### {category}")
            for node in sorted(grouped[category], key=lambda n: n.class_name):
                display = f" ({node.display_name})" if node.display_name.strip() else ""
                parts.append(f"- {node.class_name}{display}")
            parts.append("")

    return "\n".join(parts)


def build_workflow_prompt(user_request: str) -> str:
    """Wrap a request with instructions to answer in execution-form JSON."""
    return "\n".join([
        "Please generate a ComfyUI workflow in API format JSON based on the following request.",
        "",
        "Requirements:",
        "1. Output ONLY valid JSON in a ```json code block.",
        "2. Each node must have a unique string ID as the key (e.g. \"1\", \"2\", \"3\").",
        "3. Each node must contain \"class_type\" and \"inputs\".",
        "4. Node connections use the format [\"source_node_id\", output_index].",
        "5. Include a \"_meta\" object with a \"title\" field for each node.",
        "6. Use only standard ComfyUI node class names.",
        "",
        "User request:",
        user_request,
    ])


def _load_base_prompt(prompt_file: Path | None) -> str:
    if prompt_file is not None:
        try:
            content = prompt_file.read_text(encoding="utf-8").strip()
        except OSError as exc:
            logger.warning("Failed to load system prompt file %s: %s", prompt_file, exc)
        else:
            if content:
                logger.debug("Loaded system prompt from %s", prompt_file)
                return content
    return DEFAULT_SYSTEM_PROMPT
