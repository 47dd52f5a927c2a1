"""Convert editor-form workflows (nodes + links) into execution form.

Editor form is what the graph editor saves: a ``nodes`` array whose entries
carry ``id``, ``type``, ``widgets_values`` and ``inputs`` (each input may hold
a ``link`` id), plus a ``links`` array. Execution form is the flat
``{node_id: {"class_type": ..., "inputs": {...}}}`` map posted to ``/prompt``.

Widget values are matched to widget inputs by position, not by name, so a
node whose stored widget order differs from its declared inputs will get
mis-assigned values. The ordering is kept as-is for wire compatibility.
"""

import copy
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class ConversionError(ValueError):
    """Editor-form document is structurally unusable."""


def is_execution_form(document: Any) -> bool:
    """True if any top-level value is an object holding ``class_type``."""
    if not isinstance(document, dict):
        return False
    return any(
        isinstance(value, dict) and "class_type" in value
        for value in document.values()
    )


def to_execution_form(document: Any) -> dict[str, Any] | None:
    """Return the execution-form equivalent of *document*.

    Documents already in execution form are returned unchanged (same object).
    Any failure returns None rather than a partial document.
    """
    if is_execution_form(document):
        return document
    try:
        return _convert(document)
    except Exception as exc:
        logger.error("Workflow conversion failed: %s", exc)
        return None


def convert_workflow_text(text: str) -> str | None:
    """Text-level wrapper around :func:`to_execution_form`.

    Execution-form input comes back as the input string; converted
    documents are emitted as indented JSON.
    """
    try:
        document = json.loads(text)
    except (TypeError, ValueError) as exc:
        logger.error("Workflow conversion failed: %s", exc)
        return None
    if is_execution_form(document):
        return text
    converted = to_execution_form(document)
    if converted is None:
        return None
    return json.dumps(converted, indent=2, ensure_ascii=False)


def _convert(document: Any) -> dict[str, Any]:
    if not isinstance(document, dict):
        raise ConversionError("workflow root is not an object")
    nodes = document.get("nodes")
    if not isinstance(nodes, list):
        raise ConversionError("workflow has no 'nodes' array")

    link_map = _link_map(document.get("links") or [])
    result: dict[str, Any] = {}

    for node in nodes:
        if not isinstance(node, dict):
            raise ConversionError(f"node entry is not an object: {node!r}")
        node_id = node.get("id")
        class_type = node.get("type")
        if node_id is None or node_id == "" or not class_type:
            raise ConversionError(f"node is missing 'id' or 'type': {node!r}")
        if str(node_id) in result:
            raise ConversionError(f"duplicate node id {node_id!r}")

        result[str(node_id)] = {
            "class_type": class_type,
            "inputs": _node_inputs(node, link_map),
        }

    logger.debug("Converted %d editor nodes to execution form", len(result))
    return result


def _link_map(links: list[Any]) -> dict[int, tuple[Any, int]]:
    """link_id -> (source_node_id, source_slot)."""
    link_map: dict[int, tuple[Any, int]] = {}
    for link in links:
        if isinstance(link, list) and len(link) >= 3:
            link_id, source_id, source_slot = link[0], link[1], link[2]
        elif isinstance(link, dict) and "id" in link:
            link_id = link["id"]
            source_id = link.get("origin_id")
            source_slot = link.get("origin_slot", 0)
        else:
            continue
        if source_id is None:
            continue  # dangling link
        link_map[int(link_id)] = (source_id, int(source_slot))
    return link_map


def _node_inputs(node: dict[str, Any], link_map: dict[int, tuple[Any, int]]) -> dict[str, Any]:
    widget_values = node.get("widgets_values")
    if not isinstance(widget_values, list):
        # some node types save widgets as a name -> value object; there is no
        # positional order to consume from
        widget_values = []

    inputs: dict[str, Any] = {}
    widget_index = 0
    for slot in node.get("inputs") or []:
        if not isinstance(slot, dict):
            continue
        name = slot.get("name")
        if not name:
            continue

        link = slot.get("link")
        if _is_number(link):
            source = link_map.get(int(link))
            if source is not None:
                source_id, source_slot = source
                inputs[name] = [str(source_id), source_slot]
        elif slot.get("widget") is not None:
            if widget_index < len(widget_values):
                inputs[name] = copy.deepcopy(widget_values[widget_index])
            widget_index += 1
    return inputs


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
