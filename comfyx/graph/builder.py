"""Build a typed Graph from an execution-form workflow document."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from comfyx.graph.layout import accent_category
from comfyx.graph.models import Connection, Graph, Node, Port

if TYPE_CHECKING:
    from comfyx.engine.registry import NodeRegistry

logger = logging.getLogger(__name__)


def build_graph(document: dict[str, Any] | str, registry: NodeRegistry | None = None) -> Graph:
    """Parse *document* (dict or JSON text) into a Graph.

    Never raises: malformed JSON or a non-object root gives an empty graph.
    Connections whose source node is absent from the document are dropped.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except ValueError as exc:
            logger.warning("Graph parse failed: %s", exc)
            return Graph()
    if not isinstance(document, dict):
        logger.warning("Graph parse failed: root is %s, not an object", type(document).__name__)
        return Graph()

    nodes: list[Node] = []
    connections: list[Connection] = []
    for node_id, entry in document.items():
        if not isinstance(entry, dict):
            continue
        node = _build_node(str(node_id), entry, connections, registry)
        nodes.append(node)

    known = {node.id for node in nodes}
    kept = [c for c in connections if c.from_node_id in known]
    if len(kept) != len(connections):
        logger.debug("Dropped %d dangling connection(s)", len(connections) - len(kept))

    _attach_outputs(nodes, kept, registry)
    return Graph(nodes=nodes, connections=kept)


def _build_node(
    node_id: str,
    entry: dict[str, Any],
    connections: list[Connection],
    registry: NodeRegistry | None,
) -> Node:
    class_type = entry.get("class_type")
    if not isinstance(class_type, str):
        class_type = ""

    title = class_type
    meta = entry.get("_meta")
    if isinstance(meta, dict) and isinstance(meta.get("title"), str):
        title = meta["title"]

    node = Node(id=node_id, class_type=class_type, title=title,
                accent_category=accent_category(class_type))
    definition = registry.get(class_type) if registry is not None else None

    inputs = entry.get("inputs")
    if not isinstance(inputs, dict):
        return node

    for name, value in inputs.items():
        port = Port(name=name)
        if definition is not None:
            spec = definition.input(name)
            if spec is not None and spec.type:
                port.declared_type = spec.type

        link = _as_link(value)
        if link is not None:
            source_id, source_slot = link
            port.connected = True
            port.source_node_id = source_id
            port.source_slot = source_slot
            connections.append(Connection(
                from_node_id=source_id,
                from_slot=source_slot,
                to_node_id=node_id,
                to_slot=len(node.inputs),
            ))
        elif isinstance(value, (str, int, float, bool)):
            node.widget_values[name] = value

        node.inputs.append(port)
    return node


def _as_link(value: Any) -> tuple[str, int] | None:
    """``["3", 0]`` -> ("3", 0); anything else -> None."""
    if not isinstance(value, list) or len(value) != 2:
        return None
    source, slot = value
    if isinstance(source, bool) or not isinstance(source, (str, int)):
        return None
    if isinstance(slot, bool) or not isinstance(slot, int):
        return None
    return str(source), slot


def _attach_outputs(nodes: list[Node], connections: list[Connection],
                    registry: NodeRegistry | None) -> None:
    highest: dict[str, int] = {}
    for conn in connections:
        highest[conn.from_node_id] = max(highest.get(conn.from_node_id, -1), conn.from_slot)

    for node in nodes:
        definition = registry.get(node.class_type) if registry is not None else None
        if definition is not None and definition.outputs:
            node.outputs = [Port(name=o.name, declared_type=o.type or "any")
                            for o in definition.outputs]
        elif node.id in highest:
            node.outputs = [Port(name=f"output_{i}") for i in range(highest[node.id] + 1)]
