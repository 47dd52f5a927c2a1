"""Typed workflow graph: model, builder, layout and the load pipeline."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from comfyx.graph.builder import build_graph
from comfyx.graph.layout import accent_category, layout_graph, node_depths
from comfyx.graph.models import Connection, Graph, Node, Port
from comfyx.workflow.converter import to_execution_form
from comfyx.workflow.extractor import extract_workflow_json

if TYPE_CHECKING:
    from comfyx.engine.registry import NodeRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "Connection",
    "Graph",
    "Node",
    "Port",
    "accent_category",
    "build_graph",
    "layout_graph",
    "load_graph",
    "node_depths",
]


def load_graph(source: str | dict[str, Any], registry: NodeRegistry | None = None) -> Graph:
    """Text or document -> display-ready Graph.

    Text that is not JSON itself (a chat reply, say) goes through the
    extractor first. Editor-form documents are converted to execution form.
    Any stage failing yields an empty graph.
    """
    document: Any = source
    if isinstance(source, str):
        try:
            document = json.loads(source)
        except ValueError:
            extracted = extract_workflow_json(source)
            if extracted is None:
                return Graph()
            document = json.loads(extracted)

    execution = to_execution_form(document)
    if execution is None:
        logger.warning("Could not normalize workflow to execution form")
        return Graph()
    return layout_graph(build_graph(execution, registry))
