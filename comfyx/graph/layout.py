"""Column layout: places nodes by dependency depth.

Unlike a topological sort this tolerates cycles: depths are relaxed over the
connection list for at most ``2 * len(nodes)`` passes, after which whatever
depths were reached are used as-is.
"""

import logging
from collections import defaultdict

from comfyx.graph.models import DEFAULT_NODE_WIDTH, Graph

logger = logging.getLogger(__name__)

START_X = 60.0
START_Y = 60.0
COLUMN_SPACING = 280.0
ROW_SPACING = 160.0
MIN_NODE_HEIGHT = 80.0
BASE_NODE_HEIGHT = 50.0
LINE_HEIGHT = 22.0

# checked in order; the first matching substring decides
_CATEGORY_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("loader", ("loader", "checkpoint", "load")),
    ("sampler", ("sampler", "ksampler")),
    ("conditioning", ("clip", "encode", "conditioning")),
    ("vae", ("vae", "decode")),
    ("output", ("save", "preview", "output")),
    ("latent", ("latent", "empty")),
    ("controlnet", ("controlnet", "control")),
]


def accent_category(class_type: str) -> str:
    """Display tag for a node class; purely cosmetic."""
    lowered = class_type.lower()
    for category, needles in _CATEGORY_RULES:
        if any(needle in lowered for needle in needles):
            return category
    return "default"


def node_depths(graph: Graph) -> dict[str, int]:
    """Longest-path depth per node id, bounded for cyclic graphs."""
    depths = {node.id: 0 for node in graph.nodes}
    edges = [(c.from_node_id, c.to_node_id) for c in graph.connections
             if c.from_node_id in depths and c.to_node_id in depths]

    budget = 2 * len(depths)
    changed = True
    passes = 0
    while changed and passes < budget:
        changed = False
        passes += 1
        for source, target in edges:
            candidate = depths[source] + 1
            if candidate > depths[target]:
                depths[target] = candidate
                changed = True

    if changed:
        logger.debug("Layout depth budget (%d passes) exhausted; graph is likely cyclic", budget)
    return depths


def node_height(connected_inputs: int, widget_count: int) -> float:
    lines = max(connected_inputs, 1) + widget_count
    return max(MIN_NODE_HEIGHT, BASE_NODE_HEIGHT + lines * LINE_HEIGHT)


def layout_graph(graph: Graph) -> Graph:
    """Assign position and size to every node in place; returns *graph*."""
    if graph.is_empty():
        return graph

    depths = node_depths(graph)
    columns = defaultdict(list)
    for node in graph.nodes:
        columns[depths[node.id]].append(node)

    for depth in sorted(columns):
        for row, node in enumerate(columns[depth]):
            node.x = START_X + depth * COLUMN_SPACING
            node.y = START_Y + row * ROW_SPACING
            node.width = DEFAULT_NODE_WIDTH
            node.height = node_height(node.connected_input_count, len(node.widget_values))
    return graph
