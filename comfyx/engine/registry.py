"""Node type registry backed by the job engine's /object_info."""

import logging
from typing import TYPE_CHECKING, Any

from comfyx.nodes.base import NodeDefinition

if TYPE_CHECKING:
    from comfyx.engine.client import JobClient

logger = logging.getLogger(__name__)


class NodeRegistry:
    """Indexes the node types available on the connected engine."""

    def __init__(self, definitions: dict[str, NodeDefinition] | None = None):
        self.node_types: dict[str, NodeDefinition] = dict(definitions or {})

    @property
    def is_loaded(self) -> bool:
        return bool(self.node_types)

    def load(self, definitions: dict[str, NodeDefinition]) -> None:
        """Replace the index. An empty mapping leaves the current index alone."""
        if definitions:
            self.node_types = dict(definitions)
            logger.info("NodeRegistry loaded %d node definitions", len(self.node_types))

    def load_object_info(self, object_info: dict[str, Any]) -> None:
        """Load from a raw /object_info payload (e.g. a saved file)."""
        if not isinstance(object_info, dict):
            logger.warning("Ignoring node definitions that are not an object: %s", type(object_info).__name__)
            return
        self.load({
            class_name: NodeDefinition.from_object_info(class_name, entry)
            for class_name, entry in object_info.items()
        })

    async def refresh(self, client: "JobClient") -> None:
        """Re-fetch definitions; a failed fetch keeps the previous index."""
        self.load(await client.get_object_info())

    def get(self, class_name: str) -> NodeDefinition | None:
        """Get a node definition by class name, or None if unknown."""
        return self.node_types.get(class_name)

    def search(self, query: str) -> list[NodeDefinition]:
        """Case-insensitive match over display name, category and class name."""
        if not query or not query.strip():
            return list(self.node_types.values())
        needle = query.strip().lower()
        return [
            node for node in self.node_types.values()
            if needle in node.display_name.lower()
            or needle in node.category.lower()
            or needle in node.class_name.lower()
        ]

    def list_meta(self) -> list[dict[str, Any]]:
        """Return metadata for all registered nodes."""
        return [node.model_dump() for node in self.node_types.values()]
