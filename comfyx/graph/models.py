"""Typed graph model built from execution-form workflows."""

from typing import Any
from pydantic import BaseModel, Field

DEFAULT_NODE_WIDTH = 220.0
DEFAULT_NODE_HEIGHT = 120.0


class Port(BaseModel):
    """An input or output slot. Connected inputs record their single source."""
    name: str
    declared_type: str = "any"
    connected: bool = False
    source_node_id: str | None = None
    source_slot: int | None = None


class Connection(BaseModel):
    """Edge from an output slot to an input slot; slots are positional."""
    from_node_id: str
    from_slot: int
    to_node_id: str
    to_slot: int


class Node(BaseModel):
    id: str
    class_type: str
    title: str = ""
    inputs: list[Port] = Field(default_factory=list)
    outputs: list[Port] = Field(default_factory=list)
    widget_values: dict[str, Any] = Field(default_factory=dict)  # name -> str | int | float | bool
    x: float = 0.0
    y: float = 0.0
    width: float = DEFAULT_NODE_WIDTH
    height: float = DEFAULT_NODE_HEIGHT
    accent_category: str = "default"

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)

    @property
    def size(self) -> tuple[float, float]:
        return (self.width, self.height)

    @property
    def connected_input_count(self) -> int:
        return sum(1 for port in self.inputs if port.connected)


class Graph(BaseModel):
    """Nodes and connections of one loaded workflow. May contain cycles."""
    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)

    def get(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def is_empty(self) -> bool:
        return not self.nodes
