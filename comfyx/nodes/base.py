"""Node type definitions as reported by the job engine's /object_info."""

from typing import Any
from pydantic import BaseModel, Field


class NodeInputSpec(BaseModel):
    """Describes one declared input slot of a node type."""
    name: str
    type: str = ""                                    # e.g. "IMAGE", "INT", "COMBO"
    required: bool = False
    default: Any = None
    options: list[str] = Field(default_factory=list)  # combo choices


class NodeOutputSpec(BaseModel):
    """Describes one declared output slot of a node type."""
    name: str
    type: str = ""


class NodeDefinition(BaseModel):
    """Metadata describing a node type, keyed by its class name."""
    class_name: str                                   # e.g. "KSampler"
    display_name: str = ""
    category: str = ""                                # e.g. "sampling", "conditioning/text"
    description: str = ""
    output_node: bool = False
    inputs: list[NodeInputSpec] = Field(default_factory=list)
    outputs: list[NodeOutputSpec] = Field(default_factory=list)

    @classmethod
    def from_object_info(cls, class_name: str, entry: dict[str, Any]) -> "NodeDefinition":
        """Parse one value of the /object_info map. Unknown shapes are skipped."""
        if not isinstance(entry, dict):
            entry = {}

        inputs: list[NodeInputSpec] = []
        declared = entry.get("input")
        if isinstance(declared, dict):
            inputs.extend(_input_group(declared.get("required"), required=True))
            inputs.extend(_input_group(declared.get("optional"), required=False))

        outputs: list[NodeOutputSpec] = []
        output_types = entry.get("output")
        if isinstance(output_types, list):
            names = entry.get("output_name")
            if not isinstance(names, list):
                names = []
            for index, out_type in enumerate(output_types):
                type_name = out_type if isinstance(out_type, str) else ""
                name = names[index] if index < len(names) and isinstance(names[index], str) else type_name
                outputs.append(NodeOutputSpec(name=name, type=type_name))

        return cls(
            class_name=class_name,
            display_name=_str(entry.get("display_name")) or class_name,
            category=_str(entry.get("category")),
            description=_str(entry.get("description")),
            output_node=bool(entry.get("output_node", False)),
            inputs=inputs,
            outputs=outputs,
        )

    def input(self, name: str) -> NodeInputSpec | None:
        for spec in self.inputs:
            if spec.name == name:
                return spec
        return None


def _input_group(group: Any, required: bool) -> list[NodeInputSpec]:
    if not isinstance(group, dict):
        return []

    specs = []
    for name, value in group.items():
        spec = NodeInputSpec(name=name, required=required)
        # each entry is [type_or_options, config?]
        if isinstance(value, list) and value:
            first = value[0]
            if isinstance(first, str):
                spec.type = first
            elif isinstance(first, list):
                spec.type = "COMBO"
                spec.options = [opt for opt in first if isinstance(opt, str)]
            if len(value) > 1 and isinstance(value[1], dict) and "default" in value[1]:
                default = value[1]["default"]
                if isinstance(default, (str, int, float, bool)):
                    spec.default = default
        specs.append(spec)
    return specs


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""
