from comfyx.nodes.base import NodeDefinition, NodeInputSpec, NodeOutputSpec

__all__ = ["NodeDefinition", "NodeInputSpec", "NodeOutputSpec"]
