"""Client core for ComfyUI-style generative job engines."""

__version__ = "0.1.0"
