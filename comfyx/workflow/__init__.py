"""Workflow text handling: extraction, validation and format conversion."""

from comfyx.workflow.converter import (
    convert_workflow_text,
    is_execution_form,
    to_execution_form,
)
from comfyx.workflow.extractor import extract_workflow_json, format_workflow
from comfyx.workflow.validator import validate_workflow

__all__ = [
    "convert_workflow_text",
    "extract_workflow_json",
    "format_workflow",
    "is_execution_form",
    "to_execution_form",
    "validate_workflow",
]
