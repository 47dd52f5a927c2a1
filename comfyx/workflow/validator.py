"""Loose sanity check for execution-form workflow documents."""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def validate_workflow(workflow: Any) -> bool:
    """True when *workflow* is an object with at least one node-like entry.

    Accepts a parsed value or JSON text. A node-like entry is an object
    carrying ``class_type``; anything deeper is left to the job engine.
    """
    if isinstance(workflow, (str, bytes)):
        try:
            workflow = json.loads(workflow)
        except ValueError as exc:
            logger.warning("Workflow JSON validation failed: %s", exc)
            return False

    if not isinstance(workflow, dict):
        return False

    for value in workflow.values():
        if isinstance(value, dict) and "class_type" in value:
            return True

    logger.warning("Workflow JSON parsed but has no entries with 'class_type'")
    return False
