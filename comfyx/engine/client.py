"""REST client for the job engine: queue jobs and fetch their results."""

import logging
from typing import Any

import httpx
from pydantic import BaseModel

from comfyx.nodes.base import NodeDefinition

logger = logging.getLogger(__name__)


class OutputImage(BaseModel):
    """One image produced by a finished job, as listed in /history."""
    node_id: str = ""
    filename: str
    subfolder: str = ""
    type: str = "output"


class JobClient:
    """Async facade over the job engine's HTTP endpoints.

    Transport and HTTP failures are logged and reported as ``False``/``None``
    or empty results; callers decide whether to retry.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "JobClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def check_connection(self) -> bool:
        """True when GET /system_stats answers 200."""
        try:
            resp = await self._http.get("/system_stats")
        except httpx.HTTPError as exc:
            logger.error("Job engine connection check failed: %s", exc)
            return False
        return resp.status_code == 200

    async def get_object_info(self) -> dict[str, NodeDefinition]:
        """Fetch and parse every node definition the engine knows about."""
        try:
            resp = await self._http.get("/object_info")
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Failed to fetch object_info: %s", exc)
            return {}
        if not isinstance(data, dict):
            logger.error("object_info is not an object")
            return {}

        definitions = {
            class_name: NodeDefinition.from_object_info(class_name, entry)
            for class_name, entry in data.items()
        }
        logger.info("Loaded %d node definitions", len(definitions))
        return definitions

    async def queue_prompt(self, workflow: dict[str, Any], client_id: str | None = None) -> str | None:
        """POST an execution-form workflow to /prompt; return its prompt_id.

        Passing the channel's *client_id* makes the engine route this job's
        progress messages to that channel.
        """
        payload: dict[str, Any] = {"prompt": workflow}
        if client_id:
            payload["client_id"] = client_id
        try:
            resp = await self._http.post("/prompt", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Failed to queue prompt: %s", exc)
            return None

        prompt_id = data.get("prompt_id") if isinstance(data, dict) else None
        if not isinstance(prompt_id, str):
            logger.warning("Queue response did not contain prompt_id")
            return None
        logger.info("Prompt queued: %s", prompt_id)
        return prompt_id

    async def get_image(self, filename: str, subfolder: str = "", type: str = "output") -> bytes | None:
        """Download raw image bytes from /view."""
        params = {"filename": filename, "subfolder": subfolder, "type": type}
        try:
            resp = await self._http.get("/view", params=params)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Failed to download image %r: %s", filename, exc)
            return None
        logger.debug("Downloaded image %s (%d bytes)", filename, len(resp.content))
        return resp.content

    async def get_history(self, prompt_id: str) -> dict[str, Any] | None:
        try:
            resp = await self._http.get(f"/history/{prompt_id}")
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Failed to fetch history for %s: %s", prompt_id, exc)
            return None
        return data if isinstance(data, dict) else None

    async def list_output_images(self, prompt_id: str) -> list[OutputImage]:
        """Images recorded in /history for *prompt_id*, in history order."""
        history = await self.get_history(prompt_id)
        if not history:
            return []
        return parse_history_images(history)


def parse_history_images(history: dict[str, Any]) -> list[OutputImage]:
    """``{id: {"outputs": {node: {"images": [...]}}}}`` -> OutputImage list."""
    images: list[OutputImage] = []
    for entry in history.values():
        outputs = entry.get("outputs") if isinstance(entry, dict) else None
        if not isinstance(outputs, dict):
            continue
        for node_id, node_output in outputs.items():
            listed = node_output.get("images") if isinstance(node_output, dict) else None
            if not isinstance(listed, list):
                continue
            for image in listed:
                if not isinstance(image, dict) or not isinstance(image.get("filename"), str):
                    continue
                images.append(OutputImage(
                    node_id=str(node_id),
                    filename=image["filename"],
                    subfolder=str(image.get("subfolder") or ""),
                    type=str(image.get("type") or "output"),
                ))
    return images
