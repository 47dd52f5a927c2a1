"""Shared test fixtures for ComfyX: an in-process fake job engine and fake channel transports."""

import asyncio
import copy

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

OBJECT_INFO = {
    "CheckpointLoaderSimple": {
        "input": {"required": {"ckpt_name": [["sd15.safetensors", "sdxl.safetensors"]]}},
        "output": ["MODEL", "CLIP", "VAE"],
        "output_name": ["MODEL", "CLIP", "VAE"],
        "display_name": "Load Checkpoint",
        "category": "loaders",
        "description": "Loads a diffusion model checkpoint.",
        "output_node": False,
    },
    "CLIPTextEncode": {
        "input": {"required": {"text": ["STRING", {"multiline": True}], "clip": ["CLIP"]}},
        "output": ["CONDITIONING"],
        "display_name": "CLIP Text Encode (Prompt)",
        "category": "conditioning",
    },
    "KSampler": {
        "input": {
            "required": {
                "model": ["MODEL"],
                "seed": ["INT", {"default": 0, "min": 0}],
                "steps": ["INT", {"default": 20, "min": 1}],
                "positive": ["CONDITIONING"],
                "negative": ["CONDITIONING"],
                "latent_image": ["LATENT"],
            },
            "optional": {"denoise": ["FLOAT", {"default": 1.0}]},
        },
        "output": ["LATENT"],
        "output_name": ["LATENT"],
        "display_name": "KSampler",
        "category": "sampling",
    },
    "SaveImage": {
        "input": {"required": {"images": ["IMAGE"], "filename_prefix": ["STRING", {"default": "ComfyUI"}]}},
        "output": [],
        "display_name": "Save Image",
        "category": "image",
        "output_node": True,
    },
}


class PromptRequest(BaseModel):
    prompt: dict
    client_id: str | None = None


def make_engine() -> FastAPI:
    """FastAPI app answering the job engine's REST endpoints.

    ``app.state.queued`` records every accepted /prompt body and
    ``app.state.on_queue`` (if set) is called with each new prompt id.
    ``app.state.outputs`` lists the images every job reports and /view serves.
    """
    app = FastAPI(title="fake-engine")
    app.state.queued = []
    app.state.history = {}
    app.state.on_queue = None
    app.state.outputs = [{"filename": "ComfyUI_00001_.png", "subfolder": "", "type": "output"}]

    @app.get("/system_stats")
    async def system_stats():
        return {"system": {"os": "posix", "python_version": "3.11"}, "devices": []}

    @app.get("/object_info")
    async def object_info():
        return OBJECT_INFO

    @app.post("/prompt")
    async def prompt(req: PromptRequest):
        app.state.queued.append(req.model_dump())
        prompt_id = f"job-{len(app.state.queued)}"
        app.state.history[prompt_id] = {
            prompt_id: {
                "prompt": [len(app.state.queued), prompt_id, req.prompt],
                "outputs": {
                    "9": {"images": list(app.state.outputs)},
                },
            }
        }
        if app.state.on_queue is not None:
            app.state.on_queue(prompt_id)
        return {"prompt_id": prompt_id, "number": len(app.state.queued), "node_errors": {}}

    @app.get("/view")
    async def view(filename: str, subfolder: str = "", type: str = "output"):
        if filename not in [image["filename"] for image in app.state.outputs]:
            raise HTTPException(status_code=404, detail="not found")
        return Response(content=b"\x89PNG" + filename.encode(), media_type="image/png")

    @app.get("/history/{prompt_id}")
    async def history(prompt_id: str):
        return app.state.history.get(prompt_id, {})

    return app


@pytest.fixture
def engine():
    return make_engine()


@pytest.fixture
def object_info():
    return copy.deepcopy(OBJECT_INFO)


# ---------------------------------------------------------------------------
# Fake channel transport
# ---------------------------------------------------------------------------

_CLOSED_OK = object()
_DROPPED = object()


class FakeConnection:
    """Stands in for a websockets connection: ``recv`` reads what tests feed."""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def feed(self, message):
        self.incoming.put_nowait(message)

    def close_from_server(self):
        self.incoming.put_nowait(_CLOSED_OK)

    def drop(self):
        self.incoming.put_nowait(_DROPPED)

    async def recv(self):
        item = await self.incoming.get()
        if item is _CLOSED_OK:
            raise ConnectionClosedOK(None, None)
        if item is _DROPPED:
            raise ConnectionClosedError(None, None)
        return item

    async def close(self):
        self.closed = True


class FakeConnector:
    """Connector returning a fresh FakeConnection per call and recording URLs."""

    def __init__(self):
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


@pytest.fixture
def connector():
    return FakeConnector()
