import json

import httpx
import pytest
from httpx import ASGITransport

from comfyx.cli import _draft_workflow, _run_workflow, build_parser, main
from comfyx.config import AIConfig, ServerConfig, Settings
from comfyx.engine import NodeRegistry

EXAMPLE = '{"1":{"class_type":"LoadImage","inputs":{"path":"a.png"}},"2":{"class_type":"Save","inputs":{"image":["1",0]}}}'


def test_extract(tmp_path, capsys):
    source = tmp_path / "reply.txt"
    source.write_text(f"Here:\n```json\n{EXAMPLE}\n```\n", encoding="utf-8")
    assert main(["extract", str(source)]) == 0
    assert capsys.readouterr().out.strip() == EXAMPLE


def test_extract_nothing(tmp_path, capsys):
    source = tmp_path / "reply.txt"
    source.write_text("no json", encoding="utf-8")
    assert main(["extract", str(source)]) == 1
    assert "no JSON object found" in capsys.readouterr().err


def test_convert(tmp_path, capsys):
    editor = {
        "nodes": [{"id": 1, "type": "LoadImage", "inputs": [{"name": "image", "widget": {"name": "image"}}],
                   "widgets_values": ["a.png"]}],
        "links": [],
    }
    source = tmp_path / "editor.json"
    source.write_text(json.dumps(editor), encoding="utf-8")
    assert main(["convert", str(source)]) == 0
    assert json.loads(capsys.readouterr().out) == {"1": {"class_type": "LoadImage", "inputs": {"image": "a.png"}}}


def test_graph(tmp_path, capsys):
    source = tmp_path / "api.json"
    source.write_text(EXAMPLE, encoding="utf-8")
    assert main(["graph", str(source)]) == 0
    graph = json.loads(capsys.readouterr().out)
    assert [(n["id"], n["x"]) for n in graph["nodes"]] == [("1", 60.0), ("2", 340.0)]
    assert graph["connections"] == [{"from_node_id": "1", "from_slot": 0, "to_node_id": "2", "to_slot": 0}]


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def _executed(prompt_id):
    return json.dumps({"type": "executed", "data": {"node": "9", "prompt_id": prompt_id}})


@pytest.mark.asyncio
async def test_run_keeps_output_files_inside_out_dir(tmp_path, engine, connector):
    out_dir = tmp_path / "out"
    engine.state.outputs = [
        {"filename": "/tmp/evil.png", "subfolder": ""},
        {"filename": "../escape.png", "subfolder": "batch/2"},
        {"filename": "a.png", "subfolder": "../../x"},
        {"filename": "a.png", "subfolder": "x"},
        {"filename": "..", "subfolder": ""},
    ]
    engine.state.on_queue = lambda prompt_id: connector.last.feed(_executed(prompt_id))
    settings = Settings(server=ServerConfig(external_url="http://test"))

    code = await _run_workflow(settings, EXAMPLE, out_dir, 2, transport=ASGITransport(app=engine), connector=connector)

    assert code == 0
    assert sorted(p.name for p in out_dir.iterdir()) == ["batch_2_escape.png", "evil.png", "x_a.png"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["out"]
    assert (out_dir / "x_a.png").read_bytes() == b"\x89PNGa.png"


@pytest.mark.asyncio
async def test_run_fails_when_channel_drops(tmp_path, engine, connector, capsys):
    engine.state.on_queue = lambda prompt_id: connector.last.drop()
    settings = Settings(server=ServerConfig(external_url="http://test"))

    code = await _run_workflow(
        settings, EXAMPLE, tmp_path / "out", None, transport=ASGITransport(app=engine), connector=connector,
    )

    assert code == 1
    assert "channel closed before job job-1 finished" in capsys.readouterr().err
    assert not (tmp_path / "out").exists()


@pytest.mark.asyncio
async def test_draft_prints_workflow(object_info, capsys):
    reply = f"Sure:\n```json\n{EXAMPLE}\n```"
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"content": reply}}]})

    settings = Settings(ai=AIConfig(openai_api_key="sk-test", openai_model="gpt-test"))
    registry = NodeRegistry()
    registry.load_object_info(object_info)

    code = await _draft_workflow(settings, "upscale a photo", None, registry, transport=httpx.MockTransport(handler))

    assert code == 0
    assert json.loads(capsys.readouterr().out) == json.loads(EXAMPLE)
    system, user = requests[0]["messages"]
    assert requests[0]["model"] == "gpt-test"
    assert "- KSampler (KSampler)" in system["content"]
    assert user["content"].endswith("upscale a photo")


@pytest.mark.asyncio
async def test_draft_reports_provider_error(capsys):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    settings = Settings(ai=AIConfig(active_provider="gemini", gemini_api_key="k"))
    code = await _draft_workflow(settings, "anything", None, None, transport=httpx.MockTransport(handler))

    assert code == 1
    assert "gemini: bad key" in capsys.readouterr().err
