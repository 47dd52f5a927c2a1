"""Command line entry point for ComfyX."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path, PurePosixPath

import httpx

from comfyx import __version__
from comfyx.ai import ChatClient, ChatSession, build_system_prompt, build_workflow_prompt
from comfyx.ai.client import PROVIDERS
from comfyx.config import Settings
from comfyx.engine import ExecutionChannel, JobClient, JobRunner, NodeRegistry, OutputImage, ProgressEvent
from comfyx.engine.channel import Connector
from comfyx.errors import ChannelError, ChatError
from comfyx.graph import load_graph
from comfyx.workflow import convert_workflow_text, extract_workflow_json

logger = logging.getLogger(__name__)


def _read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def cmd_extract(args: argparse.Namespace) -> int:
    found = extract_workflow_json(_read_source(args.file))
    if found is None:
        print("no JSON object found", file=sys.stderr)
        return 1
    print(found)
    return 0


def cmd_convert(args: argparse.Namespace) -> int:
    converted = convert_workflow_text(_read_source(args.file))
    if converted is None:
        print("workflow could not be converted", file=sys.stderr)
        return 1
    print(converted)
    return 0


def cmd_graph(args: argparse.Namespace) -> int:
    registry = None
    if args.object_info:
        registry = NodeRegistry()
        registry.load_object_info(json.loads(Path(args.object_info).read_text(encoding="utf-8")))

    graph = load_graph(_read_source(args.file), registry)
    if graph.is_empty():
        print("no nodes found", file=sys.stderr)
        return 1
    print(graph.model_dump_json(indent=2))
    return 0


async def _list_nodes(settings: Settings, query: str) -> int:
    registry = NodeRegistry()
    async with JobClient(settings.server.base_url, timeout=settings.request_timeout) as client:
        await registry.refresh(client)
    if not registry.is_loaded:
        print(f"could not load node definitions from {settings.server.base_url}", file=sys.stderr)
        return 1
    for node in registry.search(query):
        print(f"{node.class_name}\t{node.category}\t{node.display_name}")
    return 0


def cmd_nodes(args: argparse.Namespace) -> int:
    return asyncio.run(_list_nodes(args.settings, args.search))


def _output_name(image: OutputImage) -> str | None:
    """Flat file name for *image* inside the output directory; None if unusable."""
    name = PurePosixPath(image.filename.replace("\\", "/")).name
    if name in ("", ".", ".."):
        return None
    folder = PurePosixPath(image.subfolder.replace("\\", "/"))
    parts = [part for part in folder.parts if part not in ("/", ".", "..")]
    return "_".join(parts + [name])


async def _run_workflow(
    settings: Settings,
    workflow: str,
    out_dir: Path,
    timeout: float | None,
    transport: httpx.AsyncBaseTransport | None = None,
    connector: Connector | None = None,
) -> int:
    base_url = settings.server.base_url
    channel = ExecutionChannel(connector=connector)

    def on_progress(event: ProgressEvent) -> None:
        print(f"[{event.node_id or '-'}] {event.value}/{event.max} ({event.percent:.0f}%)", file=sys.stderr)

    async with JobClient(base_url, timeout=settings.request_timeout, transport=transport) as client:
        if not await client.check_connection():
            print(f"job engine not reachable at {base_url}", file=sys.stderr)
            return 1
        try:
            await channel.connect(base_url)
        except ChannelError as exc:
            print(str(exc), file=sys.stderr)
            return 1

        try:
            result = await JobRunner(client, channel, on_progress=on_progress).run(workflow, timeout=timeout)
        except asyncio.TimeoutError:
            print("timed out waiting for the job to finish", file=sys.stderr)
            return 1
        except ChannelError as exc:
            print(str(exc), file=sys.stderr)
            return 1
        finally:
            await channel.disconnect()

        if result is None:
            print("workflow was not accepted", file=sys.stderr)
            return 1
        if not result.succeeded:
            print(f"job {result.job_id} failed: {result.event.message}", file=sys.stderr)
            return 1

        out_dir.mkdir(parents=True, exist_ok=True)
        written: set[str] = set()
        for image in result.images:
            name = _output_name(image)
            if name is None or name in written:
                logger.warning("Skipping output image %r in %r", image.filename, image.subfolder)
                continue
            data = await client.get_image(image.filename, image.subfolder, image.type)
            if data is None:
                continue
            written.add(name)
            target = out_dir / name
            target.write_bytes(data)
            print(target)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    return asyncio.run(_run_workflow(args.settings, _read_source(args.file), Path(args.out), args.timeout))


async def _draft_workflow(
    settings: Settings,
    request: str,
    provider: str | None,
    registry: NodeRegistry | None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    system_prompt = build_system_prompt(registry.node_types if registry is not None else None)
    async with ChatClient.from_config(settings.ai, provider, transport=transport) as client:
        session = ChatSession(client, system_prompt)
        try:
            reply = await session.send(build_workflow_prompt(request))
        except ChatError as exc:
            print(str(exc), file=sys.stderr)
            return 1

    workflow = ChatSession.extract_workflow(reply)
    if workflow is None:
        print("reply did not contain a usable workflow", file=sys.stderr)
        print(reply, file=sys.stderr)
        return 1
    print(json.dumps(workflow, indent=2, ensure_ascii=False))
    return 0


def cmd_draft(args: argparse.Namespace) -> int:
    registry = None
    if args.object_info:
        registry = NodeRegistry()
        registry.load_object_info(json.loads(Path(args.object_info).read_text(encoding="utf-8")))
    return asyncio.run(_draft_workflow(args.settings, args.request, args.provider, registry))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="comfyx", description="ComfyUI workflow tools")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--server", help="job engine base URL (overrides COMFYX_SERVER_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("extract", help="pull the workflow JSON out of free text")
    p.add_argument("file", help="input file, or - for stdin")
    p.set_defaults(func=cmd_extract)

    p = sub.add_parser("convert", help="convert an editor-form workflow to execution form")
    p.add_argument("file", help="input file, or - for stdin")
    p.set_defaults(func=cmd_convert)

    p = sub.add_parser("graph", help="print the laid-out node graph of a workflow")
    p.add_argument("file", help="input file, or - for stdin")
    p.add_argument("--object-info", help="saved /object_info response for port types")
    p.set_defaults(func=cmd_graph)

    p = sub.add_parser("nodes", help="list node classes known to the job engine")
    p.add_argument("--search", default="", help="filter by name or category")
    p.set_defaults(func=cmd_nodes)

    p = sub.add_parser("run", help="queue a workflow and save its output images")
    p.add_argument("file", help="workflow file, or - for stdin")
    p.add_argument("--out", default="outputs", help="directory for output images")
    p.add_argument("--timeout", type=float, default=None, help="seconds to wait for completion")
    p.set_defaults(func=cmd_run)

    p = sub.add_parser("draft", help="ask the configured AI provider to draft a workflow")
    p.add_argument("request", help="what the workflow should do")
    p.add_argument("--provider", choices=PROVIDERS, help="override COMFYX_AI_PROVIDER")
    p.add_argument("--object-info", help="saved /object_info response listing available nodes")
    p.set_defaults(func=cmd_draft)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env()
    if args.server:
        settings.server.mode = "external"
        settings.server.external_url = args.server
    args.settings = settings

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
