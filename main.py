from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from svgrender_core.core import (
    Frame,
    JsonlAuditSink,
    RenderOptions,
    SVGRender,
    SvgBlob,
    load_render_options,
)
from svgrender_core.scene.document import AnimatedScene
from svgrender_core.targets.surface import CanvasSurface

LOGGER = logging.getLogger("svgrender")


def main() -> None:
    parser = argparse.ArgumentParser(prog="svgrender")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level name.")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Sample an animated SVG into numbered PNG frames.")
    render.add_argument("input", type=Path)
    render.add_argument("--out-dir", type=Path, required=True)
    render.add_argument("--config", type=Path, default=None, help="TOML file with [render] / [surface] tables.")
    render.add_argument("--fps", type=float, default=None)
    render.add_argument("--duration-ms", type=float, default=None)
    render.add_argument("--frames", type=int, default=None, help="Frame count; derived from fps and duration when omitted.")
    render.add_argument("--begin-ms", type=float, default=None)
    render.add_argument("--width", type=int, default=None, help="Fixed surface width (frames are letterboxed).")
    render.add_argument("--height", type=int, default=None, help="Fixed surface height (frames are letterboxed).")
    render.add_argument("--audit-jsonl", type=Path, default=None)

    inspect = sub.add_parser("inspect", help="Print the animation drivers of an SVG as JSON.")
    inspect.add_argument("input", type=Path)

    report = sub.add_parser("audit-report", help="Print audit summary from a JSONL sink.")
    report.add_argument("--audit-jsonl", type=Path, required=True)

    prune = sub.add_parser("audit-prune", help="Prune old audit rows to max row count.")
    prune.add_argument("--audit-jsonl", type=Path, required=True)
    prune.add_argument("--max-rows", type=int, required=True)
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    if args.command == "render":
        options = _build_options(args)
        audit_sink = JsonlAuditSink(args.audit_jsonl) if args.audit_jsonl is not None else None
        written = asyncio.run(_render(args.input, args.out_dir, options, audit_sink))
        print(f"render complete: frames={written} out_dir={args.out_dir}")
        return

    if args.command == "inspect":
        scene = AnimatedScene.from_file(args.input)
        print(json.dumps(scene.describe(), indent=2, sort_keys=True))
        return

    if args.command == "audit-report":
        print(json.dumps(JsonlAuditSink(args.audit_jsonl).summarize(), indent=2, sort_keys=True))
        return

    if args.command == "audit-prune":
        deleted = JsonlAuditSink(args.audit_jsonl).prune(max_rows=args.max_rows)
        print(f"pruned rows={deleted}")
        return

    raise RuntimeError(f"unsupported command: {args.command}")


def _build_options(args: argparse.Namespace) -> RenderOptions:
    options = load_render_options(args.config) if args.config is not None else RenderOptions()
    # Command-line values win over the config file.
    if args.fps is not None:
        options.fps = args.fps
    if args.duration_ms is not None:
        options.duration_ms = args.duration_ms
    if args.frames is not None:
        options.frame_count = args.frames
    if args.begin_ms is not None:
        options.begin_ms = args.begin_ms
    if args.width is not None or args.height is not None:
        if args.width is not None and args.width <= 0:
            raise ValueError("width must be > 0")
        if args.height is not None and args.height <= 0:
            raise ValueError("height must be > 0")
        options.render_surface = CanvasSurface(
            width=args.width or args.height,
            height=args.height or args.width,
            resize_to_image=False,
        )
    options.progress_signal = _print_progress
    return options


def _print_progress(done: int, total: int) -> None:
    LOGGER.info("frame %d/%d", done + 1, total)


async def _render(
    source: Path,
    out_dir: Path,
    options: RenderOptions,
    audit_sink: JsonlAuditSink | None,
) -> int:
    out_dir.mkdir(parents=True, exist_ok=True)

    def write_frame(frame: Frame) -> None:
        (out_dir / f"frame_{frame.index:05d}.png").write_bytes(frame.png_bytes())

    controller = SVGRender(frame_sink=write_frame, audit_logger=audit_sink)
    loaded: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    def on_load(error: Exception | None, _controller: SVGRender) -> None:
        if error is not None:
            loaded.set_exception(error)
        else:
            loaded.set_result(None)

    controller.load(SvgBlob.from_path(source), on_load)
    await loaded
    if not controller.render(options):
        raise RuntimeError(controller.get_error_message())
    state = await controller.wait()
    if state != "FINISHED":
        raise RuntimeError(f"render {state.lower()}: {controller.get_error_message()}")
    return len(controller.frames)


if __name__ == "__main__":
    main()
