# SPDX-License-Identifier: MIT
"""Command-line interface for the Gazebo scene compiler."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from gz_scene_compiler.config import CompilerConfig, load_material_snapshot
from gz_scene_compiler.errors import SceneCompilerError
from gz_scene_compiler.scene.compiler import SceneCompiler
from gz_scene_compiler.scene.renderer import LocalFileRenderer
from gz_scene_compiler.scene.scene_graph import SceneGraph
from gz_scene_compiler.server import run_server
from gz_scene_compiler.webify import webify

logger = logging.getLogger(__name__)


def format_graph(graph: SceneGraph) -> str:
    """Render the graph as an indented tree, one node per line."""
    lines = [f"scene {graph.name!r}"]

    def visit(node, depth: int) -> None:
        for child in node.children:
            x, y, z = (float(v) for v in child.pose.position)
            lines.append(f"{'  ' * depth}{child.kind.value} {child.name} @ ({x:g}, {y:g}, {z:g})")
            visit(child, depth + 1)

    visit(graph.root, 1)
    return "\n".join(lines)


def _compile(args: argparse.Namespace) -> int:
    config = CompilerConfig(
        resource_root=str(args.resource_root),
        show_collisions=args.show_collisions,
        pending_ttl=None,
    )
    for url in args.url:
        config.add_url(url)

    compiler = SceneCompiler(config, renderer=LocalFileRenderer(timeout=args.timeout))
    if args.materials is not None:
        changed = compiler.materials.update(load_material_snapshot(args.materials))
        logger.info("Loaded %d materials from %s", len(changed), args.materials)

    try:
        if Path(args.document).exists():
            compiler.load_document(Path(args.document))
        else:
            compiler.load_sdf(args.document)
        asyncio.run(compiler.settle())
    except SceneCompilerError as e:
        logger.error("Failed to compile %s: %s", args.document, e)
        return 1
    finally:
        compiler.close()

    print(format_graph(compiler.graph))
    return 0


def _webify(args: argparse.Namespace) -> int:
    report = webify(args.directory, progress=not args.no_progress)
    print(
        f"Images: {report.images_found} found, {report.images_moved} moved, "
        f"{report.images_converted} converted"
    )
    print(f"Meshes: {report.meshes_found} found, {report.meshes_updated} updated")
    return 0


def _serve(args: argparse.Namespace) -> int:
    run_server(
        host=args.host,
        port=args.port,
        asset_dir=args.asset_dir,
        custom_urls=args.url,
        show_collisions=args.show_collisions,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compile Gazebo SDF documents into a renderable scene graph"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Compile an SDF document")
    compile_parser.add_argument(
        "document",
        type=str,
        help=(
            "Path to an SDF file, a model/world name to look up under the resource root, "
            "or the URL of an SDF file"
        ),
    )
    compile_parser.add_argument(
        "--resource_root",
        type=Path,
        default=Path("assets"),
        help="Directory that model:// and file:// resources resolve under (default: %(default)s)",
    )
    compile_parser.add_argument(
        "--materials",
        type=Path,
        metavar="FILE",
        help="Path to a JSON material snapshot (name -> properties)",
    )
    compile_parser.add_argument(
        "--url",
        action="append",
        default=[],
        help="Custom resource URL consulted before the resource root (repeatable)",
    )
    compile_parser.add_argument(
        "--show_collisions",
        action="store_true",
        help="Make collision visuals visible",
    )
    compile_parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Timeout in seconds for remote fetches (default: %(default)s)",
    )
    compile_parser.set_defaults(func=_compile)

    webify_parser = subparsers.add_parser(
        "webify", help="Convert model textures to PNG and update mesh references"
    )
    webify_parser.add_argument(
        "directory",
        type=Path,
        help="Directory holding one subdirectory per model (modified in place)",
    )
    webify_parser.add_argument(
        "--no_progress",
        action="store_true",
        help="Disable progress bars",
    )
    webify_parser.set_defaults(func=_webify)

    serve_parser = subparsers.add_parser("serve", help="Serve model assets over HTTP")
    serve_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="URL to host on (default: %(default)s)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to host on (default: %(default)s)",
    )
    serve_parser.add_argument(
        "--asset_dir",
        type=Path,
        default=Path("assets"),
        help="Directory to serve under /assets (default: %(default)s)",
    )
    serve_parser.add_argument(
        "--url",
        action="append",
        default=[],
        help="Custom resource URL to redirect matching asset requests to (repeatable)",
    )
    serve_parser.add_argument(
        "--show_collisions",
        action="store_true",
        help="Make collision visuals visible in compiled scenes",
    )
    serve_parser.set_defaults(func=_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the scene compiler from the command line."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "webify" and not args.directory.is_dir():
        parser.error(f"{args.directory} is not a directory")

    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
