# SPDX-License-Identifier: MIT
"""Flask server for model assets and offline scene compiles."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import flask

from gz_scene_compiler.config import CompilerConfig
from gz_scene_compiler.errors import SceneCompilerError
from gz_scene_compiler.parser.msgpack_decoder import numpy_to_list
from gz_scene_compiler.scene.compiler import SceneCompiler
from gz_scene_compiler.scene.materials import ResourcePaths

logger = logging.getLogger(__name__)

ASSETS_PREFIX = "/assets"


def graph_summary(compiler: SceneCompiler) -> dict:
    """JSON-friendly view of a compiled scene graph.

    Each node carries its local pose and its 4x4 scene-frame transform.
    """
    nodes = []
    for parent, name, kind, pose in compiler.graph.structure():
        node = compiler.graph.get(name)
        world = compiler.graph.world_pose(node) if node is not None else pose
        nodes.append(
            {
                "parent": parent,
                "name": name,
                "kind": kind,
                "position": [float(v) for v in pose.position],
                "orientation": [float(v) for v in pose.orientation],
                "world_matrix": world.to_matrix(),
            }
        )
    return numpy_to_list({"name": compiler.graph.name, "nodes": nodes})


class AssetServer(flask.Flask):
    """Serves the resource root that compiled scenes reference.

    Requests for a file that has a registered custom URL are redirected there.
    POST /compile compiles an SDF document against the served assets and
    returns the resulting graph.
    """

    def __init__(
        self,
        *,
        asset_dir: Path,
        custom_urls: list[str] | None = None,
        show_collisions: bool = False,
    ):
        super().__init__("gz_scene_compiler_asset_server")

        self._asset_dir = Path(asset_dir).resolve()
        self._custom_urls = list(custom_urls or [])
        self._show_collisions = show_collisions
        self._paths = ResourcePaths(ASSETS_PREFIX, self._custom_urls)

        self.add_url_rule("/", view_func=self._root_endpoint)
        self.add_url_rule(
            rule=f"{ASSETS_PREFIX}/<path:path>",
            endpoint="assets",
            view_func=self._asset_endpoint,
        )
        self.add_url_rule(
            rule="/compile",
            endpoint="/compile",
            methods=["POST"],
            view_func=self._compile_endpoint,
        )

    def _root_endpoint(self) -> str:
        """Display a banner page at the server root."""
        return """\
        <!doctype html>
        <html><body><h1>Gazebo Scene Compiler Asset Server</h1></body></html>
        """

    def _asset_endpoint(self, path: str):
        override = self._paths.find_override(path.rsplit("/", 1)[-1])
        if override is not None:
            return flask.redirect(override)
        return flask.send_from_directory(self._asset_dir, path)

    def _compile_endpoint(self):
        """Compile the posted document and return the scene graph as JSON."""
        request = flask.request
        if "document" in request.files:
            document = request.files["document"].read()
        else:
            document = request.get_data()
        if not document:
            return {"error": True, "message": "No document posted", "code": 400}, 400

        config = CompilerConfig(
            resource_root=f"{request.host_url.rstrip('/')}{ASSETS_PREFIX}",
            custom_urls=list(self._custom_urls),
            show_collisions=self._show_collisions,
        )
        compiler = SceneCompiler(config)
        try:
            compiler.load_document(document)
            asyncio.run(compiler.settle())
        except SceneCompilerError as e:
            return {"error": True, "message": str(e), "code": 400}, 400
        except Exception as e:
            logger.exception("Compile failed")
            code = 500
            message = f"Internal server error: {repr(e)}"
            return {"error": True, "message": message, "code": code}, code
        finally:
            compiler.close()

        return graph_summary(compiler)


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8000,
    asset_dir: Path,
    custom_urls: list[str] | None = None,
    show_collisions: bool = False,
) -> None:
    """Run the asset server."""
    app = AssetServer(
        asset_dir=asset_dir,
        custom_urls=custom_urls,
        show_collisions=show_collisions,
    )
    app.run(host=host, port=port, threaded=False)
