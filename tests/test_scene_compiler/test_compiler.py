# SPDX-License-Identifier: MIT
"""Tests for the SceneCompiler entry points."""

import asyncio

import pytest


def _compiler(**kwargs):
    from gz_scene_compiler.scene.compiler import SceneCompiler

    return SceneCompiler(**kwargs)


class TestSpawnByType:
    """Tests for spawning entities without a simulator."""

    def test_spawn_box(self):
        """Test spawning a simple shape at a position."""
        from gz_scene_compiler.scene.scene_graph import NodeKind

        compiler = _compiler()

        name = compiler.spawn_by_type("box", name="crate", position=(1.0, 2.0, 3.0))
        asyncio.run(compiler.settle())

        assert name == "crate"
        assert compiler.get("crate").pose.position == (1.0, 2.0, 3.0)
        assert compiler.get("crate::link::visual").kind == NodeKind.VISUAL
        assert "crate::link::collision__COLLISION_VISUAL__" in compiler.graph

    def test_spawn_light(self):
        """Test spawning a light by type."""
        from gz_scene_compiler.scene.lights import LightType

        compiler = _compiler()

        compiler.spawn_by_type("spotlight", name="spot", position=(0.0, 0.0, 2.0))
        asyncio.run(compiler.settle())

        spec = compiler.get("spot").properties["light"]
        assert spec.type == LightType.SPOT
        assert spec.range == 10.0
        assert spec.direction == (0.0, 0.0, -1.0)
        assert spec.pose.position == (0.0, 0.0, 2.0)

    def test_spawn_waits_for_name(self):
        """Test that a spawn lands once the earlier entity is deleted."""
        compiler = _compiler()
        compiler.spawn_by_type("sphere", name="ball")
        asyncio.run(compiler.settle())
        first = compiler.get("ball")

        compiler.spawn_by_type("sphere", name="ball", position=(5.0, 0.0, 0.0))
        asyncio.run(compiler.settle())

        assert compiler.get("ball") is first
        assert "ball" in compiler.retry

        compiler.submit({"type": "request", "msg": {"request": "entity_delete", "data": "ball"}})
        asyncio.run(compiler.settle())

        assert compiler.get("ball") is not first
        assert compiler.get("ball").pose.position == (5.0, 0.0, 0.0)
        assert "ball" not in compiler.retry

    def test_spawn_model_by_name(self):
        """Test spawning a model document looked up under the resource root."""
        fetched = []

        def fetcher(location):
            fetched.append(location)
            return '<sdf><model name="table"><link name="top"/></model></sdf>'

        compiler = _compiler(fetcher=fetcher)

        compiler.spawn_by_type("table", name="table_1")
        asyncio.run(compiler.settle())

        assert fetched == ["assets/table/model.sdf"]
        assert "table_1::top" in compiler.graph

    def test_spawn_mesh_model_loads_geometry(self):
        """Test that meshes in a spawned model attach once it is inserted."""
        compiler = _compiler(
            fetcher=lambda location: (
                '<model name="robot"><link name="l"><visual name="v"><geometry>'
                "<mesh><uri>model://robot/meshes/body.dae</uri></mesh>"
                "</geometry></visual></link></model>"
            )
        )

        compiler.spawn_by_type("robot")
        asyncio.run(compiler.settle())

        assert "robot::l::v::geometry" in compiler.graph


class TestLoadSdf:
    """Tests for document lookup by name."""

    def test_document_location(self):
        """Test mapping names, file names, and URLs to locations."""
        compiler = _compiler()

        assert compiler.document_location("pioneer") == "assets/pioneer/model.sdf"
        assert compiler.document_location("empty.world") == "assets/worlds/empty.world"
        assert compiler.document_location("http://x/y.sdf") == "http://x/y.sdf"

    def test_load_sdf_requires_name(self):
        """Test that an empty name is rejected."""
        with pytest.raises(ValueError):
            _compiler().load_sdf("")

    def test_world_replaces_default_sun(self):
        """Test that loading a world removes the default sun."""
        compiler = _compiler(
            fetcher=lambda location: '<sdf><world name="w"><model name="m"/></world></sdf>'
        )
        compiler.spawn_by_type("directionallight", name="sun")
        asyncio.run(compiler.settle())
        assert "sun" in compiler.graph

        compiler.load_sdf("w.world")

        assert "sun" not in compiler.graph
        assert "m" in compiler.graph
        assert compiler.graph.name == "w"

    def test_missing_document_raises(self):
        """Test that a missing local document is reported."""
        from gz_scene_compiler.config import CompilerConfig
        from gz_scene_compiler.errors import AssetLoadError

        compiler = _compiler(config=CompilerConfig(resource_root="/nonexistent"))

        with pytest.raises(AssetLoadError):
            compiler.load_sdf("ghost")


class TestInteraction:
    """Tests for interactive state."""

    def test_show_collisions(self):
        """Test toggling collision visibility after the build."""
        compiler = _compiler()
        compiler.spawn_by_type("box", name="crate")
        asyncio.run(compiler.settle())
        collision = compiler.get("crate::link::collision__COLLISION_VISUAL__")
        geometry = collision.children[0]
        assert geometry.handle.visible is False

        compiler.set_show_collisions(True)

        assert collision.visible is True
        assert geometry.visible is True
        assert geometry.handle.visible is True
        assert compiler.get("crate::link::visual::geometry").visible is True

    def test_close_drops_unstarted_loads(self):
        """Test that closing drops loads that never started."""
        compiler = _compiler(fetcher=lambda location: "")
        compiler.load_document(
            '<model name="m"><link name="l"><visual name="v"><geometry>'
            "<mesh><uri>model://m/a.dae</uri></mesh>"
            "</geometry></visual></link></model>"
        )
        assert not compiler.queue.idle

        compiler.close()

        assert compiler.queue.idle


class TestTopLevelExports:
    """Tests for the package namespace."""

    def test_exports(self):
        """Test that the main entry points are importable from the package."""
        import gz_scene_compiler

        assert gz_scene_compiler.__version__ == "0.1.0"
        assert gz_scene_compiler.SceneCompiler is not None
        assert issubclass(gz_scene_compiler.AssetLoadError, gz_scene_compiler.SceneCompilerError)
