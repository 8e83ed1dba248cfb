# SPDX-License-Identifier: MIT
"""Tests for mesh loading, the asset cache, and heightmaps."""

import asyncio

import numpy as np

TWO_MESH_SDF = """<sdf version="1.5">
  <model name="robot">
    <link name="link">
      <visual name="left">
        <geometry><mesh><uri>model://robot/meshes/wheel.dae</uri></mesh></geometry>
        <material><script><name>Robot/Black</name></script></material>
      </visual>
      <visual name="right">
        <pose>0 1 0 0 0 0</pose>
        <geometry><mesh><uri>model://robot/meshes/wheel.dae</uri></mesh></geometry>
      </visual>
    </link>
  </model>
</sdf>
"""

WHEEL = "assets/robot/meshes/wheel.dae"


def _stl_sdf(with_material=False):
    material = (
        "<material><script><name>Robot/Black</name></script></material>"
        if with_material
        else ""
    )
    return (
        '<model name="part"><link name="link"><visual name="v">'
        "<geometry><mesh><uri>model://part/meshes/part.stl</uri>"
        "<scale>0.001 0.001 0.001</scale></mesh></geometry>"
        f"{material}</visual></link></model>"
    )


def _compiler(**kwargs):
    from gz_scene_compiler.scene.compiler import SceneCompiler

    return SceneCompiler(**kwargs)


class TestMeshLoading:
    """Tests for mesh loads through the asset pipeline."""

    def test_single_load_independent_instances(self):
        """Test that one mesh referenced twice is loaded once."""
        compiler = _compiler()

        compiler.load_document(TWO_MESH_SDF)
        asyncio.run(compiler.settle())

        left = compiler.get("robot::link::left::geometry")
        right = compiler.get("robot::link::right::geometry")
        assert compiler.renderer.load_counts[(WHEEL, None)] == 1
        assert left.handle is not right.handle
        assert left.handle.id != right.handle.id
        assert compiler.assets.holders((WHEEL, None)) == {
            compiler.get("robot::link::left").id,
            compiler.get("robot::link::right").id,
        }

    def test_cached_across_documents(self):
        """Test that a later reference reuses the cached template."""
        compiler = _compiler()

        compiler.load_document(TWO_MESH_SDF)
        asyncio.run(compiler.settle())
        compiler.load_document(TWO_MESH_SDF.replace('name="robot"', 'name="robot2"'))
        asyncio.run(compiler.settle())

        assert compiler.renderer.load_counts[(WHEEL, None)] == 1
        assert "robot2::link::left::geometry" in compiler.graph

    def test_material_on_first_drawable(self):
        """Test that structured meshes get the material on their first drawable."""
        compiler = _compiler()
        compiler.materials.update({"Robot/Black": {"diffuse": [0, 0, 0, 1]}})

        compiler.load_document(TWO_MESH_SDF)
        asyncio.run(compiler.settle())

        left = compiler.get("robot::link::left::geometry")
        right = compiler.get("robot::link::right::geometry")
        drawables = compiler.renderer.drawables(left.handle)
        assert drawables[0].material is left.material
        assert left.handle.material is None
        assert compiler.renderer.drawables(right.handle)[0].material is None

    def test_load_discarded_after_delete(self):
        """Test that a load finishing after its owner was deleted is dropped."""
        compiler = _compiler()

        compiler.load_document(TWO_MESH_SDF)
        compiler.reconciler.apply_delete("robot")
        asyncio.run(compiler.settle())

        assert compiler.renderer.load_counts[(WHEEL, None)] == 1
        assert len(compiler.graph) == 0
        assert compiler.assets.holders((WHEEL, None)) == set()
        assert (WHEEL, None) in compiler.assets

    def test_load_discarded_after_replace(self):
        """Test that a re-inserted owner with the same name does not get a stale load."""
        compiler = _compiler()

        compiler.load_document(TWO_MESH_SDF)
        compiler.reconciler.apply_delete("robot")
        compiler.load_document(TWO_MESH_SDF)
        asyncio.run(compiler.settle())

        left = compiler.get("robot::link::left")
        geometry = [child for child in left.children if child.name.endswith("::geometry")]
        assert len(geometry) == 1

    def test_failed_load_not_cached(self):
        """Test that a failed load leaves no geometry and is retried later."""
        from gz_scene_compiler.scene.renderer import InMemoryRenderer

        renderer = InMemoryRenderer(failures={WHEEL})
        compiler = _compiler(renderer=renderer)

        compiler.load_document(TWO_MESH_SDF)
        asyncio.run(compiler.settle())

        assert "robot::link::left" in compiler.graph
        assert "robot::link::left::geometry" not in compiler.graph
        assert (WHEEL, None) not in compiler.assets

        renderer.failures.clear()
        compiler.load_document(TWO_MESH_SDF.replace('name="robot"', 'name="robot2"'))
        asyncio.run(compiler.settle())

        assert renderer.load_counts[(WHEEL, None)] == 2
        assert "robot2::link::left::geometry" in compiler.graph

    def test_stl_fallback_material(self):
        """Test that an STL mesh without a material gets the fallback material."""
        from gz_scene_compiler.scene.materials import FALLBACK_MATERIAL

        compiler = _compiler()

        compiler.load_document(_stl_sdf())
        asyncio.run(compiler.settle())

        geometry = compiler.get("part::link::v::geometry")
        assert geometry.handle.material == FALLBACK_MATERIAL
        assert compiler.get("part::link::v").scale == (0.001, 0.001, 0.001)

    def test_stl_material_on_whole_object(self):
        """Test that an STL mesh material applies to the whole object."""
        compiler = _compiler()
        compiler.materials.update({"Robot/Black": {"diffuse": [0, 0, 0, 1]}})

        compiler.load_document(_stl_sdf(with_material=True))
        asyncio.run(compiler.settle())

        geometry = compiler.get("part::link::v::geometry")
        assert geometry.handle.material is geometry.material
        assert geometry.material.diffuse.a == 1.0

    def test_unresolvable_mesh_uri(self):
        """Test that a mesh with an unsupported scheme is skipped."""
        compiler = _compiler()

        compiler.load_document(
            '<model name="m"><link name="l"><visual name="v">'
            "<geometry><mesh><uri>ftp://host/a.dae</uri></mesh></geometry>"
            "</visual></link></model>"
        )
        asyncio.run(compiler.settle())

        assert "m::l::v" in compiler.graph
        assert "m::l::v::geometry" not in compiler.graph
        assert sum(compiler.renderer.load_counts.values()) == 0


class TestAssetCache:
    """Tests for AssetCache."""

    def test_concurrent_requests_share_one_load(self):
        """Test that concurrent loads for one key run the loader once."""
        from gz_scene_compiler.scene.assets import AssetCache

        cache = AssetCache()
        calls = []

        async def loader():
            calls.append(1)
            await asyncio.sleep(0.01)
            return object()

        async def run():
            return await asyncio.gather(
                cache.get_or_load("k", loader), cache.get_or_load("k", loader)
            )

        first, second = asyncio.run(run())

        assert len(calls) == 1
        assert first is second
        assert cache.get("k") is first

    def test_release_keeps_entry(self):
        """Test that releasing holds leaves the entry cached."""
        from gz_scene_compiler.scene.assets import AssetCache

        cache = AssetCache()
        cache.hold("k", 1)
        cache.hold("k", 2)

        cache.release({1})

        assert cache.holders("k") == {2}


class TestHeightmaps:
    """Tests for heightmap geometry."""

    HEIGHTMAP_SDF = """<model name="terrain"><static>true</static><link name="link">
      <visual name="visual"><geometry><heightmap>
        <uri>file://media/materials/textures/heightmap.png</uri>
        <size>129 129 10</size>
        <pos>0 0 0</pos>
        <texture>
          <diffuse>file://media/materials/textures/dirt.png</diffuse>
          <normal>file://media/materials/textures/flat.png</normal>
          <size>1</size>
        </texture>
        <blend><min_height>2</min_height><fade_dist>5</fade_dist></blend>
      </heightmap></geometry></visual>
    </link></model>"""

    def test_heightmap_from_source(self):
        """Test that heightmap samples from the data source become geometry."""
        from gz_scene_compiler.scene.assets import HeightmapData

        requests = []

        async def source(scene_name, geometry):
            requests.append((scene_name, geometry.uri))
            return HeightmapData(
                heights=np.arange(9, dtype=np.float64),
                width=3,
                height=3,
                size=geometry.size,
                origin=geometry.origin,
            )

        compiler = _compiler(heightmap_source=source)
        compiler.load_document(self.HEIGHTMAP_SDF)
        asyncio.run(compiler.settle())

        geometry = compiler.get("terrain::link::visual::geometry")
        assert requests == [("default", "file://media/materials/textures/heightmap.png")]
        assert geometry.handle.params["heights"].shape == (3, 3)
        assert geometry.handle.params["size"] == (129.0, 129.0, 10.0)
        texture = geometry.handle.params["textures"][0]
        assert texture.diffuse == "assets/media/materials/textures/dirt.png"
        blend = geometry.handle.params["blends"][0]
        assert (blend.min_height, blend.fade_dist) == (2.0, 5.0)
        assert geometry.geometry.heights[2, 2] == 8.0
        assert compiler.get("terrain").properties["static"] is True

    def test_heightmap_without_source(self):
        """Test that a heightmap without a data source is skipped."""
        compiler = _compiler()

        compiler.load_document(self.HEIGHTMAP_SDF)
        asyncio.run(compiler.settle())

        assert "terrain::link::visual" in compiler.graph
        assert "terrain::link::visual::geometry" not in compiler.graph

    def test_heightmap_data_from_msg(self):
        """Test decoding a heightmap data response and inferring a square grid."""
        from gz_scene_compiler.scene.assets import HeightmapData

        data = HeightmapData.from_msg(
            {"heightmap": {"heights": [0, 1, 2, 3, 4, 5, 6, 7, 8], "size": {"x": 2, "y": 2, "z": 1}}}
        )

        grid = data.grid()

        assert grid.shape == (3, 3)
        assert data.size == (2.0, 2.0, 1.0)

    def test_image_heightmap_source(self, tmp_path):
        """Test reading heightmap samples from a grayscale image."""
        from PIL import Image

        from gz_scene_compiler.scene.assets import ImageHeightmapSource
        from gz_scene_compiler.scene.geometry import HeightmapGeometry
        from gz_scene_compiler.scene.materials import ResourcePaths

        image = Image.new("L", (5, 5), color=255)
        (tmp_path / "terrain").mkdir()
        image.save(tmp_path / "terrain" / "height.png")
        source = ImageHeightmapSource(ResourcePaths(str(tmp_path)))
        geometry = HeightmapGeometry(uri="model://terrain/height.png", size=(10.0, 10.0, 4.0))

        data = asyncio.run(source("default", geometry))

        assert data.grid().shape == (5, 5)
        assert data.heights.max() == 4.0
