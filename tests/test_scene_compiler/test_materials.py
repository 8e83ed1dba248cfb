# SPDX-License-Identifier: MIT
"""Tests for material resolution and resource paths."""


def _resolver(snapshot=None, custom_urls=()):
    from gz_scene_compiler.scene.materials import (
        MaterialCache,
        MaterialResolver,
        ResourcePaths,
    )

    cache = MaterialCache(snapshot or {})
    return cache, MaterialResolver(cache, ResourcePaths("assets", list(custom_urls)))


class TestResourcePaths:
    """Tests for ResourcePaths."""

    def test_model_scheme(self):
        """Test that model:// resolves under the resource root."""
        from gz_scene_compiler.scene.materials import ResourcePaths

        paths = ResourcePaths("assets")

        assert paths.resolve_asset("model://robot/meshes/a.dae") == "assets/robot/meshes/a.dae"
        assert paths.resolve_asset("file://media/a.dae") == "assets/media/a.dae"

    def test_http_passthrough(self):
        """Test that full URLs are used as given."""
        from gz_scene_compiler.scene.materials import ResourcePaths

        paths = ResourcePaths("assets")

        assert paths.resolve_asset("http://example.com/a.dae") == "http://example.com/a.dae"

    def test_absolute_path_with_meshes_dir(self):
        """Test guessing the model directory from an absolute path."""
        from gz_scene_compiler.scene.materials import ResourcePaths

        paths = ResourcePaths("assets")

        assert (
            paths.resolve_asset("/home/user/models/robot/meshes/a.dae")
            == "assets/robot/meshes/a.dae"
        )
        assert paths.resolve_asset("/tmp/a.dae") is None

    def test_unsupported_scheme(self):
        """Test that unknown schemes do not resolve."""
        from gz_scene_compiler.scene.materials import ResourcePaths

        assert ResourcePaths("assets").resolve_asset("ftp://host/a.dae") is None

    def test_relative_path(self):
        """Test that scheme-less paths are prefixed with the root."""
        from gz_scene_compiler.scene.materials import ResourcePaths

        assert ResourcePaths("assets/").resolve_asset("robot/a.stl") == "assets/robot/a.stl"

    def test_custom_url_override(self):
        """Test that a custom URL with the same basename wins."""
        from gz_scene_compiler.scene.materials import ResourcePaths

        paths = ResourcePaths("assets", ["http://cdn.example.com/x/a.dae"])

        assert paths.resolve_asset("model://robot/meshes/a.dae") == "http://cdn.example.com/x/a.dae"
        assert paths.resolve_asset("model://robot/meshes/b.dae") == "assets/robot/meshes/b.dae"


class TestTextureDirectory:
    """Tests for find_texture_directory."""

    def test_first_match_wins(self):
        """Test that the location containing textures decides the directory."""
        from gz_scene_compiler.scene.materials import find_texture_directory

        uris = [
            "model://foo/materials/scripts/x.material",
            "model://foo/materials/textures/y",
        ]

        assert find_texture_directory(uris) == "foo/materials/textures/y"
        assert find_texture_directory(uris) == "foo/materials/textures/y"

    def test_file_scheme(self):
        """Test that file:// locations map to the sibling textures directory."""
        from gz_scene_compiler.scene.materials import find_texture_directory

        uris = ["file://media/materials/scripts/gazebo.material"]

        assert find_texture_directory(uris) == "media/materials/textures"

    def test_earlier_file_location_wins(self):
        """Test that order decides between a file and a model location."""
        from gz_scene_compiler.scene.materials import find_texture_directory

        uris = [
            "file://media/materials/scripts/gazebo.material",
            "model://foo/materials/textures",
        ]

        assert find_texture_directory(uris) == "media/materials/textures"

    def test_no_match(self):
        """Test locations that name no texture directory."""
        from gz_scene_compiler.scene.materials import find_texture_directory

        assert find_texture_directory(["model://foo/scripts", "relative/path"]) is None


class TestMaterialResolver:
    """Tests for MaterialResolver."""

    def test_resolve_colors_and_texture(self):
        """Test joining a reference with its cached record."""
        from gz_scene_compiler.scene.materials import Color, MaterialRef

        _, resolver = _resolver(
            {"Foo/Bar": {"ambient": [1, 0, 0, 1], "diffuse": [0, 1, 0], "texture": "t.png"}}
        )
        ref = MaterialRef(
            name="Foo/Bar",
            script_uris=(
                "model://foo/materials/scripts/x.material",
                "model://foo/materials/textures/y",
            ),
        )

        spec = resolver.resolve(ref)

        assert spec.ambient == Color(1.0, 0.0, 0.0, 1.0)
        assert spec.diffuse == Color(0.0, 1.0, 0.0, 1.0)
        assert spec.texture == "assets/foo/materials/textures/y/t.png"

    def test_unknown_material_is_none(self):
        """Test that an uncached material resolves to None without raising."""
        from gz_scene_compiler.scene.materials import MaterialRef

        _, resolver = _resolver()

        assert resolver.resolve(MaterialRef(name="Missing")) is None
        assert resolver.resolve(MaterialRef(name=None)) is None
        assert resolver.resolve(None) is None

    def test_missing_texture_directory(self):
        """Test that colors survive when the texture cannot be located."""
        from gz_scene_compiler.scene.materials import MaterialRef

        _, resolver = _resolver({"Foo": {"diffuse": [1, 1, 1, 1], "texture": "t.png"}})

        spec = resolver.resolve(MaterialRef(name="Foo", script_uris=("model://foo/scripts",)))

        assert spec is not None
        assert spec.texture is None
        assert spec.diffuse is not None

    def test_texture_override(self):
        """Test that a custom URL replaces the texture location."""
        from gz_scene_compiler.scene.materials import MaterialRef

        _, resolver = _resolver(
            {"Foo": {"texture": "t.png"}},
            custom_urls=["https://cdn.example.com/textures/t.png"],
        )
        ref = MaterialRef(name="Foo", script_uris=("model://foo/materials/textures",))

        assert resolver.resolve(ref).texture == "https://cdn.example.com/textures/t.png"

    def test_normal_map(self):
        """Test resolving normal maps with and without a scheme."""
        from gz_scene_compiler.scene.materials import MaterialRef

        _, resolver = _resolver({"Foo": {}})
        uris = ("model://foo/materials/textures",)

        bare = resolver.resolve(MaterialRef(name="Foo", script_uris=uris, normal_map="n.tga"))
        schemed = resolver.resolve(
            MaterialRef(
                name="Foo",
                script_uris=uris,
                normal_map="model://bar/materials/textures/n.jpg",
            )
        )

        assert bare.normal_map == "assets/foo/materials/textures/n.png"
        assert schemed.normal_map == "assets/bar/materials/textures/n.png"

    def test_resolved_specs_are_shared(self):
        """Test that equal references share one spec until the record changes."""
        from gz_scene_compiler.scene.materials import MaterialRef

        cache, resolver = _resolver({"Foo": {"diffuse": [1, 0, 0, 1]}})
        ref = MaterialRef(name="Foo")

        first = resolver.resolve(ref)
        assert resolver.resolve(MaterialRef(name="Foo")) is first

        assert cache.update({"Foo": {"diffuse": [0, 0, 1, 1]}}) == ["Foo"]
        second = resolver.resolve(ref)
        assert second is not first
        assert second.diffuse.b == 1.0

    def test_material_ref_placeholder_script(self):
        """Test that the placeholder script location maps to the default."""
        from gz_scene_compiler.config import DEFAULT_MATERIAL_SCRIPT
        from gz_scene_compiler.scene.materials import MaterialRef

        ref = MaterialRef.from_dict(
            {"script": {"name": "Foo", "uri": ["__default__"]}, "normal_map": "n.png"}
        )

        assert ref.name == "Foo"
        assert ref.script_uris == (DEFAULT_MATERIAL_SCRIPT,)
        assert ref.normal_map == "n.png"


class TestMaterialCache:
    """Tests for MaterialCache."""

    def test_update_reports_changes(self):
        """Test that only added or changed names are reported."""
        from gz_scene_compiler.scene.materials import MaterialCache

        cache = MaterialCache({"A": {"diffuse": [1, 1, 1]}})

        changed = cache.update({"A": {"diffuse": [1, 1, 1]}, "B": {}})

        assert changed == ["B"]
        assert "A" in cache
        assert len(cache) == 2
