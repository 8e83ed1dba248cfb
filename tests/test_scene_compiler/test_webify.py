# SPDX-License-Identifier: MIT
"""Tests for the webify model directory conversion."""

import pytest
from PIL import Image

COLLADA = """<COLLADA>
  <library_images>
    <image id="skin_tga" name="skin_tga">
      <init_from>skin.tga</init_from>
    </image>
    <image id="face_png" name="face_png">
      <init_from>../materials/textures/face.png</init_from>
    </image>
  </library_images>
</COLLADA>"""


def _model_dir(tmp_path):
    """Create one model with images in the meshes dir, the model dir, and a subdir."""
    model = tmp_path / "robot"
    (model / "meshes").mkdir(parents=True)
    (model / "extra").mkdir()
    Image.new("RGB", (4, 4), color=(255, 0, 0)).save(model / "meshes" / "body.jpg")
    Image.new("RGBA", (4, 4), color=(0, 255, 0, 255)).save(model / "skin.tga")
    Image.new("RGB", (4, 4)).save(model / "extra" / "depth.tif")
    (model / "meshes" / "body.dae").write_text(COLLADA, encoding="utf-8")
    return model


class TestImages:
    """Tests for texture image handling."""

    def test_scan_orders_by_extension(self, tmp_path):
        """Test that images come back sorted by extension, descending."""
        from gz_scene_compiler.webify.images import scan_for_images

        _model_dir(tmp_path)
        (tmp_path / "robot" / "notes.txt").write_text("not an image")

        images = scan_for_images(tmp_path)

        assert [image.extension for image in images] == ["tif", "tga", "jpg"]

    def test_move_into_textures_dir(self, tmp_path):
        """Test moving an image under its model's materials/textures."""
        from gz_scene_compiler.webify.images import TextureImage, move_to_textures_dir

        model = _model_dir(tmp_path)
        image = TextureImage(path=model / "skin.tga", extension="tga")

        moved = move_to_textures_dir(image, tmp_path)

        assert moved.path == model / "materials" / "textures" / "skin.tga"
        assert moved.path.exists()
        assert not image.path.exists()
        assert moved.in_textures_dir

    def test_meshes_dir_images_stay(self, tmp_path):
        """Test that images next to the meshes are not moved."""
        from gz_scene_compiler.webify.images import TextureImage, move_to_textures_dir

        model = _model_dir(tmp_path)
        image = TextureImage(path=model / "meshes" / "body.jpg", extension="jpg")

        assert move_to_textures_dir(image, tmp_path) is image

    def test_image_outside_model_stays(self, tmp_path):
        """Test that an image directly in the base directory is left in place."""
        from gz_scene_compiler.webify.images import TextureImage, move_to_textures_dir

        path = tmp_path / "loose.jpg"
        Image.new("RGB", (2, 2)).save(path)
        image = TextureImage(path=path, extension="jpg")

        assert move_to_textures_dir(image, tmp_path) is image
        assert path.exists()

    def test_convert_to_png(self, tmp_path):
        """Test converting a JPEG and deleting the original."""
        from gz_scene_compiler.webify.images import TextureImage, convert_to_png

        path = tmp_path / "body.jpg"
        Image.new("RGB", (4, 4), color=(255, 0, 0)).save(path)

        converted = convert_to_png(TextureImage(path=path, extension="jpg"))

        assert converted.path == tmp_path / "body.png"
        assert converted.extension == "png"
        assert not path.exists()
        with Image.open(converted.path) as img:
            assert img.format == "PNG"
            assert img.size == (4, 4)

    def test_tiff_not_converted(self, tmp_path):
        """Test that TIFF images are left as they are."""
        from gz_scene_compiler.webify.images import TextureImage, convert_to_png

        path = tmp_path / "depth.tif"
        Image.new("RGB", (2, 2)).save(path)
        image = TextureImage(path=path, extension="tif")

        assert convert_to_png(image) is image
        assert path.exists()


class TestMeshes:
    """Tests for COLLADA image reference rewriting."""

    def test_rename_image_references(self):
        """Test that JPEG and TGA names and ids point at PNG files."""
        from gz_scene_compiler.webify.meshes import rename_image_references

        result = rename_image_references('<image id="a_jpg"><init_from>a.jpg</init_from>')

        assert result == '<image id="a_png"><init_from>a.png</init_from>'

    def test_update_texture_paths(self):
        """Test that bare PNG references get the relative texture dir."""
        from gz_scene_compiler.webify.meshes import update_texture_paths

        result = update_texture_paths(
            "<init_from>a.png</init_from>\n"
            "<init_from>../materials/textures/b.png</init_from>\n"
            "<init_from>c.bmp</init_from>"
        )

        assert result.splitlines() == [
            "<init_from>../materials/textures/a.png</init_from>",
            "<init_from>../materials/textures/b.png</init_from>",
            "<init_from>c.bmp</init_from>",
        ]
        assert result.endswith("\n")

    def test_rewrite_mesh(self, tmp_path):
        """Test rewriting a mesh in place and reporting the change."""
        from gz_scene_compiler.webify.meshes import rewrite_mesh

        path = tmp_path / "body.dae"
        path.write_text(COLLADA, encoding="utf-8")

        assert rewrite_mesh(path)
        contents = path.read_text(encoding="utf-8")
        assert "<init_from>../materials/textures/skin.png</init_from>" in contents
        assert 'id="skin_png"' in contents
        assert not rewrite_mesh(path)


class TestWebify:
    """Tests for the full directory conversion."""

    def test_webify_directory(self, tmp_path):
        """Test moving, converting, and updating a whole model directory."""
        from gz_scene_compiler.webify import webify

        model = _model_dir(tmp_path)

        report = webify(tmp_path, progress=False)

        textures = model / "materials" / "textures"
        assert (model / "meshes" / "body.png").exists()
        assert not (model / "meshes" / "body.jpg").exists()
        assert (textures / "skin.png").exists()
        assert not (textures / "skin.tga").exists()
        assert (textures / "depth.tif").exists()
        assert report.images_found == 3
        assert report.images_moved == 2
        assert report.images_converted == 2
        assert report.meshes_found == 1
        assert report.meshes_updated == 1

    def test_webify_requires_directory(self, tmp_path):
        """Test that a missing directory is rejected."""
        from gz_scene_compiler.webify import webify

        with pytest.raises(NotADirectoryError):
            webify(tmp_path / "missing", progress=False)
