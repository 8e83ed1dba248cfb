# SPDX-License-Identifier: MIT
"""Tests for messages sent back to the simulator."""

import asyncio

import pytest

ROBOT_SDF = """<sdf version="1.5">
  <model name="robot">
    <pose>1 0 0 0 0 1.5707963267948966</pose>
    <link name="arm">
      <pose>2 0 1 0 0 0</pose>
      <self_collide>true</self_collide>
      <kinematic>true</kinematic>
    </link>
  </model>
</sdf>
"""

LAMP_MSG = {
    "name": "lamp",
    "type": 1,
    "pose": {"position": {"x": 0, "y": 0, "z": 5}},
    "diffuse": {"r": 1, "g": 0.5, "b": 0, "a": 1},
    "range": 20,
    "attenuation_linear": 0.1,
}


def _compiler():
    from gz_scene_compiler.scene.compiler import SceneCompiler

    compiler = SceneCompiler()
    compiler.load_document(ROBOT_SDF)
    compiler.submit({"type": "light_factory", "msg": LAMP_MSG})
    asyncio.run(compiler.settle())
    return compiler


class TestEntityModify:
    """Tests for model and light modify messages."""

    def test_model_modify(self):
        """Test that a model reports its scene-frame pose on the model topic."""
        from gz_scene_compiler.scene.outbound import entity_modify_msg

        compiler = _compiler()
        compiler.get("robot").properties["id"] = 7

        envelope = entity_modify_msg(compiler.graph, compiler.get("robot"))

        assert envelope["topic"] == "~/model/modify"
        msg = envelope["msg"]
        assert msg["name"] == "robot"
        assert msg["id"] == 7
        assert msg["createEntity"] == 0
        assert msg["position"] == {"x": 1.0, "y": 0.0, "z": 0.0}
        assert msg["orientation"]["z"] == pytest.approx(2**-0.5)
        assert msg["orientation"]["w"] == pytest.approx(2**-0.5)

    def test_nested_pose_is_composed(self):
        """Test that a child's pose is sent in the scene frame, not its parent's."""
        from gz_scene_compiler.scene.outbound import entity_modify_msg

        compiler = _compiler()

        msg = entity_modify_msg(compiler.graph, compiler.get("robot::arm"))["msg"]

        # The model's quarter turn about z carries the link's x offset onto y
        assert msg["position"]["x"] == pytest.approx(1.0)
        assert msg["position"]["y"] == pytest.approx(2.0)
        assert msg["position"]["z"] == pytest.approx(1.0)

    def test_light_modify(self):
        """Test that a light reports its color and attenuation on the light topic."""
        from gz_scene_compiler.scene.outbound import entity_modify_msg

        compiler = _compiler()

        envelope = entity_modify_msg(compiler.graph, compiler.get("lamp"))

        assert envelope["topic"] == "~/light/modify"
        msg = envelope["msg"]
        assert msg["position"] == {"x": 0.0, "y": 0.0, "z": 5.0}
        assert msg["diffuse"] == {"r": 1.0, "g": 0.5, "b": 0.0}
        assert msg["range"] == 20.0
        assert msg["attenuation_linear"] == 0.1
        assert "id" not in msg

    def test_light_modify_reapplies(self):
        """Test that a light modify message is accepted by the compiler that sent it."""
        from gz_scene_compiler.scene.outbound import entity_modify_msg

        source = _compiler()
        target = _compiler()
        envelope = entity_modify_msg(source.graph, source.get("lamp"))
        envelope["msg"]["diffuse"] = {"r": 0, "g": 0, "b": 1}

        assert target.submit(envelope)
        asyncio.run(target.settle())

        assert target.get("lamp").properties["light"].diffuse.b == 1.0


class TestLinkModify:
    """Tests for link modify messages."""

    def test_link_flags(self):
        """Test that a link's flags are sent addressed through its model."""
        from gz_scene_compiler.scene.outbound import link_modify_msg

        compiler = _compiler()

        envelope = link_modify_msg(compiler.graph, compiler.get("robot::arm"))

        assert envelope == {
            "topic": "~/link",
            "msg": {
                "name": "robot",
                "link": {
                    "name": "robot::arm",
                    "self_collide": True,
                    "gravity": True,
                    "kinematic": True,
                },
            },
        }

    def test_not_a_link(self):
        """Test that only links can be reported as links."""
        from gz_scene_compiler.scene.outbound import link_modify_msg

        compiler = _compiler()

        with pytest.raises(ValueError):
            link_modify_msg(compiler.graph, compiler.get("robot"))

    def test_modify_message_dispatch(self):
        """Test that the compiler picks the message for the node's kind."""
        compiler = _compiler()

        assert compiler.modify_message("robot::arm")["topic"] == "~/link"
        assert compiler.modify_message("robot")["topic"] == "~/model/modify"
        assert compiler.modify_message("lamp")["topic"] == "~/light/modify"
        with pytest.raises(KeyError):
            compiler.modify_message("ghost")


class TestFactoryAndDelete:
    """Tests for spawn and delete requests."""

    def test_factory_model(self):
        """Test a spawn request placed at the node's scene pose."""
        from gz_scene_compiler.scene.outbound import factory_msg

        compiler = _compiler()

        envelope = factory_msg(compiler.graph, compiler.get("robot"), "robot")

        assert envelope["topic"] == "~/factory"
        assert envelope["msg"]["type"] == "robot"
        assert envelope["msg"]["createEntity"] == 1
        assert envelope["msg"]["position"] == {"x": 1.0, "y": 0.0, "z": 0.0}

    def test_factory_light(self):
        """Test that lights are spawned on the light factory topic."""
        from gz_scene_compiler.scene.outbound import factory_msg

        compiler = _compiler()

        envelope = factory_msg(compiler.graph, compiler.get("lamp"), "pointlight")

        assert envelope["topic"] == "~/factory/light"
        assert envelope["msg"]["name"] == "lamp"

    def test_entity_delete(self):
        """Test the delete request."""
        from gz_scene_compiler.scene.outbound import entity_delete_msg

        assert entity_delete_msg("robot") == {
            "topic": "~/entity_delete",
            "msg": {"name": "robot"},
        }

    def test_world_control(self):
        """Test that only the requested controls are set."""
        from gz_scene_compiler.scene.outbound import world_control_msg

        assert world_control_msg(pause=True)["msg"] == {"pause": True}
        assert world_control_msg(pause=False)["msg"] == {"pause": False}
        assert world_control_msg(reset="all")["msg"] == {"reset": "all"}
