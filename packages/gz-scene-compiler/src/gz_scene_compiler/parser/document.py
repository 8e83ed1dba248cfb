# SPDX-License-Identifier: MIT
"""Normalize SDF XML documents into a canonical dict tree.

The canonical form is what the entity builder consumes:

- attributes (``name``, ``type``) become ordinary keys
- leaf elements become stripped strings
- fields that may repeat are always lists, even with a single element
- absent optional fields that have an SDF default are filled in
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from gz_scene_compiler.config import DEFAULT_MATERIAL_SCRIPT
from gz_scene_compiler.errors import MalformedDocumentError

logger = logging.getLogger(__name__)

DocumentSource = Union[str, bytes, Path, ET.Element]

TOP_LEVEL_KINDS = ("world", "model", "light")

# Children of these elements are lists regardless of how many appear
REPEATED_FIELDS: dict[str, frozenset[str]] = {
    "sdf": frozenset({"world", "model", "light"}),
    "world": frozenset({"model", "light", "include"}),
    "model": frozenset({"link", "model", "joint"}),
    "link": frozenset({"visual", "collision"}),
    "script": frozenset({"uri"}),
    "heightmap": frozenset({"texture", "blend"}),
}

LIGHT_DEFAULTS = {
    "cast_shadows": "false",
    "diffuse": "1 1 1 1",
    "specular": ".1 .1 .1 1",
}
LIGHT_DIRECTION_DEFAULT = "0 0 -1"
ATTENUATION_DEFAULTS = {
    "range": "10",
    "constant": "1",
    "linear": "1",
    "quadratic": "0",
}


@dataclass
class NormalizedDocument:
    """A document reduced to its single top-level entity."""

    kind: str  # "world", "model" or "light"
    body: dict[str, Any]
    version: str | None = None


def element_to_dict(elem: ET.Element) -> Any:
    """Convert an element into plain Python values.

    Elements without children become their stripped text. Attribute-only
    elements become a dict of attributes.
    """
    children = list(elem)
    text = (elem.text or "").strip()

    if not children:
        if text or not elem.attrib:
            return text
        return dict(elem.attrib)

    result: dict[str, Any] = dict(elem.attrib)
    repeated = REPEATED_FIELDS.get(elem.tag, frozenset())

    for child in children:
        if not isinstance(child.tag, str):
            # Comments and processing instructions
            continue
        value = element_to_dict(child)
        if child.tag in repeated:
            result.setdefault(child.tag, []).append(value)
        elif child.tag in result:
            logger.debug("Ignoring duplicate <%s> in <%s>", child.tag, elem.tag)
        else:
            result[child.tag] = value

    for tag in repeated:
        result.setdefault(tag, [])

    return result


def _parse_source(source: DocumentSource) -> ET.Element:
    if isinstance(source, ET.Element):
        return source

    if isinstance(source, Path) or (
        isinstance(source, str) and not source.lstrip().startswith("<")
    ):
        source = Path(source).read_bytes()

    try:
        return ET.fromstring(source)
    except ET.ParseError as e:
        raise MalformedDocumentError(f"Invalid XML: {e}") from e


def _find_top_level(root: ET.Element) -> ET.Element | None:
    if root.tag in TOP_LEVEL_KINDS:
        return root
    for kind in TOP_LEVEL_KINDS:
        elem = root.find(kind)
        if elem is not None:
            return elem
    return None


def normalize_document(
    source: DocumentSource,
    default_material_script: str = DEFAULT_MATERIAL_SCRIPT,
) -> NormalizedDocument:
    """Parse and normalize an SDF document.

    Args:
        source: XML text or bytes, a file path, or an already parsed element.
            Either a full <sdf> document or a bare <world>/<model>/<light>.
        default_material_script: Script location filled in for material
            scripts that list none

    Returns:
        The normalized top-level entity

    Raises:
        MalformedDocumentError: If the XML is invalid or holds no world,
            model, or light
    """
    root = _parse_source(source)
    top = _find_top_level(root)
    if top is None:
        raise MalformedDocumentError(
            f"Document <{root.tag}> contains no world, model, or light"
        )

    body = element_to_dict(top)
    if not isinstance(body, dict):
        # <model/> with neither attributes nor children
        body = {}

    apply_defaults(top.tag, body, default_material_script)
    return NormalizedDocument(kind=top.tag, body=body, version=root.get("version"))


def apply_defaults(kind: str, body: dict[str, Any], default_material_script: str) -> None:
    """Fill SDF defaults in place, recursing through the entity tree.

    Empty elements normalize to strings and are left as they are.
    """
    if not isinstance(body, dict):
        return
    if kind == "world":
        for model in body.get("model", []):
            apply_defaults("model", model, default_material_script)
        for light in body.get("light", []):
            apply_defaults("light", light, default_material_script)
    elif kind == "model":
        for link in body.get("link", []):
            if not isinstance(link, dict):
                continue
            for visual in link.get("visual", []):
                _visual_defaults(visual, default_material_script, cast_shadows="true")
            for collision in link.get("collision", []):
                _visual_defaults(collision, default_material_script, cast_shadows=None)
        for nested in body.get("model", []):
            apply_defaults("model", nested, default_material_script)
    elif kind == "light":
        _light_defaults(body)


def _light_defaults(light: dict[str, Any]) -> None:
    for key, value in LIGHT_DEFAULTS.items():
        light.setdefault(key, value)
    if light.get("type") in ("spot", "directional"):
        light.setdefault("direction", LIGHT_DIRECTION_DEFAULT)

    attenuation = light.get("attenuation")
    if not isinstance(attenuation, dict):
        attenuation = {}
        light["attenuation"] = attenuation
    for key, value in ATTENUATION_DEFAULTS.items():
        attenuation.setdefault(key, value)


def _visual_defaults(
    visual: Any, default_material_script: str, cast_shadows: str | None
) -> None:
    if not isinstance(visual, dict):
        return
    if cast_shadows is not None:
        visual.setdefault("cast_shadows", cast_shadows)

    material = visual.get("material")
    if isinstance(material, dict):
        script = material.get("script")
        if isinstance(script, dict) and not script.get("uri"):
            script["uri"] = [default_material_script]

    geometry = visual.get("geometry")
    if isinstance(geometry, dict) and isinstance(geometry.get("mesh"), dict):
        mesh = geometry["mesh"]
        mesh.setdefault("scale", "1 1 1")
        submesh = mesh.get("submesh")
        if isinstance(submesh, dict):
            submesh.setdefault("center", "false")
