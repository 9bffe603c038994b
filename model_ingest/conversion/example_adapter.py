"""Example conversion adapter.

Use this module as a reference when implementing new converter adapters.
Implement BaseModelConverter and register the engine in ConverterFactory.
"""

import re
from collections import Counter
from typing import ClassVar

from model_ingest.conversion.artifact import encode_artifact
from model_ingest.conversion.base import BaseModelConverter
from model_ingest.conversion.exceptions import UnsupportedModelError
from model_ingest.conversion.models import (
    UNKNOWN_MATERIAL,
    ConversionResult,
    ModelElement,
    ModelMetadata,
    ProgressCallback,
    Storey,
)

_ENTITY_RE = re.compile(r"^\s*#(\d+)\s*=\s*(IFC[A-Z0-9]+)\s*\((.*)\)\s*;\s*$", re.MULTILINE)
_REF_RE = re.compile(r"#(\d+)")


class ExampleConverterAdapter(BaseModelConverter):
    """Example adapter that reads IFC STEP text without a geometry kernel.

    No native dependencies. It understands storeys, spatial containment and
    material associations, which is enough for local development and tests.
    """

    ELEMENT_TYPES: ClassVar[frozenset[str]] = frozenset(
        {
            "IFCWALL",
            "IFCWALLSTANDARDCASE",
            "IFCSLAB",
            "IFCBEAM",
            "IFCCOLUMN",
            "IFCMEMBER",
            "IFCPLATE",
            "IFCFOOTING",
            "IFCDOOR",
            "IFCWINDOW",
            "IFCROOF",
            "IFCSTAIR",
            "IFCRAILING",
            "IFCDUCTSEGMENT",
            "IFCPIPESEGMENT",
            "IFCFLOWSEGMENT",
            "IFCFLOWTERMINAL",
            "IFCCABLESEGMENT",
            "IFCLIGHTFIXTURE",
            "IFCELECTRICDISTRIBUTIONBOARD",
        }
    )

    def convert(
        self, data: bytes, on_progress: ProgressCallback | None = None
    ) -> ConversionResult:
        text = data.decode("utf-8", errors="replace")
        if not text.lstrip().startswith("ISO-10303-21"):
            raise UnsupportedModelError("Input is not an IFC STEP file")

        entities = {
            int(match.group(1)): (match.group(2), _split_args(match.group(3)))
            for match in _ENTITY_RE.finditer(text)
        }
        _report(on_progress, 20)

        materials = self._materials_by_element(entities)
        elements = {
            entity_id: self._to_element(entity_id, entity_type, args, materials)
            for entity_id, (entity_type, args) in entities.items()
            if entity_type in self.ELEMENT_TYPES
        }
        _report(on_progress, 50)

        storeys = self._storeys(entities, elements)
        _report(on_progress, 80)

        element_types = Counter(element.type for element in elements.values())
        metadata = ModelMetadata(
            total_elements=len(elements),
            storeys=storeys,
            element_types=dict(element_types),
        )
        artifact = encode_artifact(
            _schema(text),
            [
                {"id": element.id, "type": element.type, "name": element.name}
                for element in elements.values()
            ],
        )
        _report(on_progress, 100)
        return ConversionResult(artifact=artifact, metadata=metadata)

    def _materials_by_element(
        self, entities: dict[int, tuple[str, list[str]]]
    ) -> dict[int, str]:
        materials: dict[int, str] = {}
        for entity_type, args in entities.values():
            if entity_type != "IFCRELASSOCIATESMATERIAL" or len(args) < 6:
                continue
            material_ref = _refs(args[5])
            if not material_ref:
                continue
            material = entities.get(material_ref[0])
            name = _string(material[1][0]) if material and material[1] else None
            for element_id in _refs(args[4]):
                materials.setdefault(element_id, name or "Unknown Material")
        return materials

    def _to_element(
        self,
        entity_id: int,
        entity_type: str,
        args: list[str],
        materials: dict[int, str],
    ) -> ModelElement:
        name = _string(args[2]) if len(args) > 2 else None
        tag = _string(args[7]) if len(args) > 7 else None
        return ModelElement(
            id=str(entity_id),
            name=name or tag or f"{entity_type}-{entity_id}",
            type=entity_type,
            material=materials.get(entity_id, UNKNOWN_MATERIAL),
        )

    def _storeys(
        self,
        entities: dict[int, tuple[str, list[str]]],
        elements: dict[int, ModelElement],
    ) -> list[Storey]:
        contained: dict[int, list[int]] = {}
        for entity_type, args in entities.values():
            if entity_type != "IFCRELCONTAINEDINSPATIALSTRUCTURE" or len(args) < 6:
                continue
            structure = _refs(args[5])
            if structure:
                contained.setdefault(structure[0], []).extend(_refs(args[4]))

        storeys: list[Storey] = []
        index = 0
        for entity_id, (entity_type, args) in entities.items():
            if entity_type != "IFCBUILDINGSTOREY":
                continue
            index += 1
            name = (
                (_string(args[2]) if len(args) > 2 else None)
                or (_string(args[7]) if len(args) > 7 else None)
                or f"Storey {index}"
            )
            related = contained.get(entity_id, [])
            storeys.append(
                Storey(
                    name=name,
                    element_count=len(related),
                    elements=[elements[ref] for ref in related if ref in elements],
                )
            )
        return storeys


def _report(on_progress: ProgressCallback | None, percentage: int) -> None:
    if on_progress is not None:
        on_progress(percentage, f"Converting IFC: {percentage}%")


def _schema(text: str) -> str:
    match = re.search(r"FILE_SCHEMA\s*\(\s*\(\s*'([^']*)'", text)
    return match.group(1) if match else "IFC"


def _split_args(raw: str) -> list[str]:
    """Split a STEP argument list on top-level commas."""
    args: list[str] = []
    depth = 0
    in_string = False
    current: list[str] = []
    for char in raw:
        if char == "'":
            in_string = not in_string
        elif not in_string and char == "(":
            depth += 1
        elif not in_string and char == ")":
            depth -= 1
        elif not in_string and depth == 0 and char == ",":
            args.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    args.append("".join(current).strip())
    return args


def _string(arg: str) -> str | None:
    if len(arg) >= 2 and arg.startswith("'") and arg.endswith("'"):
        value = arg[1:-1].replace("''", "'")
        return value or None
    return None


def _refs(arg: str) -> list[int]:
    return [int(ref) for ref in _REF_RE.findall(arg)]
