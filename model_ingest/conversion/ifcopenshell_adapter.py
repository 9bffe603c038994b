from collections import Counter
from typing import Any

import ifcopenshell
import ifcopenshell.geom
import ifcopenshell.util.element

from model_ingest.conversion.artifact import encode_artifact
from model_ingest.conversion.base import BaseModelConverter
from model_ingest.conversion.exceptions import ConversionError, UnsupportedModelError
from model_ingest.conversion.models import (
    UNKNOWN_MATERIAL,
    ConversionResult,
    ModelElement,
    ModelMetadata,
    ProgressCallback,
    Storey,
)

# Openings and projections are features of other elements, not parts of the model.
_EXCLUDED_ELEMENT_TYPES = ("IfcFeatureElement", "IfcVirtualElement")


class IfcOpenShellAdapter(BaseModelConverter):
    """Converts IFC using IfcOpenShell.

    Metadata (storeys, contained elements, materials) is read from the entity
    graph first. Tessellated geometry is then produced by the geometry
    iterator, which also drives progress reporting.
    """

    def __init__(self, include_geometry: bool = True, num_threads: int = 1) -> None:
        self._include_geometry = include_geometry
        self._num_threads = num_threads

    def convert(
        self, data: bytes, on_progress: ProgressCallback | None = None
    ) -> ConversionResult:
        model = self._open(data)
        try:
            metadata = self._extract_metadata(model)
            elements = self._element_records(model)
            geometry = self._tessellate(model, on_progress) if self._include_geometry else []
            artifact = encode_artifact(model.schema, elements, geometry=geometry)
        except ConversionError:
            raise
        except Exception as exc:
            raise ConversionError(f"IFC conversion failed: {exc}") from exc
        if on_progress is not None:
            on_progress(100, "Converting IFC: 100%")
        return ConversionResult(artifact=artifact, metadata=metadata)

    def _open(self, data: bytes) -> Any:
        if not data.lstrip().startswith(b"ISO-10303-21"):
            raise UnsupportedModelError("Input is not an IFC STEP file")
        try:
            return ifcopenshell.file.from_string(data.decode("utf-8", errors="replace"))
        except Exception as exc:
            raise ConversionError(f"IFC parsing failed: {exc}") from exc

    def _extract_metadata(self, model: Any) -> ModelMetadata:
        storeys: list[Storey] = []
        for index, storey in enumerate(model.by_type("IfcBuildingStorey")):
            name = storey.Name or storey.LongName or f"Storey {index + 1}"
            contained = [
                element
                for rel in getattr(storey, "ContainsElements", ()) or ()
                for element in rel.RelatedElements
            ]
            storeys.append(
                Storey(
                    name=name,
                    element_count=len(contained),
                    elements=[self._to_element(element) for element in contained],
                )
            )

        element_types = Counter(element.is_a() for element in self._elements(model))
        return ModelMetadata(
            total_elements=sum(element_types.values()),
            storeys=storeys,
            element_types=dict(element_types),
        )

    def _to_element(self, element: Any) -> ModelElement:
        element_type = element.is_a()
        name = element.Name or getattr(element, "Tag", None) or f"{element_type}-{element.id()}"
        return ModelElement(
            id=str(element.id()),
            name=name,
            type=element_type,
            material=self._material_name(element),
        )

    def _material_name(self, element: Any) -> str:
        material = ifcopenshell.util.element.get_material(element)
        if material is None:
            return UNKNOWN_MATERIAL
        return getattr(material, "Name", None) or "Unknown Material"

    def _elements(self, model: Any) -> list[Any]:
        return [
            element
            for element in model.by_type("IfcElement")
            if not any(element.is_a(excluded) for excluded in _EXCLUDED_ELEMENT_TYPES)
        ]

    def _element_records(self, model: Any) -> list[dict[str, Any]]:
        return [
            {
                "id": str(element.id()),
                "guid": element.GlobalId,
                "type": element.is_a(),
                "name": element.Name,
            }
            for element in self._elements(model)
        ]

    def _tessellate(
        self, model: Any, on_progress: ProgressCallback | None
    ) -> list[dict[str, Any]]:
        settings = ifcopenshell.geom.settings()
        iterator = ifcopenshell.geom.iterator(settings, model, self._num_threads)
        if not iterator.initialize():
            return []

        shapes: list[dict[str, Any]] = []
        last_reported = 0
        while True:
            shape = iterator.get()
            shapes.append(
                {
                    "id": str(shape.id),
                    "matrix": list(shape.transformation.matrix),
                    "verts": list(shape.geometry.verts),
                    "faces": list(shape.geometry.faces),
                }
            )
            percentage = int(iterator.progress())
            # Report in 10% steps.
            if on_progress is not None and percentage >= last_reported + 10:
                last_reported = percentage - percentage % 10
                on_progress(last_reported, f"Converting IFC: {last_reported}%")
            if not iterator.next():
                break
        return shapes
