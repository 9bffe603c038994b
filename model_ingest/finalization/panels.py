from typing import Any

from model_ingest.conversion.models import UNKNOWN_MATERIAL, ModelElement, ModelMetadata, Storey
from model_ingest.database.models import PanelRecord

# Storeys have no elevation in the extracted metadata; space them evenly.
_STOREY_SPACING_MM = 3000


class PanelExtractor:
    """Derives panel rows and the spatial tree from extracted model metadata."""

    def extract(self, project_id: int, model_id: str, metadata: ModelMetadata) -> list[PanelRecord]:
        """One panel per element contained in a storey, in storey order."""
        return [
            self._element_to_panel(project_id, model_id, storey, element)
            for storey in metadata.storeys
            for element in storey.elements
        ]

    def spatial_structure(
        self, project_id: int, metadata: ModelMetadata
    ) -> list[dict[str, Any]] | None:
        if not metadata.storeys:
            return None
        return [
            {
                "id": f"{project_id}_storey_{index}",
                "name": storey.name,
                "type": "IfcBuildingStorey",
                "element_count": storey.element_count,
                "properties": {
                    "description": f"Building storey: {storey.name}",
                    "elevation": index * _STOREY_SPACING_MM,
                    "element_ids": [element.id for element in storey.elements],
                },
                "children": [
                    {
                        "id": element.id,
                        "name": element.name,
                        "type": element.type,
                        "material": element.material,
                        "properties": {"storey": storey.name, "material": element.material},
                    }
                    for element in storey.elements
                ],
            }
            for index, storey in enumerate(metadata.storeys)
        ]

    def _element_to_panel(
        self, project_id: int, model_id: str, storey: Storey, element: ModelElement
    ) -> PanelRecord:
        material = element.material if element.material != UNKNOWN_MATERIAL else None
        return PanelRecord(
            project_id=project_id,
            model_id=model_id,
            name=element.name,
            tag=element.name,
            object_type=element.type,
            location=storey.name,
            material=material,
            metadata={
                "extracted_from_ifc": True,
                "storey_name": storey.name,
                "element_type": element.type,
                "ifc_element_id": element.id,
                "material": element.material,
            },
        )
