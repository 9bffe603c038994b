from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

ProgressCallback = Callable[[int, str], None]

UNKNOWN_MATERIAL = "N/A"


@dataclass(frozen=True)
class ModelElement:
    """Single building element contained in a storey."""

    id: str  # STEP instance id, e.g. "1234"
    name: str
    type: str  # IFC entity name, e.g. "IfcWall"
    material: str = UNKNOWN_MATERIAL

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "type": self.type, "material": self.material}


@dataclass
class Storey:
    """Building storey with the elements it spatially contains."""

    name: str
    element_count: int = 0
    elements: list[ModelElement] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "element_count": self.element_count,
            "elements": [element.to_dict() for element in self.elements],
        }


@dataclass
class ModelMetadata:
    """Metadata extracted from a model before or during conversion."""

    total_elements: int = 0
    storeys: list[Storey] = field(default_factory=list)
    element_types: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_elements": self.total_elements,
            "storeys": [storey.to_dict() for storey in self.storeys],
            "element_types": dict(self.element_types),
        }


@dataclass
class ConversionResult:
    """Output of a converter: the artifact bytes plus extracted metadata."""

    artifact: bytes
    metadata: ModelMetadata = field(default_factory=ModelMetadata)
