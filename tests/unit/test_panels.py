from model_ingest.conversion.models import ModelElement, ModelMetadata, Storey
from model_ingest.finalization.panels import PanelExtractor


def _metadata() -> ModelMetadata:
    return ModelMetadata(
        total_elements=3,
        storeys=[
            Storey(
                name="Level 1",
                element_count=2,
                elements=[
                    ModelElement(id="20", name="Wall A", type="IfcWall", material="Concrete"),
                    ModelElement(id="22", name="Beam B1", type="IfcBeam"),
                ],
            ),
            Storey(
                name="Level 2",
                element_count=1,
                elements=[ModelElement(id="23", name="Column C1", type="IfcColumn")],
            ),
        ],
    )


class TestExtract:
    def test_one_panel_per_contained_element(self) -> None:
        panels = PanelExtractor().extract(7, "model-1", _metadata())
        assert [p.name for p in panels] == ["Wall A", "Beam B1", "Column C1"]
        assert {p.project_id for p in panels} == {7}
        assert {p.model_id for p in panels} == {"model-1"}

    def test_panel_fields(self) -> None:
        wall = PanelExtractor().extract(7, "model-1", _metadata())[0]
        assert wall.tag == "Wall A"
        assert wall.object_type == "IfcWall"
        assert wall.location == "Level 1"
        assert wall.material == "Concrete"
        assert wall.metadata == {
            "extracted_from_ifc": True,
            "storey_name": "Level 1",
            "element_type": "IfcWall",
            "ifc_element_id": "20",
            "material": "Concrete",
        }

    def test_unknown_material_is_null(self) -> None:
        beam = PanelExtractor().extract(7, "model-1", _metadata())[1]
        assert beam.material is None
        assert beam.metadata["material"] == "N/A"

    def test_no_storeys_no_panels(self) -> None:
        assert PanelExtractor().extract(7, "model-1", ModelMetadata()) == []


class TestSpatialStructure:
    def test_storey_tree(self) -> None:
        tree = PanelExtractor().spatial_structure(7, _metadata())
        assert tree is not None
        assert [node["id"] for node in tree] == ["7_storey_0", "7_storey_1"]
        level_1 = tree[0]
        assert level_1["type"] == "IfcBuildingStorey"
        assert level_1["element_count"] == 2
        assert level_1["properties"]["elevation"] == 0
        assert level_1["properties"]["element_ids"] == ["20", "22"]
        assert level_1["children"][0]["properties"] == {"storey": "Level 1", "material": "Concrete"}
        assert tree[1]["properties"]["elevation"] == 3000

    def test_none_without_storeys(self) -> None:
        assert PanelExtractor().spatial_structure(7, ModelMetadata()) is None
