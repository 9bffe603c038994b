from pathlib import Path

import pytest

from model_ingest.config.settings import Settings
from model_ingest.jobs.models import ProjectBase

SAMPLE_IFC = """ISO-10303-21;
HEADER;
FILE_DESCRIPTION(('ViewDefinition [CoordinationView]'),'2;1');
FILE_NAME('tower.ifc','2024-01-01T00:00:00',(''),(''),'','','');
FILE_SCHEMA(('IFC4'));
ENDSEC;
DATA;
#1=IFCPROJECT('0YvctVUKr0kugbFTf53O9L',$,'Tower',$,$,$,$,$,$);
#10=IFCBUILDINGSTOREY('2hQBAVPOr2VPRtJbTKtxLd',$,'Level 1',$,$,$,$,$,.ELEMENT.,0.);
#11=IFCBUILDINGSTOREY('1hQBAVPOr2VPRtJbTKtxLe',$,'Level 2',$,$,$,$,$,.ELEMENT.,3000.);
#20=IFCWALL('3cUkl32yn9qRSPvBJVyWYp',$,'Wall A',$,$,$,$,'W-01',$);
#21=IFCWALL('3cUkl32yn9qRSPvBJVyWYq',$,$,$,$,$,$,'W-02',$);
#22=IFCBEAM('3cUkl32yn9qRSPvBJVyWYr',$,'Beam B1',$,$,$,$,$,$);
#23=IFCCOLUMN('3cUkl32yn9qRSPvBJVyWYs',$,'Column C1',$,$,$,$,$,$);
#30=IFCRELCONTAINEDINSPATIALSTRUCTURE('0Lf8Z2mR5DxBQfP7n1pXkA',$,$,$,(#20,#21,#22),#10);
#31=IFCRELCONTAINEDINSPATIALSTRUCTURE('0Lf8Z2mR5DxBQfP7n1pXkB',$,$,$,(#23),#11);
#40=IFCMATERIAL('Concrete',$,$);
#41=IFCRELASSOCIATESMATERIAL('0Lf8Z2mR5DxBQfP7n1pXkC',$,$,$,(#20,#23),#40);
ENDSEC;
END-ISO-10303-21;
"""


@pytest.fixture()
def sample_ifc_bytes() -> bytes:
    """Minimal IFC4 file: two storeys, four elements, one material."""
    return SAMPLE_IFC.encode("utf-8")


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Development settings pointing every directory into tmp_path."""
    return Settings(
        _env_file=None,
        app_env="dev",
        background_workers=2,
        conversion_engine="example",
        storage_backend="local",
        temp_dir=str(tmp_path / "uploads"),
        artifact_dir=str(tmp_path / "artifacts"),
        local_storage_root=str(tmp_path / "storage"),
        status_stream_interval_seconds=0.0,
    )


@pytest.fixture()
def project_base() -> ProjectBase:
    return ProjectBase(
        name="Tower",
        created_by="user-1",
        organization_id="org-1",
        description="Office tower",
        status="ACTIVE",
    )


@pytest.fixture()
def write_upload(tmp_path: Path):
    """Write bytes to a temp upload path and return the path."""
    uploads = tmp_path / "uploads"
    uploads.mkdir(parents=True, exist_ok=True)
    counter = iter(range(1_000_000))

    def _write(filename: str, data: bytes) -> Path:
        path = uploads / f"upload_{next(counter)}_{filename}"
        path.write_bytes(data)
        return path

    return _write
