from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class ProjectRecord:
    """Represents a row from the projects table."""

    id: int
    name: str
    description: str | None
    status: str
    organization_id: str
    display_number: int
    created_by: str
    metadata: dict[str, Any] = field(default_factory=dict)
    current_model_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ModelRecord:
    """Represents a row from the models table."""

    id: str
    project_id: int
    original_filename: str
    storage_key: str
    size_bytes: int = 0
    category: str = "OTHER"
    display_name: str | None = None
    is_multi_file: bool = False
    element_count: int = 0
    status: str = "READY"


@dataclass
class PanelRecord:
    """Represents a row for the panels table derived from model metadata."""

    project_id: int
    model_id: str
    name: str
    tag: str
    object_type: str
    location: str
    material: str | None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class MembershipRecord:
    """Represents a row from the project_members table."""

    id: str
    project_id: int
    user_id: str
    role: str
