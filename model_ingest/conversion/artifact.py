"""Serialization of converted model artifacts.

Artifacts are gzip-compressed JSON documents. The format is shared by every
converter so downstream consumers only need one reader.
"""

import gzip
import json
from typing import Any

ARTIFACT_FORMAT = "model-ingest-frag"
ARTIFACT_VERSION = 1
ARTIFACT_CONTENT_TYPE = "application/vnd.model-ingest.frag+gzip"
FRAG_CONTENT_TYPE = "application/octet-stream"


def encode_artifact(schema: str, elements: list[dict[str, Any]], **extra: Any) -> bytes:
    """Pack converted elements into artifact bytes."""
    document: dict[str, Any] = {
        "format": ARTIFACT_FORMAT,
        "version": ARTIFACT_VERSION,
        "schema": schema,
        "elements": elements,
    }
    document.update(extra)
    return gzip.compress(json.dumps(document, separators=(",", ":")).encode("utf-8"))


def content_type_for(detected_kind: str | None) -> str:
    """Converted IFC containers and uploaded FRAG files are stored under different types."""
    return ARTIFACT_CONTENT_TYPE if detected_kind == "ifc" else FRAG_CONTENT_TYPE


def decode_artifact(data: bytes) -> dict[str, Any]:
    """Unpack artifact bytes. Raises ValueError when the data is not an artifact."""
    try:
        document = json.loads(gzip.decompress(data).decode("utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Not a model artifact: {exc}") from exc
    if not isinstance(document, dict) or document.get("format") != ARTIFACT_FORMAT:
        raise ValueError("Not a model artifact: unexpected format marker")
    return document
