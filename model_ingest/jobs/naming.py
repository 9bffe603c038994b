"""File naming and classification helpers for uploaded models."""

from collections.abc import Iterable

IFC_EXTENSION = ".ifc"
FRAG_EXTENSION = ".frag"

CATEGORY_ENUM: dict[str, str] = {
    "structure": "STRUCTURE",
    "mep": "MEP",
    "electrical": "ELECTRICAL",
    "other": "OTHER",
}

_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("mep", ("mep", "plumb", "hvac", "pipe")),
    ("electrical", ("elect", "power", "light")),
    ("structure", ("struct", "frame", "beam", "column")),
)


def detect_model_kind(filename: str) -> str | None:
    """Return "ifc" or "frag" from the file extension, None when unsupported."""
    lowered = filename.lower()
    if lowered.endswith(IFC_EXTENSION):
        return "ifc"
    if lowered.endswith(FRAG_EXTENSION):
        return "frag"
    return None


def detect_category(filename: str) -> str:
    """Guess the discipline of a model from keywords in its file name."""
    lowered = filename.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "other"


def category_enum(category: str) -> str:
    return CATEGORY_ENUM.get(category.lower(), "OTHER")


def category_display_name(category: str) -> str:
    return category[:1].upper() + category[1:]


def artifact_name(filename: str) -> str:
    """x.ifc -> x.frag; FRAG files keep their name."""
    if filename.lower().endswith(IFC_EXTENSION):
        return filename[: -len(IFC_EXTENSION)] + FRAG_EXTENSION
    return filename


def unique_artifact_name(filename: str, taken: Iterable[str]) -> str:
    """Derive the artifact name, suffixing " <n>" while it collides with taken names."""
    used = set(taken)
    base = artifact_name(filename)
    candidate = base
    stem = base[: -len(FRAG_EXTENSION)] if base.lower().endswith(FRAG_EXTENSION) else base
    counter = 1
    while candidate in used:
        candidate = f"{stem} {counter}{FRAG_EXTENSION}"
        counter += 1
    return candidate


def assign_artifact_names(filenames: Iterable[str]) -> list[str]:
    """Assign distinct artifact names in upload order."""
    names: list[str] = []
    for filename in filenames:
        names.append(unique_artifact_name(filename, names))
    return names
