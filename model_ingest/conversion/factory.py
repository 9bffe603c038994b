from model_ingest.config.settings import Settings
from model_ingest.conversion.base import BaseModelConverter
from model_ingest.conversion.example_adapter import ExampleConverterAdapter
from model_ingest.conversion.ifcopenshell_adapter import IfcOpenShellAdapter


class ConverterFactory:
    """Creates the correct model converter based on settings."""

    ADAPTERS: dict[str, type[BaseModelConverter]] = {
        "ifcopenshell": IfcOpenShellAdapter,
        "example": ExampleConverterAdapter,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseModelConverter:
        return cls.create_for_engine(settings.conversion_engine)

    @classmethod
    def create_for_engine(cls, engine: str) -> BaseModelConverter:
        """Create a converter by engine name (used inside execution units)."""
        adapter_cls = cls.ADAPTERS.get(engine.lower())
        if adapter_cls is None:
            raise ValueError(
                f"Unknown conversion engine '{engine}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls()
