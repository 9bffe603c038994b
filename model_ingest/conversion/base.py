from abc import ABC, abstractmethod

from model_ingest.conversion.models import ConversionResult, ProgressCallback


class BaseModelConverter(ABC):
    """Contract for all IFC conversion adapters."""

    @abstractmethod
    def convert(
        self, data: bytes, on_progress: ProgressCallback | None = None
    ) -> ConversionResult:
        """Convert raw IFC bytes into an artifact and extract its metadata.

        Args:
            data: Raw IFC file content.
            on_progress: Optional callback receiving (percent 0-100, message).

        Returns:
            ConversionResult with artifact bytes and model metadata.

        Raises:
            ConversionError: if conversion fails for any reason.
        """
