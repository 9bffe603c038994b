class ConversionError(Exception):
    """Raised when a model file cannot be converted or inspected."""


class UnsupportedModelError(ConversionError):
    """Raised when the input is not a model format the converter understands."""
