class FinalizationError(Exception):
    """Raised when converted files could not be turned into a persisted project."""
