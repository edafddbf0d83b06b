"""Domain-level errors for MindSketch."""


class InvalidPayloadError(ValueError):
    """Raised when persisted or imported map data cannot be used."""
