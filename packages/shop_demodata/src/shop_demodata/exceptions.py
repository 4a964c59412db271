class DemodataError(Exception):
    """Base class for all demo data exceptions."""


class UnknownGeneratorError(DemodataError, LookupError):
    """Raised when no generator is registered for an entity."""

    def __init__(self, entity_name: str):
        super().__init__(f'No demo data generator registered for "{entity_name}"')
        self.entity_name = entity_name


class ProgressNotStartedError(DemodataError, RuntimeError):
    """Raised when a progress bar is advanced or finished before it was started."""
