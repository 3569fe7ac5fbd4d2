"""Exception types raised by the stroke pipeline"""


class DatasetLoadError(Exception):
    """Raised when the raw dataset cannot be read or has the wrong schema"""


class InputValidationError(ValueError):
    """Raised when a prediction request is malformed

    Attributes:
        field: Name of the offending field
    """

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class TuningError(RuntimeError):
    """Raised when no hyperparameter candidate produced a usable score"""
