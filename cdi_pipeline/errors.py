"""
Exception types used across the CDI pipeline.

Everything raised on purpose by this package derives from CdiError, so the
per-dataset loop in the generator can catch one family of errors and keep
going with the next dataset ID.
"""

from typing import Optional


class CdiError(Exception):
    """Base class for all pipeline errors"""


class ConfigError(CdiError, ValueError):
    """Invalid or incomplete configuration"""


class PaddingError(CdiError, ValueError):
    """A padding spec could not be built, or a value could not be padded"""


class ImporterError(CdiError):
    """A dataset source could not process the current dataset"""


class InvalidLookupValueError(ImporterError):
    """A metadata value was found but could not be converted"""

    def __init__(self, value_name: str, cause: Optional[Exception] = None):
        message = f"Invalid value for {value_name}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.value_name = value_name


class DatasetNotFoundError(CdiError):
    """The remote service reports that the dataset does not exist"""

    def __init__(self, dataset_id: str):
        super().__init__(f"Dataset {dataset_id} not found")
        self.dataset_id = dataset_id


class RetrievalFailedError(CdiError):
    """All network attempts for a payload were used up"""

    def __init__(self, dataset_id: str, kind: str, attempts: int):
        super().__init__(f"Could not retrieve {kind} for {dataset_id} after {attempts} attempts")
        self.dataset_id = dataset_id
        self.kind = kind
        self.attempts = attempts


class TemplateError(CdiError, ValueError):
    """The template document is malformed"""


class MissingValueError(CdiError):
    """A template tag resolved to nothing"""

    def __init__(self, tag: str, message: Optional[str] = None):
        super().__init__(message or f"No value found for tag '{tag}'")
        self.tag = tag


class UnrecognisedTagError(MissingValueError):
    """The dataset source does not know how to resolve a tag"""

    def __init__(self, tag: str):
        super().__init__(tag, f"Unrecognised template tag '{tag}'")


class LookupLoadError(CdiError, ValueError):
    """The reference table file is invalid"""

    def __init__(self, line_number: int, message: str):
        super().__init__(f"Error on reference file line {line_number}: {message}")
        self.line_number = line_number


class GeneratorError(CdiError):
    """A dataset ID could not be taken through the generator"""
