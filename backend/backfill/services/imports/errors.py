"""
Exceptions raised by the import pipeline.

Row-level problems never raise; these cover admission and job-level failures.
"""


class ImportPipelineError(Exception):
    """Base class for import pipeline failures."""


class OrganizationNotFoundError(ImportPipelineError):
    """The organization owning a site or import does not exist."""

    def __init__(self, organization_id: str):
        super().__init__(f"Organization {organization_id} not found")
        self.organization_id = organization_id


class QuotaLookupError(ImportPipelineError):
    """Existing monthly usage could not be read from the event store."""


class UnsupportedImportSourceError(ImportPipelineError):
    """No mapper is registered for the requested platform."""

    def __init__(self, source: str):
        super().__init__(f"Unsupported import source: {source}")
        self.source = source


class InvalidImportFileError(ImportPipelineError):
    """The uploaded file cannot be read as an export of the declared platform."""


class ImportRowLimitExceededError(ImportPipelineError):
    """The file holds more rows than a single import may process."""

    def __init__(self, max_rows: int):
        super().__init__(f"Import exceeds maximum row limit of {max_rows:,}")
        self.max_rows = max_rows


class ImportTimeoutError(ImportPipelineError):
    """Processing ran past the import deadline."""

    def __init__(self, timeout_seconds: float):
        if timeout_seconds < 60:
            limit = f"{timeout_seconds:g} seconds"
        else:
            limit = f"{int(timeout_seconds // 60)} minutes"
        super().__init__(f"Import processing timeout exceeded ({limit})")
        self.timeout_seconds = timeout_seconds
