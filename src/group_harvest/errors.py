from __future__ import annotations


class HarvestError(Exception):
    """Base class for every failure raised while harvesting a run."""

    def __init__(self, message: str, *, page_offset: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.page_offset = page_offset

    @property
    def kind(self) -> str:
        return type(self).__name__

    def summary_key(self) -> str:
        return f"{self.kind}: {self.message}"


class NetworkError(HarvestError):
    pass


class HTTPStatusError(HarvestError):
    def __init__(self, url: str, status_code: int, *, page_offset: int | None = None) -> None:
        super().__init__(f"abnormal response status {status_code}", page_offset=page_offset)
        self.url = url
        self.status_code = status_code


class SessionError(HarvestError):
    pass


class NoMatchError(HarvestError):
    pass


class FieldConversionError(HarvestError):
    pass


class SchemaError(HarvestError):
    pass


class ParseError(HarvestError):
    pass


PAGE_ERRORS = (
    NetworkError,
    HTTPStatusError,
    SessionError,
    NoMatchError,
    FieldConversionError,
    SchemaError,
)
