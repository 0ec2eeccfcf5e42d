"""Errors raised by the unit search pipeline."""


class InvalidSearchRequest(ValueError):
    """Center out of range or negative radius."""


class InvalidPagingParameter(InvalidSearchRequest):
    """page/per_page not positive, or page given without per_page."""


class StoreUnavailable(RuntimeError):
    """The units store could not be read (missing file, locked, corrupt)."""
