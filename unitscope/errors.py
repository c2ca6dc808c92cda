"""Error taxonomy shared by the front-end, the query engine and the CLI."""


class UnitscopeError(Exception):
    """Base class for every failure the toolkit reports to its caller."""


class UsageError(UnitscopeError):
    """Wrong command-line arguments; nothing was analysed."""


class FrontendError(UnitscopeError):
    """The parsed unit could not be built, or it carries diagnostics."""

    def __init__(self, message: str, diagnostics=None):
        super().__init__(message)
        self.diagnostics = list(diagnostics or [])


class PreconditionViolation(UnitscopeError):
    """A configuration defect detected before any report line was produced.

    Raised when macro extraction is requested on a unit that was parsed
    without detailed preprocessing, so no preprocessing record exists.
    """
