"""Exception types shared across the Slide Starter modules."""


class SlideStarterError(Exception):
    """Base class for every error raised by this project."""


class InvalidInputError(SlideStarterError, ValueError):
    """Malformed input to a pure function (empty rows, width mismatch, bad spec)."""


class ConfigurationError(SlideStarterError, ValueError):
    """A configuration property is missing or cannot be parsed."""


class RemoteRequestError(SlideStarterError):
    """One PageSpeed Insights request failed at the transport or HTTP level."""


class ParseError(SlideStarterError):
    """A response body did not have the expected shape."""


class LookupFailure(SlideStarterError):
    """The green-hosting lookup could not be completed."""


class UnknownHandlerError(SlideStarterError, KeyError):
    """No slide handler is registered under the requested name."""

    def __str__(self) -> str:
        # KeyError wraps its message in quotes
        return str(self.args[0]) if self.args else ""


class LayoutNotFoundError(SlideStarterError):
    """The template deck has no layout with the configured display name."""


class ShapeNotFoundError(SlideStarterError):
    """No shape in the layout contains the requested marker text."""
