"""Error kinds surfaced by formdoc.

Only ConfigurationError crosses the public boundary of the core. RowAccessError
is raised by row accessors and absorbed by the extractor.
"""


class ConfigurationError(Exception):
    """Metadata is missing, inconsistent, or cannot be loaded."""


class RowAccessError(Exception):
    """A row accessor could not read from the underlying store."""
