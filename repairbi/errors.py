"""
Exceptions raised at the data-source boundary.

Malformed rows and unparseable fields never raise; only a source that cannot
be reached (or was never configured) does.
"""


class RepairBIError(Exception):
    """Base class for errors raised by this package."""


class FeedUnavailableError(RepairBIError):
    """The raw CSV text could not be retrieved (HTTP/network/file error)."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Could not read data source {source}: {reason}")


class FeedNotConfiguredError(RepairBIError):
    """Neither a sheet URL nor a local file was configured."""
