"""Error taxonomy for the decommission pipeline."""

from typing import Optional


class DecomError(Exception):
    """Base class for every error raised by pano_decom."""


class ProbeConfigError(DecomError):
    """A liveness probe could not be built or run at all. Aborts the run."""


class EnumerationError(DecomError):
    """The list of policy groupings could not be retrieved."""


class FetchError(DecomError):
    """Objects, groups or rules of one grouping could not be read."""


class GroupingFetchError(FetchError):
    """A grouping's object index could not be built."""

    def __init__(self, grouping: str, cause: Optional[BaseException] = None):
        self.grouping = grouping
        self.cause = cause
        super().__init__(f"Could not fetch address objects for '{grouping}': {cause}")


class RemoteEditError(DecomError):
    """An edit or delete call against the policy store failed."""
