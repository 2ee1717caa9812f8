"""
Exceptions raised by the subsetting core.

All of them are fatal for the request that raised them: no partial result
is produced and nothing is retried. I/O errors from collaborators (downloads,
GeoPackage reads and writes) are not wrapped and propagate unchanged.
"""


class SubsetError(Exception):
    """Base class for subsetting failures."""

    pass


class SchemaError(SubsetError):
    """Raised when a table has no recognized identifier column."""

    pass


class OriginNotFoundError(SubsetError):
    """Raised when an origin reference does not match any network feature."""

    pass


class PartitionNotFoundError(SubsetError):
    """Raised when no regional partition contains the origin."""

    pass
