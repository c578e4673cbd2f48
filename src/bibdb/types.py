"""Type definitions for bibdb data structures."""

from enum import Enum, IntEnum


class DuplicatePolicy(Enum):
    """What to do when an inserted entry key already exists."""

    REJECT = "reject"
    UNIQUIFY = "uniquify"
    OVERWRITE = "overwrite"


class Severity(IntEnum):
    """Severity of a problem found while reading a database."""

    NONE = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


# Type aliases for common data structures
SortLevels = list[list[str]]
