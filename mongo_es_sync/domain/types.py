from enum import Enum
from typing import Any, Mapping

# Opaque change stream position (the change document's ``_id``).
ResumeToken = Mapping[str, Any]


class ReplicationState(str, Enum):
    DETACHED = "detached"
    BOOTSTRAPPING = "bootstrapping"
    WATCHING = "watching"


class FeedErrorKind(str, Enum):
    TOKEN_INVALID = "token_invalid"
    OTHER = "other"
