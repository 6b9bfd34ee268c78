from dataclasses import dataclass

from ..types import FeedErrorKind

# 40585: resume of change stream was not possible, as the resume token was not found
# 40615: the resume token UUID does not exist (collection dropped)
TOKEN_INVALID_CODES = frozenset({40585, 40615})


@dataclass(frozen=True)
class ResetPlan:
    """What a change feed reset must do before reattaching."""

    purge_and_rebootstrap: bool = False
    discard_checkpoint: bool = False


def classify_feed_error(error: BaseException) -> FeedErrorKind:
    """Token-invalid when the server error code says the resume token is gone."""
    code = getattr(error, "code", None)
    if code in TOKEN_INVALID_CODES:
        return FeedErrorKind.TOKEN_INVALID
    return FeedErrorKind.OTHER


def plan_for_error(error: BaseException) -> ResetPlan:
    if classify_feed_error(error) is FeedErrorKind.TOKEN_INVALID:
        return ResetPlan(discard_checkpoint=True)
    return ResetPlan()


def plan_for_invalidate() -> ResetPlan:
    return ResetPlan(purge_and_rebootstrap=True, discard_checkpoint=True)
