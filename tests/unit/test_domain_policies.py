from pymongo.errors import OperationFailure

from mongo_es_sync.domain.policy.reset_policy import (
    TOKEN_INVALID_CODES,
    ResetPlan,
    classify_feed_error,
    plan_for_error,
    plan_for_invalidate,
)
from mongo_es_sync.domain.types import FeedErrorKind


def test_token_invalid_codes():
    assert TOKEN_INVALID_CODES == {40585, 40615}


def test_classify_token_invalid_errors():
    assert classify_feed_error(OperationFailure("gone", code=40585)) is FeedErrorKind.TOKEN_INVALID
    assert classify_feed_error(OperationFailure("no uuid", code=40615)) is FeedErrorKind.TOKEN_INVALID


def test_classify_other_errors():
    assert classify_feed_error(OperationFailure("interrupted", code=11600)) is FeedErrorKind.OTHER
    assert classify_feed_error(ConnectionError("reset")) is FeedErrorKind.OTHER


def test_token_invalid_plan_never_purges():
    plan = plan_for_error(OperationFailure("gone", code=40585))
    assert plan == ResetPlan(purge_and_rebootstrap=False, discard_checkpoint=True)


def test_other_error_plan_keeps_everything():
    assert plan_for_error(OperationFailure("interrupted", code=11600)) == ResetPlan()


def test_invalidate_plan_purges_and_discards():
    plan = plan_for_invalidate()
    assert plan.purge_and_rebootstrap is True
    assert plan.discard_checkpoint is True
