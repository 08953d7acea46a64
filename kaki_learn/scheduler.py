import datetime
from typing import Optional, Tuple

from .structured import StudyItem

DAY = datetime.timedelta(days=1)


def next_review(
    interval: float,
    easing_factor: float,
    correct: bool,
    now: Optional[datetime.datetime] = None,
) -> Tuple[float, datetime.datetime]:
    """
    Fixed-ease interval scheduling for pitch-accent study items.

    A correct answer multiplies the interval by the item's easing factor.
    The next due date, however, is measured with the interval the learner
    has just come through, not the lengthened one:

        interval=2, easing_factor=2.0, correct  ->  (4.0, now + 2 days)

    A wrong answer resets the interval to 1 day and makes the item due
    immediately. The easing factor itself never changes here.

    Returns:
        (new_interval, next_due)
    """
    if now is None:
        now = datetime.datetime.now(datetime.UTC)

    if not correct:
        return 1, now

    return interval * easing_factor, now + interval * DAY


def advance(item: StudyItem, correct: bool, now: Optional[datetime.datetime] = None) -> Tuple[float, datetime.datetime]:
    """Schedule a study item after an answer. The item is not modified."""
    return next_review(item.interval, item.easing_factor, correct, now=now)
