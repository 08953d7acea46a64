"""
Study session engine.

A session picks its words (due study items for a signed-in learner, or the
category word list for everyone else), shows them one at a time as
pitch-accent questions, schedules the answered items and repeats missed
words before it ends.

Everything that talks to the data layer goes through a FetchTicket. With a
``source`` the session runs each ticket straight away; without one the host
reads ``pending_fetches``, performs the calls however it likes and reports
back through ``complete_fetch`` / ``fail_fetch``.
"""

from __future__ import annotations

import datetime
import random
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple, Union

from . import scheduler
from .config import DEBUG_MODE
from .exercises import fisher_yates, generate_answers
from .structured import AnswerFeedback, AnswerOption, StudyItem, Word

QueueEntry = Union[Word, StudyItem]


class SessionPhase(str, Enum):
    SELECTING_SOURCE = "selecting_source"
    AWAITING_WORD = "awaiting_word"
    QUESTION_ACTIVE = "question_active"
    QUESTION_ANSWERED = "question_answered"
    SESSION_COMPLETE = "session_complete"


class FetchPurpose(str, Enum):
    """Data-layer operations; values are the method names on a StudySource."""
    DUE_ITEMS = "fetch_due_study_items"
    WORDS = "fetch_category_words"
    CREATE_ITEMS = "create_study_items"
    UPDATE_ITEM = "update_study_item"


class StudySource(Protocol):
    def fetch_due_study_items(self, username: Optional[str], category: str) -> Sequence[StudyItem]: ...

    def fetch_category_words(self, category: str) -> Sequence[Word]: ...

    def create_study_items(self, username: str, word_ids: List[int], due: datetime.datetime) -> Any: ...

    def update_study_item(self, username: str, item_id: int, due: datetime.datetime, interval: float) -> Any: ...


class SourceFetchError(RuntimeError):
    """A data-layer call failed. The message is the original error's message."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(message)
        self.operation = operation


@dataclass(eq=False)
class FetchTicket:
    purpose: FetchPurpose
    args: Dict[str, Any]
    key: Tuple[FetchPurpose, Optional[str], str]
    context: Any = field(default=None, repr=False)

    @property
    def operation(self) -> str:
        return self.purpose.value


class WordQueue:
    """Words still to be shown in a session.

    Entries are served from the back. A requeued entry goes to the front, so
    it comes round again after everything still waiting has been shown.
    """

    def __init__(self, entries: Sequence[QueueEntry] = ()) -> None:
        self._entries: Deque[QueueEntry] = deque(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(self._entries)

    @property
    def remaining(self) -> List[QueueEntry]:
        """Entries front first."""
        return list(self._entries)

    def dequeue(self) -> Optional[QueueEntry]:
        if not self._entries:
            return None
        return self._entries.pop()

    def requeue(self, entry: QueueEntry) -> None:
        self._entries.appendleft(entry)


def word_of(entry: QueueEntry) -> Word:
    return entry.word if isinstance(entry, StudyItem) else entry


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class StudySession:
    def __init__(
        self,
        category: str,
        username: Optional[str] = None,
        source: Optional[StudySource] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ) -> None:
        self.category = category
        self.username = username or None
        self.source = source
        self.rng = rng or random.Random()
        self.clock = clock or _utcnow

        self.phase = SessionPhase.SELECTING_SOURCE
        self.queue = WordQueue()
        self.current: Optional[QueueEntry] = None
        self.answers: List[AnswerOption] = []
        self.feedback: Optional[AnswerFeedback] = None
        self.error: Optional[SourceFetchError] = None
        self.answered_count = 0
        self.correct_count = 0
        self.abandoned = False

        self._in_flight: Dict[Tuple[FetchPurpose, Optional[str], str], FetchTicket] = {}
        self._items_created = False

    # ------------------------------------------------------------------
    # Host triggers
    # ------------------------------------------------------------------
    def start(self) -> "StudySession":
        """Ask for the session's words: due items for a learner, otherwise the category list."""
        if self.phase is not SessionPhase.SELECTING_SOURCE or self.error is not None:
            return self
        if self.username:
            self._request(FetchPurpose.DUE_ITEMS, username=self.username, category=self.category)
        else:
            self._request(FetchPurpose.WORDS, category=self.category)
        return self

    def select_answer(self, index: int) -> bool:
        """Register the learner's choice. Returns False (and changes nothing) if the choice is not accepted."""
        if self.phase is not SessionPhase.QUESTION_ACTIVE or self.error is not None:
            if DEBUG_MODE:
                print(f"⚠️ Selection {index} ignored in phase {self.phase.value}")
            return False
        if not 0 <= index < len(self.answers):
            if DEBUG_MODE:
                print(f"⚠️ Selection {index} out of range (0..{len(self.answers) - 1})")
            return False

        assert self.current is not None
        option = self.answers[index]
        self.feedback = AnswerFeedback(clicked=index, correct=option.correct)
        self.phase = SessionPhase.QUESTION_ANSWERED
        self.answered_count += 1
        if option.correct:
            self.correct_count += 1

        if self.username and isinstance(self.current, StudyItem):
            # Learners get the word back only once the new schedule is stored
            interval, due = scheduler.advance(self.current, option.correct, now=self.clock())
            self._request(
                FetchPurpose.UPDATE_ITEM,
                context=(self.current, option.correct),
                username=self.username,
                item_id=self.current.id,
                due=due,
                interval=interval,
            )
        elif not option.correct:
            self._requeue(self.current)
        return True

    def continue_to_next(self) -> bool:
        """Move past an answered question. Waits for the schedule update to land first."""
        if self.phase is not SessionPhase.QUESTION_ANSWERED or self.error is not None:
            return False
        if self._is_in_flight(FetchPurpose.UPDATE_ITEM):
            if DEBUG_MODE:
                print("⚠️ Continue ignored while the study item update is outstanding")
            return False
        self.phase = SessionPhase.AWAITING_WORD
        self._present_next()
        return True

    def abandon(self) -> None:
        """Stop the session; results of outstanding fetches will be dropped."""
        self.abandoned = True
        self._in_flight.clear()

    # ------------------------------------------------------------------
    # Fetch lifecycle
    # ------------------------------------------------------------------
    @property
    def pending_fetches(self) -> List[FetchTicket]:
        return list(self._in_flight.values())

    def complete_fetch(self, ticket: FetchTicket, result: Any) -> bool:
        """Feed a finished data-layer call into the session. Stale results are ignored."""
        if self.abandoned or self._in_flight.get(ticket.key) is not ticket:
            if DEBUG_MODE:
                print(f"⚠️ Ignoring stale {ticket.operation} result")
            return False
        del self._in_flight[ticket.key]

        if ticket.purpose is FetchPurpose.DUE_ITEMS:
            self._on_due_items(list(result or []))
        elif ticket.purpose is FetchPurpose.WORDS:
            self._on_words(list(result or []))
        elif ticket.purpose is FetchPurpose.CREATE_ITEMS:
            self._on_items_created(result)
        else:
            self._on_item_updated(ticket)
        return True

    def fail_fetch(self, ticket: FetchTicket, exc: BaseException) -> SourceFetchError:
        """Record a failed data-layer call. The session halts where it is."""
        error = SourceFetchError(ticket.operation, str(exc))
        if self.abandoned or self._in_flight.get(ticket.key) is not ticket:
            return error
        del self._in_flight[ticket.key]
        self.error = error
        if DEBUG_MODE:
            print(f"❌ {ticket.operation} failed: {exc}")
        return error

    def _is_in_flight(self, purpose: FetchPurpose) -> bool:
        return (purpose, self.username, self.category) in self._in_flight

    def _request(self, purpose: FetchPurpose, context: Any = None, **args: Any) -> Optional[FetchTicket]:
        key = (purpose, self.username, self.category)
        if self.abandoned:
            return None
        if key in self._in_flight:
            if DEBUG_MODE:
                print(f"⚠️ {purpose.value} already in flight for {self.username or 'anonymous'}/{self.category}")
            return None
        ticket = FetchTicket(purpose=purpose, args=args, key=key, context=context)
        self._in_flight[key] = ticket
        if self.source is not None:
            self._execute(ticket)
        return ticket

    def _execute(self, ticket: FetchTicket) -> None:
        try:
            result = getattr(self.source, ticket.operation)(**ticket.args)
        except Exception as e:
            raise self.fail_fetch(ticket, e) from e
        self.complete_fetch(ticket, result)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _on_due_items(self, items: List[StudyItem]) -> None:
        if items or self._items_created:
            self._begin(items)
        else:
            self._request(FetchPurpose.WORDS, category=self.category)

    def _on_words(self, words: List[Word]) -> None:
        if not self.username:
            if DEBUG_MODE:
                print(f"✅ Anonymous session on '{self.category}' with {len(words)} words")
            self._begin(words)
        elif words:
            self._request(
                FetchPurpose.CREATE_ITEMS,
                username=self.username,
                word_ids=[w.id for w in words],
                due=self.clock(),
            )
        else:
            self._begin([])

    def _on_items_created(self, result: Any) -> None:
        self._items_created = True
        if isinstance(result, (list, tuple)):
            self._begin([item for item in result if isinstance(item, StudyItem)])
        else:
            # Data layer only acknowledged; read the new items back
            self._request(FetchPurpose.DUE_ITEMS, username=self.username, category=self.category)

    def _on_item_updated(self, ticket: FetchTicket) -> None:
        item, correct = ticket.context
        item.interval = ticket.args["interval"]
        item.due = ticket.args["due"]
        if not correct:
            self._requeue(item)

    def _requeue(self, entry: QueueEntry) -> None:
        self.queue.requeue(entry)
        if DEBUG_MODE:
            print(f"🔁 Requeued {word_of(entry).tango} after an incorrect answer")

    def _begin(self, entries: Sequence[QueueEntry]) -> None:
        if DEBUG_MODE and self.username:
            print(f"✅ Session for {self.username} on '{self.category}' with {len(entries)} study items")
        self.queue = WordQueue(fisher_yates(entries, self.rng))
        self.phase = SessionPhase.AWAITING_WORD
        self._present_next()

    def _present_next(self) -> None:
        entry = self.queue.dequeue()
        self.feedback = None
        if entry is None:
            self.current = None
            self.answers = []
            self.phase = SessionPhase.SESSION_COMPLETE
            return
        self.current = entry
        self.answers = generate_answers(word_of(entry), self.rng)
        self.phase = SessionPhase.QUESTION_ACTIVE

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------
    @property
    def current_word(self) -> Optional[Word]:
        return word_of(self.current) if self.current is not None else None

    @property
    def is_complete(self) -> bool:
        return self.phase is SessionPhase.SESSION_COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        answered = self.phase is SessionPhase.QUESTION_ANSWERED
        word = self.current_word
        word_data: Optional[Dict[str, Any]] = None
        if word is not None:
            word_data = word.to_dict()
            if not answered:
                word_data.pop("pitch")

        return {
            "phase": self.phase.value,
            "username": self.username,
            "category": self.category,
            "word": word_data,
            "study_item_id": self.current.id if isinstance(self.current, StudyItem) else None,
            "answers": [option.to_dict(reveal=answered) for option in self.answers],
            "feedback": (
                {"clicked": self.feedback.clicked, "correct": self.feedback.correct}
                if self.feedback else None
            ),
            "remaining": len(self.queue),
            "answered": self.answered_count,
            "correct": self.correct_count,
            "error": str(self.error) if self.error else None,
        }
