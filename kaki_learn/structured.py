import datetime
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class Word:
    id: int
    tango: str
    yomi: str
    pitch: int
    definition: str = ""
    pos: str = ""
    category: str = ""

    def __post_init__(self) -> None:
        if not self.yomi:
            raise ValueError(f"Word {self.tango!r} has an empty reading")
        if self.pitch < 0:
            raise ValueError(f"Word {self.tango!r} has a negative pitch ({self.pitch})")
        from .exercises import get_morae
        morae = len(get_morae(self.yomi))
        if self.pitch > morae:
            raise ValueError(f"Word {self.tango!r} has pitch {self.pitch} but {self.yomi} has only {morae} morae")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tango": self.tango,
            "yomi": self.yomi,
            "pitch": self.pitch,
            "definition": self.definition,
            "pos": self.pos,
            "category": self.category,
        }


@dataclass
class StudyItem:
    """A learner's spaced-repetition record for one word."""
    id: int
    word: Word
    due: datetime.datetime
    interval: float = 1
    easing_factor: float = 2.5

    def __post_init__(self) -> None:
        if self.interval < 1:
            raise ValueError(f"Study item {self.id} has interval {self.interval} (must be >= 1)")
        if self.easing_factor <= 1:
            raise ValueError(f"Study item {self.id} has easing factor {self.easing_factor} (must be > 1)")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "word": self.word.to_dict(),
            "due": self.due.isoformat(),
            "interval": self.interval,
            "easing_factor": self.easing_factor,
        }


@dataclass(frozen=True)
class AnswerOption:
    yomi: str
    pitch: int
    correct: bool
    pattern: str = field(default="", compare=False)

    def to_dict(self, reveal: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {"yomi": self.yomi, "pitch": self.pitch, "pattern": self.pattern}
        if reveal:
            data["correct"] = self.correct
        return data


@dataclass(frozen=True)
class AnswerFeedback:
    clicked: int
    correct: bool
