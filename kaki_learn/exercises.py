"""
Pitch-accent question generation.

A question shows a word and asks which accent pattern its reading takes.
The options are every accent position the reading could carry, minus the
positions that cannot hold an accent drop, trimmed to a handful.
"""

import random
from typing import List, Optional, Sequence, TypeVar

from .config import MAX_DISTRACTORS
from .structured import AnswerOption, Word

T = TypeVar("T")

# Small kana that merge with the preceding kana into one mora
SMALL_YOON = {"ゃ", "ゅ", "ょ", "ャ", "ュ", "ョ"}

# Long-vowel mark and sokuon; a mora made of one of these never takes the drop
UNACCENTABLE_MORAE = {"ー", "っ", "ッ"}


def get_morae(reading: str) -> List[str]:
    """Split a kana reading into morae.

    きょう -> ["きょ", "う"], がっこう -> ["が", "っ", "こ", "う"]
    """
    if not reading:
        raise ValueError("Cannot split an empty reading into morae")

    morae: List[str] = []
    current = reading[0]
    for char in reading[1:]:
        if char in SMALL_YOON:
            current += char
        else:
            morae.append(current)
            current = char
    morae.append(current)
    return morae


def fisher_yates(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Return a shuffled copy of ``items``; the input is left untouched."""
    rand = rng.random if rng is not None else random.random
    shuffled = list(items)
    i = len(shuffled)
    while i > 1:
        i -= 1
        j = int(rand() * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def pitch_pattern(morae: Sequence[str], pitch: int) -> List[bool]:
    """High/low flag per mora for an accent class (True = high)."""
    if pitch == 0:
        return [i > 0 for i in range(len(morae))]
    if pitch == 1:
        return [i == 0 for i in range(len(morae))]
    return [0 < i < pitch for i in range(len(morae))]


def _make_option(word: Word, morae: Sequence[str], pitch: int) -> AnswerOption:
    pattern = "".join("H" if high else "L" for high in pitch_pattern(morae, pitch))
    return AnswerOption(yomi=word.yomi, pitch=pitch, correct=pitch == word.pitch, pattern=pattern)


def _can_carry_drop(morae: Sequence[str], pitch: int) -> bool:
    if pitch == 0:
        return True
    return morae[pitch - 1] not in UNACCENTABLE_MORAE


def generate_answers(word: Optional[Word], rng: Optional[random.Random] = None) -> List[AnswerOption]:
    """Build the options for one pitch-accent question.

    Returns the correct option plus up to three distractors, with the correct
    one at a random position. When no distractor survives filtering the
    question has a single option.
    """
    if word is None:
        return []

    rng = rng or random.Random()
    morae = get_morae(word.yomi)

    distractors = [
        _make_option(word, morae, pitch)
        for pitch in range(len(morae) + 1)
        if pitch != word.pitch and _can_carry_drop(morae, pitch)
    ]
    answers = fisher_yates(distractors, rng)[:MAX_DISTRACTORS]

    position = rng.randint(0, len(answers))
    answers.insert(position, _make_option(word, morae, word.pitch))
    return answers
