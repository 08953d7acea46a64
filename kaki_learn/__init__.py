"""
Kaki Learn

A study engine for Japanese pitch accent: multiple-choice accent questions
with spaced-repetition scheduling.
"""

from . import structured
from . import exercises
from . import scheduler
from . import session
from . import db

__version__ = "0.1.0"
__all__ = ["structured", "exercises", "scheduler", "session", "db"]
