from __future__ import annotations
from sqlalchemy import create_engine, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session, Mapped, mapped_column, relationship
import datetime
from typing import Optional, List, Any, Dict, Sequence

from .config import DB_PATH, DEBUG_MODE, DEFAULT_EASING_FACTOR
from . import structured


class Base(DeclarativeBase):
    pass


engine = create_engine(f"sqlite:///{DB_PATH}")
# Prevent attribute expiration on commit so returned objects remain accessible
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


class Word(Base):
    __tablename__ = "words"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tango: Mapped[str] = mapped_column(String, nullable=False)
    yomi: Mapped[str] = mapped_column(String, nullable=False)
    pitch: Mapped[int] = mapped_column(Integer, nullable=False)
    definition: Mapped[Optional[str]] = mapped_column(Text)
    pos: Mapped[Optional[str]] = mapped_column(String)
    category: Mapped[str] = mapped_column(String, nullable=False, index=True)

    __table_args__ = (UniqueConstraint("tango", "yomi", "category", name="uq_word_in_category"),)


class StudyItem(Base):
    """A learner's schedule for one word. Rows are never deleted."""
    __tablename__ = "study_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String, nullable=False, index=True)
    word_id: Mapped[int] = mapped_column(ForeignKey("words.id"), nullable=False)
    due: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: datetime.datetime.now(datetime.UTC))
    interval: Mapped[float] = mapped_column(Float, default=1)
    easing_factor: Mapped[float] = mapped_column(Float, default=DEFAULT_EASING_FACTOR)

    word: Mapped[Word] = relationship(lazy="joined")

    __table_args__ = (UniqueConstraint("username", "word_id", name="uq_study_item_per_user"),)


def is_db_initialized() -> bool:
    """Check if the database is already initialized by checking if tables exist."""
    from sqlalchemy import inspect
    inspector = inspect(engine)
    return {"words", "study_items"}.issubset(set(inspector.get_table_names()))


def init_db() -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value.replace(tzinfo=datetime.UTC) if value.tzinfo is None else value


def _to_word(row: Word) -> structured.Word:
    return structured.Word(
        id=row.id,
        tango=row.tango,
        yomi=row.yomi,
        pitch=row.pitch,
        definition=row.definition or "",
        pos=row.pos or "",
        category=row.category,
    )


def _to_study_item(row: StudyItem) -> structured.StudyItem:
    return structured.StudyItem(
        id=row.id,
        word=_to_word(row.word),
        due=_as_utc(row.due),
        interval=row.interval,
        easing_factor=row.easing_factor,
    )


# ----------------------------------------------------------------------
# Study source operations
# ----------------------------------------------------------------------
def fetch_due_study_items(username: Optional[str], category: str) -> List[structured.StudyItem]:
    """Study items in ``category`` that are due for ``username`` right now."""
    if not username:
        return []
    session: Session = get_session()
    now = datetime.datetime.now(datetime.UTC)
    rows = (
        session.query(StudyItem)
        .join(StudyItem.word)
        .filter(StudyItem.username == username, Word.category == category, StudyItem.due <= now)
        .all()
    )
    items = [_to_study_item(row) for row in rows]
    session.close()
    return items


def fetch_category_words(category: str) -> List[structured.Word]:
    session: Session = get_session()
    rows = session.query(Word).filter_by(category=category).order_by(Word.id.asc()).all()
    words = [_to_word(row) for row in rows]
    session.close()
    return words


def create_study_items(username: str, word_ids: Sequence[int], due: datetime.datetime) -> List[structured.StudyItem]:
    """Register words with a learner. Words the learner already studies are skipped.

    Returns only the newly created items.
    """
    session: Session = get_session()
    existing = {
        word_id for (word_id,) in
        session.query(StudyItem.word_id).filter(StudyItem.username == username, StudyItem.word_id.in_(list(word_ids)))
    }
    created: List[StudyItem] = []
    for word_id in dict.fromkeys(word_ids):
        if word_id in existing:
            continue
        if session.get(Word, word_id) is None:
            session.close()
            raise LookupError(f"Word {word_id} does not exist")
        item = StudyItem(username=username, word_id=word_id, due=due,
                         interval=1, easing_factor=DEFAULT_EASING_FACTOR)
        session.add(item)
        created.append(item)
    session.commit()
    items = [_to_study_item(item) for item in created]
    session.close()
    if DEBUG_MODE:
        print(f"✅ Created {len(items)} study items for {username} ({len(existing)} already present)")
    return items


def update_study_item(username: str, item_id: int, due: datetime.datetime, interval: float) -> bool:
    """Persist a new schedule for a study item."""
    session: Session = get_session()
    item: Optional[StudyItem] = session.get(StudyItem, item_id)
    if item is None or item.username != username:
        session.close()
        raise LookupError(f"Study item {item_id} not found for {username}")
    item.due = due
    item.interval = interval
    session.commit()
    session.close()
    return True


# ----------------------------------------------------------------------
# Word lists
# ----------------------------------------------------------------------
def list_categories() -> List[Dict[str, Any]]:
    """Categories with their word counts, sorted by name."""
    session: Session = get_session()
    rows = (
        session.query(Word.category, func.count(Word.id))
        .group_by(Word.category)
        .order_by(Word.category.asc())
        .all()
    )
    session.close()
    return [{"category": category, "words": count} for category, count in rows]


def get_category_progress(username: str, category: str) -> Dict[str, int]:
    """How much of a category a learner has registered and how much is due now."""
    session: Session = get_session()
    now = datetime.datetime.now(datetime.UTC)
    total = session.query(Word).filter_by(category=category).count()
    base = (
        session.query(StudyItem)
        .join(StudyItem.word)
        .filter(StudyItem.username == username, Word.category == category)
    )
    registered = base.count()
    due_now = base.filter(StudyItem.due <= now).count()
    session.close()
    return {"total": total, "registered": registered, "due_now": due_now}


def import_words_csv(csv_path: str) -> int:
    """Import a word list (tango, yomi, pitch, definition, pos, category). Returns count of new rows."""
    import csv
    session: Session = get_session()
    imported = 0
    with open(csv_path, "r", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        for row in reader:
            tango = row["tango"].strip()
            yomi = row["yomi"].strip()
            category = row["category"].strip()
            if session.query(Word).filter_by(tango=tango, yomi=yomi, category=category).first():
                continue
            # Validate through the dataclass before storing
            structured.Word(id=0, tango=tango, yomi=yomi, pitch=int(row["pitch"]), category=category)
            session.add(Word(
                tango=tango,
                yomi=yomi,
                pitch=int(row["pitch"]),
                definition=row.get("definition", ""),
                pos=row.get("pos", ""),
                category=category,
            ))
            imported += 1
    session.commit()
    session.close()
    print(f"✅ Imported {imported} words")
    return imported
