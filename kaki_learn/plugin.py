from . import db
from .config import session_seed
from .structured import AnswerOption
from typing import Any, Optional

try:
    import llm  # type: ignore
    hookimpl = llm.hookimpl  # type: ignore
except ImportError:
    import pluggy
    hookimpl = pluggy.HookimplMarker("llm")


def _format_option(number: int, option: AnswerOption) -> str:
    return f"  {number}. {option.yomi} [{option.pitch}] {option.pattern}"


@hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:
    import click
    import random

    from .session import SourceFetchError, StudySession

    @cli.command("kaki-init-db")  # type: ignore[misc]
    def init_db() -> None:
        """Initialize the pitch-accent study database."""
        db.init_db()
        click.echo("Database initialized.")

    @cli.command("kaki-import-words")  # type: ignore[misc]
    @click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
    def import_words(csv_path: str) -> None:
        """Import a word list CSV (tango, yomi, pitch, definition, pos, category)."""
        db.init_db()
        count = db.import_words_csv(csv_path)
        click.echo(f"{count} new words imported.")

    @cli.command("kaki-categories")  # type: ignore[misc]
    def categories() -> None:
        """List word categories."""
        rows = db.list_categories()
        if not rows:
            click.echo("No categories yet. Import a word list with 'llm kaki-import-words'.")
            return
        for row in rows:
            click.echo(f"{row['category']} ({row['words']} words)")

    @cli.command("kaki-study")  # type: ignore[misc]
    @click.argument("category")
    @click.option("--user", default=None, help="Learner name; omit to study without saving progress")
    @click.option("--seed", type=int, default=None, help="Seed for word order and answer options")
    def study(category: str, user: Optional[str], seed: Optional[int]) -> None:
        """Study the pitch accent of the words in a category."""
        if seed is None:
            seed = session_seed()
        rng = random.Random(seed) if seed is not None else None
        session = StudySession(category, username=user, source=db, rng=rng)

        try:
            session.start()
            while not session.is_complete:
                word = session.current_word
                assert word is not None
                click.echo(f"\n{word.tango}  ({len(session.queue)} left after this)")
                for number, option in enumerate(session.answers, 1):
                    click.echo(_format_option(number, option))

                while True:
                    choice = click.prompt("Accent", type=str)
                    if choice.strip().isdigit() and session.select_answer(int(choice) - 1):
                        break
                    click.echo(f"Pick a number from 1 to {len(session.answers)}.")

                assert session.feedback is not None
                if session.feedback.correct:
                    click.echo("🎉 Correct!")
                else:
                    correct = next(o for o in session.answers if o.correct)
                    click.echo(f"❌ Too bad! It is {correct.pattern} [{correct.pitch}]. You will see it again.")
                if word.definition:
                    click.echo(f"   {word.pos}: {word.definition}" if word.pos else f"   {word.definition}")

                click.prompt("Press Enter to continue", default="", show_default=False)
                session.continue_to_next()
        except SourceFetchError as e:
            click.echo(f"⚠️  Could not load study data ({e.operation}): {e}")
            return

        if session.answered_count == 0:
            click.echo("🎉 Nothing to study here right now. Come back later!")
        else:
            click.echo(f"\n🎉 Finished! {session.correct_count} of {session.answered_count} answers correct.")
        if user:
            progress = db.get_category_progress(user, category)
            click.echo(
                f"📊 {category}: {progress['registered']} of {progress['total']} words registered, "
                f"{progress['due_now']} due now."
            )
