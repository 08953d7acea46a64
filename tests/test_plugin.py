"""Tests for the llm CLI commands."""
import csv

import click
import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine

from kaki_learn import db, plugin


@pytest.fixture(autouse=True)
def setup_db(tmp_path):
    test_db = str(tmp_path / "cli.db")
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = db.sessionmaker(bind=db.engine, expire_on_commit=False)
    yield


@pytest.fixture
def cli():
    @click.group()
    def group() -> None:
        pass

    plugin.register_commands(group)
    return group


@pytest.fixture
def words_csv(tmp_path):
    csv_path = str(tmp_path / "words.csv")
    with open(csv_path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["tango", "yomi", "pitch", "definition", "pos", "category"])
        writer.writerow(["箸", "はし", 1, "chopsticks", "noun", "food"])
        writer.writerow(["林檎", "りんご", 0, "apple", "noun", "food"])
    return csv_path


def test_init_db(cli):
    result = CliRunner().invoke(cli, ["kaki-init-db"])
    assert result.exit_code == 0
    assert "Database initialized." in result.output
    assert db.is_db_initialized()


def test_import_and_list_categories(cli, words_csv):
    runner = CliRunner()
    result = runner.invoke(cli, ["kaki-import-words", words_csv])
    assert result.exit_code == 0
    assert "2 new words imported." in result.output

    result = runner.invoke(cli, ["kaki-categories"])
    assert result.exit_code == 0
    assert "food (2 words)" in result.output


def test_categories_empty(cli):
    db.init_db()
    result = CliRunner().invoke(cli, ["kaki-categories"])
    assert "No categories yet" in result.output


def test_study_session(cli, words_csv):
    runner = CliRunner()
    runner.invoke(cli, ["kaki-import-words", words_csv])
    # Always pick the first option; missed words come back until answered
    answers = "9\nabc\n1\n\n" + "1\n\n" * 80
    result = runner.invoke(cli, ["kaki-study", "food", "--seed", "4"], input=answers)
    assert result.exit_code == 0, result.output
    assert "Pick a number from 1 to" in result.output
    assert "Finished!" in result.output
    assert "2 of" in result.output
    assert "registered" not in result.output


def test_study_session_for_learner_saves_progress(cli, words_csv):
    runner = CliRunner()
    runner.invoke(cli, ["kaki-import-words", words_csv])
    result = runner.invoke(cli, ["kaki-study", "food", "--user", "hanako", "--seed", "4"], input="1\n\n" * 80)
    assert result.exit_code == 0, result.output
    progress = db.get_category_progress("hanako", "food")
    assert progress == {"total": 2, "registered": 2, "due_now": 0}

    assert "food: 2 of 2 words registered, 0 due now." in result.output

    result = runner.invoke(cli, ["kaki-study", "food", "--user", "hanako"])
    assert "Nothing to study here right now" in result.output
    assert "food: 2 of 2 words registered, 0 due now." in result.output


def test_study_reports_data_errors(cli):
    # Tables were never created
    result = CliRunner().invoke(cli, ["kaki-study", "food"])
    assert result.exit_code == 0
    assert "Could not load study data (fetch_category_words)" in result.output
