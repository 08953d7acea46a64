#!/usr/bin/env python3
"""
Kaki - Flask Web Application
JSON API for pitch-accent study sessions. Each browser session owns one
study session at a time; the page only renders what these endpoints return.
"""

import os
import random
import threading
import traceback
import uuid
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from flask import Flask, jsonify, request, session

from kaki_learn import db
from kaki_learn.config import DEBUG_MODE, MAX_STUDY_SESSIONS, session_seed
from kaki_learn.session import SourceFetchError, StudySession

# Check for debug mode
DEBUG = DEBUG_MODE

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "kaki-dev-secret")
app.config.setdefault("SESSION_SEED", session_seed())


class StudySessionStore:
    """Live study sessions keyed by the id stored in the browser session cookie.

    Finished and halted sessions are dropped as soon as their last state has
    been sent. Past ``max_sessions`` the least recently used one is abandoned.
    Each id has its own lock; the engine expects one caller at a time.
    """

    def __init__(self, max_sessions: int) -> None:
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, StudySession]" = OrderedDict()
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def values(self) -> List[StudySession]:
        with self._guard:
            return list(self._sessions.values())

    def clear(self) -> None:
        with self._guard:
            for study in self._sessions.values():
                study.abandon()
            self._sessions.clear()
            self._locks.clear()

    def lock(self, session_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(session_id, threading.Lock())

    def get(self, session_id: str) -> Optional[StudySession]:
        with self._guard:
            study = self._sessions.get(session_id)
            if study is not None:
                self._sessions.move_to_end(session_id)
            return study

    def put(self, session_id: str, study: StudySession) -> None:
        """Store ``study``, abandoning whatever the id held before."""
        with self._guard:
            previous = self._sessions.pop(session_id, None)
            if previous is not None:
                previous.abandon()
            self._sessions[session_id] = study
            while len(self._sessions) > self.max_sessions:
                old_id, old = self._sessions.popitem(last=False)
                old.abandon()
                self._locks.pop(old_id, None)
                if DEBUG:
                    print(f"🧹 Evicted study session {old_id}")

    def release(self, session_id: str, study: StudySession) -> None:
        """Forget ``study`` once it has finished or halted."""
        with self._guard:
            if self._sessions.get(session_id) is not study:
                return
            if study.is_complete or study.error is not None:
                del self._sessions[session_id]
                self._locks.pop(session_id, None)


study_sessions = StudySessionStore(MAX_STUDY_SESSIONS)


@app.before_request
def initialize_app() -> None:
    """Initialize the database if needed."""
    if not hasattr(app, '_database_initialized'):
        try:
            if not db.is_db_initialized():
                db.init_db()
                print("✅ Database initialized on startup")
        except Exception as e:
            print(f"❌ Database startup check failed: {str(e)}")
        setattr(app, "_database_initialized", True)


@app.before_request
def ensure_session_id() -> None:
    """Give every browser session an id for its study session."""
    if 'session_id' not in session:
        session['session_id'] = uuid.uuid4().hex


def _state_response(study: StudySession, status: str = 'success', message: Optional[str] = None) -> Any:
    """Render ``study`` and drop it from the store when it is over."""
    payload: Dict[str, Any] = {'status': status, 'session': study.to_dict()}
    if message is not None:
        payload['message'] = message
    if study.is_complete and study.username:
        payload['progress'] = db.get_category_progress(study.username, study.category)
    study_sessions.release(session['session_id'], study)
    return jsonify(payload)


def _no_session() -> Any:
    return jsonify({'status': 'no_session', 'message': 'No study session. Pick a category to start.'})


def _make_rng() -> Optional[random.Random]:
    seed = app.config.get('SESSION_SEED')
    return random.Random(seed) if seed is not None else None


def _with_current_session(action: Callable[[StudySession], Any]) -> Any:
    session_id = session['session_id']
    with study_sessions.lock(session_id):
        study = study_sessions.get(session_id)
        if study is None:
            return _no_session()
        return action(study)


@app.route('/api/categories')
def api_categories() -> Any:
    """List the categories that can be studied."""
    try:
        return jsonify({'status': 'success', 'categories': db.list_categories()})
    except Exception as e:
        if DEBUG:
            print(f"Error listing categories: {e}")
        return jsonify({'status': 'error', 'message': str(e)})


@app.route('/api/progress')
def api_progress() -> Any:
    """How much of a category a learner has registered and how much is due."""
    category = (request.args.get('category') or '').strip()
    username = (request.args.get('username') or '').strip()
    if not category or not username:
        return jsonify({'status': 'error', 'message': 'category and username are required'})
    try:
        return jsonify({'status': 'success', 'progress': db.get_category_progress(username, category)})
    except Exception as e:
        if DEBUG:
            print(f"Error reading progress: {e}")
        return jsonify({'status': 'error', 'message': str(e)})


@app.route('/api/session/start', methods=['POST'])
def api_start_session() -> Any:
    """Start a study session on a category, replacing any session in progress."""
    data = request.get_json(silent=True) or {}
    category = (data.get('category') or '').strip()
    if not category:
        return jsonify({'status': 'error', 'message': 'A category is required'})
    username = (data.get('username') or '').strip() or None

    session_id = session['session_id']
    with study_sessions.lock(session_id):
        study = StudySession(category, username=username, source=db, rng=_make_rng())
        study_sessions.put(session_id, study)
        try:
            study.start()
        except SourceFetchError as e:
            if DEBUG:
                print(f"Error starting session: {e}")
                traceback.print_exc()
            return _state_response(study, status='error', message=str(e))
        return _state_response(study)


@app.route('/api/session')
def api_session_state() -> Any:
    """Current state of the study session."""
    return _with_current_session(_state_response)


@app.route('/api/session/answer', methods=['POST'])
def api_answer() -> Any:
    """Select one of the offered accent patterns."""
    data = request.get_json(silent=True) or {}

    def answer(study: StudySession) -> Any:
        try:
            index = int(data['index'])
        except (KeyError, TypeError, ValueError):
            # Not a selection; leave the question as it is
            return _state_response(study)
        try:
            study.select_answer(index)
        except SourceFetchError as e:
            if DEBUG:
                print(f"Error saving answer: {e}")
            return _state_response(study, status='error', message=str(e))
        return _state_response(study)

    return _with_current_session(answer)


@app.route('/api/session/continue', methods=['POST'])
def api_continue() -> Any:
    """Move on to the next word."""
    def advance(study: StudySession) -> Any:
        study.continue_to_next()
        return _state_response(study)

    return _with_current_session(advance)


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description='Kaki pitch-accent study server')
    parser.add_argument('--host', default='127.0.0.1', help='Host IP to bind to (default: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=5000, help='Port to bind to (default: 5000)')
    parser.add_argument('--seed', type=int, help='Seed for word order and answer options')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    args = parser.parse_args()

    if args.debug:
        DEBUG = True
    if args.seed is not None:
        app.config['SESSION_SEED'] = args.seed

    # Initialize database
    try:
        if not db.is_db_initialized():
            db.init_db()
            print("✅ Database initialized")
    except Exception as e:
        print(f"❌ Database initialization failed: {str(e)}")

    print(f"🚀 Starting server on http://{args.host}:{args.port}")
    app.run(debug=DEBUG, host=args.host, port=args.port)
