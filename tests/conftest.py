import json

import pytest
from flask_jwt_extended import create_access_token

from config import TestConfig
from quiztime import create_app
from quiztime.models import db, User

LEVEL_PREFIX = {'easy': 'e', 'medium': 'm', 'hard': 'h'}


def make_question(qid, level):
    return {
        "id": qid,
        "question": f"{level.title()} question {qid}?",
        "options": [f"{qid}-a", f"{qid}-b", f"{qid}-c", f"{qid}-d"],
        "answer": f"{qid}-c",
    }


def write_catalog(data_dir, per_level=6):
    for level, prefix in LEVEL_PREFIX.items():
        rows = [make_question(f"{prefix}{i}", level) for i in range(1, per_level + 1)]
        (data_dir / f"{level}.json").write_text(json.dumps(rows))


@pytest.fixture
def data_dir(tmp_path):
    directory = tmp_path / "data"
    directory.mkdir()
    write_catalog(directory)
    return directory


@pytest.fixture
def app(tmp_path, data_dir):

    class TestingConfig(TestConfig):
        # A file database so worker threads get their own connections
        DATABASE_URL = f"sqlite:///{tmp_path / 'quiztime-test.db'}"
        DATA_DIR = str(data_dir)

    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seed_questions(app):
    from quiztime.utils.importer import import_questions

    def _seed():
        with app.app_context():
            return import_questions()
    return _seed


@pytest.fixture
def make_user(app):
    """Create a registered user and return (user_id, auth headers)."""

    def _make(username="alice"):
        with app.app_context():
            user = User(username=username,
                        email=f"{username}@example.com",
                        password="secret123")
            db.session.add(user)
            db.session.commit()
            token = create_access_token(identity=user.get_id(),
                                        additional_claims={"username": username})
            return user.user_id, {"Authorization": f"Bearer {token}"}
    return _make
