import random

import pytest

from gift_exchange import commands, create_app
from gift_exchange.extensions import db

ORGANIZER_CODE = "organizer-code"


def member_code(name: str) -> str:
    return f"code-{name.lower()}"


@pytest.fixture
def app(tmp_path):
    # a file database so worker threads share it
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "WTF_CSRF_ENABLED": False,
        "LOG_LEVEL": "DEBUG",
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(tmp_path):
    # no outer app context: each request gets its own, so Flask-Login's
    # per-request user cache in `g` is not shared between requests
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "WTF_CSRF_ENABLED": False,
        "LOG_LEVEL": "DEBUG",
    })
    with app.app_context():
        db.create_all()
    yield app.test_client()
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_group(app):
    def make(capacity=10, **kwargs):
        kwargs.setdefault("name", "Office Party")
        kwargs.setdefault("creator_name", "Olive")
        result = commands.create_group(capacity=capacity, creator_code=ORGANIZER_CODE, **kwargs)
        assert result.success, result.error
        return result.data
    return make


@pytest.fixture
def join(app):
    def join_as(group_id, name, **kwargs):
        result = commands.join_group(group_id, member_code(name), name, **kwargs)
        assert result.success, result.error
        return result.data
    return join_as


@pytest.fixture
def trio(make_group, join):
    """An open group with Alice, Bob and Carol."""
    group_id = make_group()
    for name in ("Alice", "Bob", "Carol"):
        join(group_id, name)
    return group_id


@pytest.fixture
def frozen_trio(trio, rng):
    assert commands.assign_santa(trio, ORGANIZER_CODE, rng).success
    return trio
