"""Tests for EntityQuery builder immutability, terminals and tracking modes."""

import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import Select

from src.infrastructure.persistence import EntityQuery
from tests.models import User


@pytest.fixture
def users(uow):
    entity_set = uow.get_db_context(User).set(User)
    entity_set.add_range(
        [
            User(email="a@example.com", name="Ann"),
            User(email="b@example.com", name="Bob"),
            User(email="c@example.com", name="Cy"),
        ]
    )
    uow.session.flush()
    return entity_set


def test_builder_methods_return_new_queries(users):
    base = users.query()
    filtered = base.where(User.name == "Ann")
    assert filtered is not base
    assert base.count() == 3
    assert filtered.count() == 1


def test_statement_is_select_over_entity(users):
    assert isinstance(users.query().statement, Select)


def test_order_by_limit_offset(users):
    names = [u.name for u in users.query().order_by(User.name.desc()).offset(1).limit(1).all()]
    assert names == ["Bob"]


def test_first_returns_none_when_empty(users):
    assert users.query().where(User.name == "nobody").first() is None


def test_one_or_none(users):
    assert users.query().where(User.name == "Cy").one_or_none().email == "c@example.com"


def test_exists(users):
    assert users.query().where(User.name == "Bob").exists() is True
    assert users.query().where(User.name == "Zed").exists() is False


def test_count_ignores_ordering(users):
    assert users.query().order_by(User.name).count() == 3


def test_iteration_yields_all_rows(users):
    assert len(list(users.query())) == 3


def test_untracked_rows_are_detached_copies(users, uow):
    tracked = users.query(tracked=True).where(User.name == "Ann").one_or_none()
    snapshot = users.query(tracked=False).where(User.name == "Ann").one_or_none()
    assert snapshot is not tracked
    assert sa_inspect(snapshot).detached
    assert snapshot.email == tracked.email


def test_untracked_query_sees_pending_changes(users, uow):
    uow.session.add(User(email="d@example.com", name="Dee"))
    assert users.query(tracked=False).where(User.name == "Dee").exists()
    assert users.query(tracked=False).where(User.name == "Dee").first() is not None


def test_tracked_rows_are_session_instances(users, uow):
    row = users.query(tracked=True).first()
    assert row in uow.session


def test_repr_names_entity_and_mode(users):
    assert repr(users.query(tracked=False)) == "<EntityQuery User (untracked)>"


def test_query_type(users):
    assert isinstance(users.query(), EntityQuery)
