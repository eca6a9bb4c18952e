"""Tests for SqlRepository / AsyncSqlRepository: interaction with a mocked
unit of work, database context and entity set.

These pin down what reaches the collaborators: invalid input must fail
before any of them is touched, and persistence errors must surface as-is.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from src.domain.exceptions import ValidationError
from src.infrastructure.persistence import AsyncSqlRepository, SqlRepository
from tests.models import User


def _mock_uow(saved=1, found=None):
    entity_set = MagicMock()
    entity_set.find.return_value = found
    context = MagicMock()
    context.save_changes.return_value = saved
    context.set.return_value = entity_set
    uow = MagicMock()
    uow.get_db_context.return_value = context
    return uow, context, entity_set


def _mock_async_uow(saved=1, found=None):
    entity_set = MagicMock()
    entity_set.add_range = AsyncMock()
    entity_set.remove_range = AsyncMock()
    entity_set.update = AsyncMock()
    entity_set.find = AsyncMock(return_value=found)
    context = MagicMock()
    context.save_changes = AsyncMock(return_value=saved)
    context.set.return_value = entity_set
    uow = MagicMock()
    uow.get_db_context.return_value = context
    return uow, context, entity_set


# --- construction ---

def test_context_is_requested_for_entity_and_key_type():
    uow, context, _ = _mock_uow()
    SqlRepository(uow, User)
    uow.get_db_context.assert_called_once_with(User, int)
    context.set.assert_called_once_with(User)


# --- blocking ---

def test_insert_stages_then_saves():
    uow, context, entity_set = _mock_uow(saved=2)
    a, b = User(email="a@example.com"), User(email="b@example.com")
    assert SqlRepository(uow, User).insert(a, b) == 2
    entity_set.add_range.assert_called_once_with((a, b))
    context.save_changes.assert_called_once_with()


def test_insert_clears_placeholder_key():
    uow, _, _ = _mock_uow()
    user = User(id=0, email="a@example.com")
    SqlRepository(uow, User).insert(user)
    assert user.id is None


def test_insert_keeps_explicit_key():
    uow, _, _ = _mock_uow()
    user = User(id=42, email="a@example.com")
    SqlRepository(uow, User).insert(user)
    assert user.id == 42


def test_insert_with_none_touches_nothing():
    uow, context, entity_set = _mock_uow()
    with pytest.raises(ValidationError):
        SqlRepository(uow, User).insert(User(email="a@example.com"), None)
    entity_set.add_range.assert_not_called()
    context.save_changes.assert_not_called()


@pytest.mark.parametrize("key", [0, -1, None, "1"])
def test_get_invalid_key_performs_no_lookup(key):
    uow, _, entity_set = _mock_uow()
    with pytest.raises(ValidationError):
        SqlRepository(uow, User).get(key)
    entity_set.find.assert_not_called()


@pytest.mark.parametrize("key", [0, -1, None])
def test_delete_by_invalid_key_performs_no_lookup(key):
    uow, context, entity_set = _mock_uow()
    with pytest.raises(ValidationError):
        SqlRepository(uow, User).delete_by_key(key)
    entity_set.find.assert_not_called()
    context.save_changes.assert_not_called()


def test_delete_by_missing_key_does_not_save():
    uow, context, entity_set = _mock_uow(found=None)
    assert SqlRepository(uow, User).delete_by_key(5) == 0
    entity_set.find.assert_called_once_with(5)
    entity_set.remove_range.assert_not_called()
    context.save_changes.assert_not_called()


def test_delete_by_key_removes_found_entity():
    found = User(id=5, email="a@example.com")
    uow, context, entity_set = _mock_uow(found=found)
    assert SqlRepository(uow, User).delete_by_key(5) == 1
    entity_set.remove_range.assert_called_once_with((found,))


def test_delete_where_materialises_tracked_matches():
    uow, _, entity_set = _mock_uow(saved=2)
    rows = [User(id=1, email="a"), User(id=2, email="b")]
    entity_set.query.return_value.where.return_value.all.return_value = rows
    predicate = User.email.like("%@example.com")
    assert SqlRepository(uow, User).delete_where(predicate) == 2
    entity_set.query.assert_called_once_with(tracked=True)
    entity_set.query.return_value.where.assert_called_once_with(predicate)
    entity_set.remove_range.assert_called_once_with(tuple(rows))


def test_update_marks_modified_then_saves():
    uow, context, entity_set = _mock_uow()
    user = User(id=1, email="a@example.com")
    assert SqlRepository(uow, User).update(user) == 1
    entity_set.update.assert_called_once_with(user)
    context.save_changes.assert_called_once_with()


def test_save_errors_propagate_unchanged():
    uow, context, _ = _mock_uow()
    error = OperationalError("INSERT", {}, Exception("connection lost"))
    context.save_changes.side_effect = error
    with pytest.raises(OperationalError) as info:
        SqlRepository(uow, User).insert(User(email="a@example.com"))
    assert info.value is error


def test_query_and_track_query_select_tracking_mode():
    uow, _, entity_set = _mock_uow()
    repo = SqlRepository(uow, User)
    repo.query("orders")
    entity_set.query.assert_called_with("orders", tracked=False)
    repo.track_query()
    entity_set.query.assert_called_with(tracked=True)


# --- async ---

async def test_async_insert_stages_then_saves():
    uow, context, entity_set = _mock_async_uow(saved=1)
    user = User(email="a@example.com")
    assert await AsyncSqlRepository(uow, User).insert(user) == 1
    entity_set.add_range.assert_awaited_once_with((user,))
    context.save_changes.assert_awaited_once_with()


async def test_async_get_invalid_key_performs_no_lookup():
    uow, _, entity_set = _mock_async_uow()
    with pytest.raises(ValidationError):
        await AsyncSqlRepository(uow, User).get(0)
    entity_set.find.assert_not_awaited()


async def test_async_delete_by_missing_key_does_not_save():
    uow, context, entity_set = _mock_async_uow(found=None)
    assert await AsyncSqlRepository(uow, User).delete_by_key(9) == 0
    entity_set.remove_range.assert_not_awaited()
    context.save_changes.assert_not_awaited()


async def test_async_delete_where_materialises_matches():
    uow, _, entity_set = _mock_async_uow(saved=1)
    row = User(id=3, email="c")
    entity_set.query.return_value.where.return_value.all = AsyncMock(return_value=[row])
    assert await AsyncSqlRepository(uow, User).delete_where(User.id == 3) == 1
    entity_set.remove_range.assert_awaited_once_with((row,))


async def test_async_update_rejects_none_before_io():
    uow, context, entity_set = _mock_async_uow()
    with pytest.raises(ValidationError):
        await AsyncSqlRepository(uow, User).update(None)
    entity_set.update.assert_not_awaited()
    context.save_changes.assert_not_awaited()


async def test_async_save_errors_propagate_unchanged():
    uow, context, _ = _mock_async_uow()
    context.save_changes.side_effect = OperationalError("DELETE", {}, Exception("timeout"))
    with pytest.raises(OperationalError):
        await AsyncSqlRepository(uow, User).delete(User(id=1, email="a"))
