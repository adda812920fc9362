"""
Tests for the handle_db_error context manager.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from nclex_cat.core.cat.errors import ConcurrentModification, ItemBankUnavailable
from nclex_cat.core.db_error_handling import handle_db_error


def create_mock_db():
    """Create a MagicMock that passes isinstance(mock, Session) check."""
    return MagicMock(spec=Session)


class TestHandleDbError:
    def test_success_case_no_exception(self):
        db = create_mock_db()
        result = []

        with handle_db_error(db, "load exam session"):
            result.append("executed")

        assert result == ["executed"]
        db.rollback.assert_not_called()

    def test_sqlalchemy_error_becomes_item_bank_unavailable(self):
        db = create_mock_db()
        original = SQLAlchemyError("connection reset")

        with pytest.raises(ItemBankUnavailable) as exc_info:
            with handle_db_error(db, "load eligible items"):
                raise original

        db.rollback.assert_called_once()
        assert exc_info.value.message == "Failed to load eligible items"
        assert exc_info.value.original_error is original

    def test_operational_error_is_wrapped(self):
        db = create_mock_db()
        with pytest.raises(ItemBankUnavailable):
            with handle_db_error(db, "save exam session"):
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
        db.rollback.assert_called_once()

    def test_engine_errors_roll_back_and_propagate(self):
        db = create_mock_db()
        with pytest.raises(ConcurrentModification):
            with handle_db_error(db, "save exam session"):
                raise ConcurrentModification("lost the turn")
        db.rollback.assert_called_once()

    def test_other_exceptions_pass_through(self):
        db = create_mock_db()
        with pytest.raises(KeyError):
            with handle_db_error(db, "load item"):
                raise KeyError("missing")
        db.rollback.assert_not_called()
