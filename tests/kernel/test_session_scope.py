"""
session_scope(): one business operation, one transaction.

These tests commit for real, so each removes the counter rows it created.
"""

from uuid import uuid4

import pytest
from sqlalchemy import delete

from bizbooks_kernel.db.engine import is_postgres, session_scope
from bizbooks_kernel.models.sequence import SequenceCounter
from bizbooks_kernel.services.sequence_service import SequenceService


@pytest.fixture
def scoped_org(db_tables):
    org_id = uuid4()
    yield org_id
    with session_scope() as session:
        session.execute(delete(SequenceCounter).where(SequenceCounter.organization_id == org_id))


def test_commits_on_normal_exit(scoped_org):
    with session_scope() as session:
        SequenceService(session).next_value(scoped_org, "scope")

    with session_scope() as session:
        assert SequenceService(session).current_value(scoped_org, "scope") == 1


def test_rolls_back_on_exception(scoped_org, captured_logs):
    with pytest.raises(RuntimeError):
        with session_scope() as session:
            SequenceService(session).next_value(scoped_org, "scope")
            raise RuntimeError("posting failed half way")

    with session_scope() as session:
        assert SequenceService(session).current_value(scoped_org, "scope") is None
    assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())


def test_is_postgres_matches_engine(db_engine):
    assert is_postgres() == (db_engine.dialect.name == "postgresql")
