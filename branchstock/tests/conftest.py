import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from branchstock.app.db.base import Base
from branchstock.app.db.models import models_v1  # noqa: F401  (registers the tables)
from branchstock.services import items, ledger


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    One SQLite file per test.

    A file (not :memory:) so that two sessions really hold two connections
    and can race each other on the same rows.
    """
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'branchstock.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def stock_item(db_session):
    """
    Stock an item at a branch and book its opening quantity as a receipt,
    so the ledger explains every unit on hand.
    """

    def _make(branch_id, item_id, name, on_hand=0, **fields):
        items.create_item(db_session, branch_id=branch_id, item_id=item_id, name=name, **fields)
        if on_hand:
            ledger.record_stock_receipt(
                db_session,
                item_id=item_id,
                branch_id=branch_id,
                quantity=on_hand,
                recorded_by="seed",
                notes="opening stock",
            )
        return items.get_item(db_session, branch_id, item_id)

    return _make


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient

    from branchstock.app.api.deps import get_db
    from branchstock.app.main import app

    def _get_db():
        db = session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
