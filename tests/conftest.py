import os

os.environ["MASTER_USER"] = "master@lma.test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("REDIS_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db, init_db
from app.main import app
from app.models import Branch, Case, Item, UserPermission
from app.services.tax_engine import recompute
from app.utils.security import create_access_token

MASTER = "master@lma.test"


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Autenticação ---


def auth_headers(email: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': email})}"}


@pytest.fixture
def master_headers() -> dict:
    return auth_headers(MASTER)


# --- Fábricas ---


def make_branch(db, name: str = "Santos") -> Branch:
    branch = Branch(name=name, created_by=MASTER)
    db.add(branch)
    db.commit()
    db.refresh(branch)
    return branch


def make_case(db, branch: Branch, number: str = "FDA-2025-001") -> Case:
    case = Case(number=number, branch_id=branch.id, is_open=True)
    db.add(case)
    db.commit()
    db.refresh(case)
    return case


def make_item(db, case: Case, status: str = "pending", **fields) -> Item:
    values = {"service": "Praticagem", "dueDate": "2025-03-20", "grossValue": 1000}
    values.update(fields)
    item = Item(
        case_id=case.id,
        status=status,
        data=recompute(values, "grossValue", values["grossValue"]).to_json(),
        invoice_attachments=[],
        boleto_attachments=[],
        receipt_attachments=[],
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def grant(db, email: str, modules, branches) -> UserPermission:
    record = UserPermission(email=email, modules=list(modules), branches=list(branches))
    db.add(record)
    db.commit()
    return record
