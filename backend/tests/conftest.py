import os

# Must be set before ngnasoro.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("MOBILE_MONEY_WEBHOOK_SECRET", None)

import uuid  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ngnasoro.core.permissions import Role  # noqa: E402
from ngnasoro.core.security import create_access_token  # noqa: E402
from ngnasoro.database_init import create_tables  # noqa: E402
from ngnasoro.deps import get_db  # noqa: E402
from ngnasoro.main import app  # noqa: E402
from ngnasoro.models.user import User  # noqa: E402
from ngnasoro.services import clients  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def api(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(role=Role.CLIENT, sfd=None, email=None, **fields):
        role = Role(role)
        user = User(
            email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@example.com",
            role=role.value,
            sfd_id=sfd.id if sfd else None,
            is_active=True,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def headers_for():
    def _headers(user):
        token = create_access_token({"sub": str(user.id), "role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return _headers


# --- Institutions and people ---

@pytest.fixture
def sfd(db):
    return clients.create_sfd(db, "Kafo Jiginew", "KAFO", region="Sikasso")


@pytest.fixture
def other_sfd(db):
    return clients.create_sfd(db, "Nyesigiso", "NYESI", region="Bamako")


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN, full_name="MEREF Admin")


@pytest.fixture
def sfd_admin(make_user, sfd):
    return make_user(Role.SFD_ADMIN, sfd=sfd, full_name="Moussa Keita")


@pytest.fixture
def cashier(make_user, sfd):
    return make_user(Role.CASHIER, sfd=sfd, full_name="Fatoumata Diarra")


@pytest.fixture
def other_cashier(make_user, other_sfd):
    return make_user(Role.CASHIER, sfd=other_sfd)


@pytest.fixture
def client_user(make_user, sfd):
    return make_user(Role.CLIENT, sfd=sfd, full_name="Aminata Traoré", phone="+22370000001")


@pytest.fixture
def client_file(db, sfd, sfd_admin, client_user):
    """A validated client of ``sfd`` linked to ``client_user``, with an empty account."""
    record = clients.create_client(
        db,
        sfd_id=sfd.id,
        full_name="Aminata Traoré",
        phone="+22370000001",
        user_id=client_user.id,
        performed_by=sfd_admin.id,
    )
    return clients.validate_client(db, record.id, performed_by=sfd_admin.id)


@pytest.fixture
def unlinked_client(db, sfd, sfd_admin):
    return clients.create_client(db, sfd_id=sfd.id, full_name="Seydou Coulibaly", performed_by=sfd_admin.id)
