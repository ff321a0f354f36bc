import os
import shutil
import tempfile
import itertools
import time

# Configure before any project module reads the environment
_TMP_DIR = tempfile.mkdtemp(prefix="portal-tests-")
os.environ["APP_ENV"] = "local"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'portal.db')}"
os.environ["IDENTITY_JWT_SECRET"] = "test-identity-secret"
os.environ["IDENTITY_JWT_ALGORITHM"] = "HS256"
os.environ["IDENTITY_API_KEY"] = "test-api-key"
os.environ["STORAGE_ROOT"] = os.path.join(_TMP_DIR, "storage")
os.environ["BOOTSTRAP_ADMIN_EMAILS"] = "chief.editor@example.org"
os.environ.pop("IDENTITY_JWKS_URL", None)
os.environ.pop("IDENTITY_AUDIENCE", None)
os.environ.pop("IDENTITY_ISSUER", None)

import pytest
from jose import jwt

from clients.identity_client import IdentityClaims
from clients.storage_client import LocalObjectStorage
from database.db import Base, SessionLocal, engine, init_db
from database.models.user_model import UserProfile, UserRole

TEST_JWT_SECRET = os.environ["IDENTITY_JWT_SECRET"]
_PHONE_SEQUENCE = itertools.count(1000000)


def make_id_token(uid, email=None, name=None, picture=None, expires_in=3600, secret=TEST_JWT_SECRET):
    now = int(time.time())
    claims = {"sub": uid, "iat": now, "exp": now + expires_in}
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    if picture:
        claims["picture"] = picture
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture(autouse=True)
def fresh_schema():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(root=str(tmp_path / "objects"), public_base_url="/files")


@pytest.fixture
def claims():
    return IdentityClaims(uid="uid-ada", email="ada@example.org", display_name="Ada Lovelace")


def add_profile(db, uid, email, complete=True, is_admin=False, **overrides):
    fields = dict(
        id=uid,
        email=email,
        display_name=overrides.pop("display_name", "Test User"),
        is_admin=is_admin,
    )
    if complete:
        fields.update(
            username=overrides.pop("username", f"user_{uid.replace('-', '_')}"[:20]),
            role=overrides.pop("role", UserRole.AUTHOR),
            phone_number=overrides.pop("phone_number", f"+1 555 {next(_PHONE_SEQUENCE):07d}"),
        )
    fields.update(overrides)
    profile = UserProfile(**fields)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TMP_DIR, ignore_errors=True)
