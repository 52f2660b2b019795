from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from authgate.config import load_settings
from authgate.core.database import Base
from authgate.core.security import AccessTokenCodec, RefreshTokenCodec
from authgate.services.credential_store import InMemoryCredentialStore, SqlCredentialStore
from authgate.services.token_service import TokenService

ACCESS_SECRET = "access-secret-for-tests"
REFRESH_SECRET = "refresh-secret-for-tests"


def make_settings(**overrides):
    values = {
        "_env_file": None,
        "ACCESS_TOKEN_SECRET": ACCESS_SECRET,
        "REFRESH_TOKEN_SECRET": REFRESH_SECRET,
        "ACCESS_TOKEN_LIFETIME": "5m",
        "REFRESH_TOKEN_LIFETIME": "1d",
        "DATABASE_URL": "sqlite://",
        "BCRYPT_ROUNDS": 4,
        "RUN_EMBEDDED_SWEEPER": False,
        "DB_INIT_MODE": "create_all",
        "ENVIRONMENT": "development",
        "LOG_FILE": "",
    }
    values.update(overrides)
    return load_settings(**values)


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryCredentialStore()
    return SqlCredentialStore(make_session_factory())


@pytest.fixture
def access_codec():
    return AccessTokenCodec(ACCESS_SECRET, timedelta(minutes=5))


@pytest.fixture
def refresh_codec():
    return RefreshTokenCodec(REFRESH_SECRET, timedelta(days=1))


@pytest.fixture
def token_service(access_codec, refresh_codec, store):
    return TokenService(access_codec, refresh_codec, store)


@pytest.fixture
def settings_factory():
    return make_settings
