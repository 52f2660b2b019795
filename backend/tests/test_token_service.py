import threading
from datetime import timedelta

import pytest

from authgate.config import load_settings
from authgate.core.database import Base, build_engine, build_session_factory
from authgate.core.exceptions import AuthenticationError, StorageError
from authgate.core.security import RefreshTokenCodec
from authgate.services.credential_store import InMemoryCredentialStore, SqlCredentialStore
from authgate.services.token_service import TokenService


class FlakyStore(InMemoryCredentialStore):
    def __init__(self):
        super().__init__()
        self.fail_creates = False

    def create(self, record):
        if self.fail_creates:
            raise StorageError()
        super().create(record)


def test_issue_pair_access_token_verifies_to_subject(token_service):
    pair = token_service.issue_token_pair("user-1")
    assert token_service.access_codec.verify(pair.access_token) == "user-1"
    assert token_service.verify_access_token(pair.access_token) == "user-1"


def test_issue_pair_persists_refresh_identifier(token_service):
    pair = token_service.issue_token_pair("user-1")
    claims = token_service.refresh_codec.verify(pair.refresh_token)
    record = token_service.store.find(claims.token_id)
    assert record is not None
    assert record.subject == "user-1"


def test_issue_pair_returns_nothing_when_store_fails(access_codec, refresh_codec):
    store = FlakyStore()
    store.fail_creates = True
    service = TokenService(access_codec, refresh_codec, store)
    with pytest.raises(StorageError):
        service.issue_token_pair("user-1")
    assert len(store) == 0


def test_verify_refresh_token_is_read_only(token_service):
    pair = token_service.issue_token_pair("user-1")
    assert token_service.verify_refresh_token(pair.refresh_token) == "user-1"
    assert token_service.verify_refresh_token(pair.refresh_token) == "user-1"
    # Still rotatable after verification.
    token_service.rotate_refresh_token(pair.refresh_token)


def test_rotation_is_one_shot(token_service):
    pair = token_service.issue_token_pair("user-1")

    rotated = token_service.rotate_refresh_token(pair.refresh_token)
    assert rotated.refresh_token != pair.refresh_token
    assert token_service.access_codec.verify(rotated.access_token) == "user-1"

    with pytest.raises(AuthenticationError):
        token_service.rotate_refresh_token(pair.refresh_token)
    with pytest.raises(AuthenticationError):
        token_service.verify_refresh_token(pair.refresh_token)

    # The replacement is itself usable exactly once.
    token_service.rotate_refresh_token(rotated.refresh_token)
    with pytest.raises(AuthenticationError):
        token_service.rotate_refresh_token(rotated.refresh_token)


def test_rotation_rejects_forged_and_garbage_tokens(token_service):
    other = RefreshTokenCodec("some-other-secret", timedelta(days=1))
    forged = other.issue("user-1").token
    for token in (forged, "garbage", ""):
        with pytest.raises(AuthenticationError) as exc_info:
            token_service.rotate_refresh_token(token)
        assert exc_info.value.message == "Unauthorized"


def test_rotation_rejects_expired_token_even_if_record_exists(access_codec, store):
    expired_codec = RefreshTokenCodec("refresh-secret-for-tests", timedelta(seconds=-60))
    service = TokenService(access_codec, expired_codec, store)
    pair = service.issue_token_pair("user-1")
    with pytest.raises(AuthenticationError):
        service.rotate_refresh_token(pair.refresh_token)
    claims = expired_codec.decode_unverified(pair.refresh_token)
    assert store.find(claims.token_id) is not None


def test_revoke_blocks_rotation(token_service):
    pair = token_service.issue_token_pair("user-1")
    assert token_service.revoke_refresh_token(pair.refresh_token) is True
    with pytest.raises(AuthenticationError):
        token_service.rotate_refresh_token(pair.refresh_token)


def test_revoke_is_idempotent(token_service):
    pair = token_service.issue_token_pair("user-1")
    assert token_service.revoke_refresh_token(pair.refresh_token) is True
    assert token_service.revoke_refresh_token(pair.refresh_token) is False
    assert token_service.revoke_refresh_token("not-a-token") is False


def test_revoke_cleans_up_expired_token(access_codec, store):
    expired_codec = RefreshTokenCodec("refresh-secret-for-tests", timedelta(seconds=-60))
    service = TokenService(access_codec, expired_codec, store)
    pair = service.issue_token_pair("user-1")
    assert service.revoke_refresh_token(pair.refresh_token) is True
    claims = expired_codec.decode_unverified(pair.refresh_token)
    assert store.find(claims.token_id) is None


def test_revoke_all_for_subject(token_service):
    first = token_service.issue_token_pair("user-1")
    second = token_service.issue_token_pair("user-1")
    bystander = token_service.issue_token_pair("user-2")

    assert token_service.revoke_all_for_subject("user-1") == 2

    for pair in (first, second):
        with pytest.raises(AuthenticationError):
            token_service.rotate_refresh_token(pair.refresh_token)
    token_service.rotate_refresh_token(bystander.refresh_token)


def test_failed_reissue_leaves_session_logged_out(access_codec, refresh_codec):
    store = FlakyStore()
    service = TokenService(access_codec, refresh_codec, store)
    pair = service.issue_token_pair("user-1")

    store.fail_creates = True
    with pytest.raises(StorageError):
        service.rotate_refresh_token(pair.refresh_token)

    store.fail_creates = False
    with pytest.raises(AuthenticationError):
        service.rotate_refresh_token(pair.refresh_token)


def _race(service, token, contenders=8):
    barrier = threading.Barrier(contenders)
    outcomes = []
    outcomes_lock = threading.Lock()

    def attempt():
        barrier.wait()
        try:
            service.rotate_refresh_token(token)
            result = "ok"
        except AuthenticationError:
            result = "unauthorized"
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(contenders)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return outcomes


def test_concurrent_rotation_succeeds_once_in_memory(access_codec, refresh_codec):
    service = TokenService(access_codec, refresh_codec, InMemoryCredentialStore())
    pair = service.issue_token_pair("user-1")

    outcomes = _race(service, pair.refresh_token)

    assert outcomes.count("ok") == 1
    assert outcomes.count("unauthorized") == 7


def test_concurrent_rotation_succeeds_once_sql(tmp_path, access_codec, refresh_codec):
    settings = load_settings(
        _env_file=None,
        ACCESS_TOKEN_SECRET="a-secret",
        REFRESH_TOKEN_SECRET="r-secret",
        DATABASE_URL=f"sqlite:///{tmp_path / 'race.db'}",
        STORE_TIMEOUT_SECONDS=10,
    )
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    service = TokenService(
        access_codec, refresh_codec, SqlCredentialStore(build_session_factory(engine))
    )
    pair = service.issue_token_pair("user-1")

    outcomes = _race(service, pair.refresh_token)

    assert outcomes.count("ok") == 1
    assert outcomes.count("unauthorized") == 7
    engine.dispose()
