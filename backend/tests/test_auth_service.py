import jwt
import pytest

from scoreboard import services


def test_register_hashes_password_and_sets_role(session):
    user = services.AuthService(session).register("  carol ", "secret")
    assert user.username == "carol"
    assert user.password_hash != "secret"
    assert user.role == "USER"


def test_register_rejects_duplicates(session, alice):
    with pytest.raises(ValueError, match="Username already exists"):
        services.AuthService(session).register("alice", "again")


@pytest.mark.parametrize("username, password", [("", "pw"), ("dave", "")])
def test_register_requires_credentials(session, username, password):
    with pytest.raises(ValueError):
        services.AuthService(session).register(username, password)


def test_authenticate_returns_token_with_user_claims(session, alice):
    token = services.AuthService(session).authenticate("alice", "wonderland")
    payload = jwt.decode(token, services.JWT_SECRET, algorithms=[services.JWT_ALGORITHM])
    assert payload["user_id"] == alice.id
    assert payload["username"] == "alice"
    assert "exp" in payload


def test_authenticate_failures_return_none(session, alice):
    auth = services.AuthService(session)
    assert auth.authenticate("alice", "wrong") is None
    assert auth.authenticate("nobody", "wonderland") is None
