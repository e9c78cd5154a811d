from __future__ import annotations

from datetime import timedelta

from trpi.domain.auth.schemas import MagicLinkRequest
from trpi.domain.auth.service import MagicLinkService
from trpi.models import AuthSession, MagicLink, TherapistProfile, User
from trpi.security_utils import hash_token
from trpi.utils.time_utils import utcnow


def issue_link(db, email="new.client@example.com", now=None, **fields):
    request = MagicLinkRequest(email=email, **fields)
    return MagicLinkService(db).create_magic_link(request, now=now)


def test_magic_link_request_stores_only_a_token_hash(client, db):
    response = client.post(
        "/auth/magic-link",
        json={"email": "  New.Client@Example.com ", "type": "signup", "first_name": "Ada"},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    link = db.query(MagicLink).one()
    assert link.email == "new.client@example.com"
    assert link.type == "signup"
    assert len(link.token_hash) == 64
    assert link.expires_at - link.created_at <= timedelta(minutes=16)


def test_login_link_for_unknown_email_is_rejected(client):
    response = client.post("/auth/magic-link", json={"email": "nobody@example.com", "type": "login"})
    assert response.status_code == 404


def test_signup_link_for_existing_account_becomes_login(db, make_user):
    user = make_user(email="existing@example.com")

    link, _token = issue_link(db, email=user.email, type="signup")

    assert link.type == "login"


def test_link_auth_type_must_match_existing_account(client, make_user):
    make_user("therapist", email="dr@example.com")

    response = client.post("/auth/magic-link", json={"email": "dr@example.com", "auth_type": "individual"})

    assert response.status_code == 400


def test_admin_accounts_cannot_sign_up(client):
    response = client.post(
        "/auth/magic-link", json={"email": "root@example.com", "type": "signup", "auth_type": "admin"}
    )
    assert response.status_code == 400


def test_invalid_email_is_a_validation_error(client):
    assert client.post("/auth/magic-link", json={"email": "not-an-email"}).status_code == 422


def test_verify_signup_creates_verified_user_and_session(client, db):
    _link, token = issue_link(db, type="signup", first_name="Ada", last_name="Obi")

    response = client.post("/auth/verify-magic-link", json={"token": token, "auth_type": "individual"})

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "new.client@example.com"
    assert body["user"]["full_name"] == "Ada Obi"
    assert body["user"]["is_verified"] is True

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["user"]["id"] == body["user"]["id"]


def test_therapist_signup_creates_pending_profile(client, db):
    _link, token = issue_link(db, email="dr.new@example.com", type="signup", auth_type="therapist")

    response = client.post("/auth/verify-magic-link", json={"token": token, "auth_type": "therapist"})

    assert response.status_code == 200
    user = db.query(User).filter(User.email == "dr.new@example.com").one()
    profile = db.query(TherapistProfile).filter(TherapistProfile.user_id == user.id).one()
    assert profile.verification_status == "pending"


def test_magic_link_is_single_use(client, db):
    _link, token = issue_link(db, type="signup")

    first = client.post("/auth/verify-magic-link", json={"token": token})
    second = client.post("/auth/verify-magic-link", json={"token": token})

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["detail"] == "Invalid or expired magic link"


def test_expired_magic_link_is_rejected(client, db):
    _link, token = issue_link(db, type="signup", now=utcnow() - timedelta(minutes=16))

    response = client.post("/auth/verify-magic-link", json={"token": token})

    assert response.status_code == 400
    assert response.json()["detail"] == "Magic link has expired"


def test_magic_link_is_bound_to_its_auth_type(client, db):
    _link, token = issue_link(db, type="signup")

    response = client.post("/auth/verify-magic-link", json={"token": token, "auth_type": "therapist"})

    assert response.status_code == 400


def test_unknown_token_is_rejected(client):
    response = client.post("/auth/verify-magic-link", json={"token": "x" * 43})
    assert response.status_code == 400


def test_new_sign_in_revokes_previous_sessions(client, db, make_user, auth_headers):
    user = make_user(email="repeat@example.com")
    old_headers = auth_headers(user)
    _link, token = issue_link(db, email=user.email)

    response = client.post("/auth/verify-magic-link", json={"token": token})

    assert response.status_code == 200
    assert client.get("/auth/me", headers=old_headers).status_code == 401
    new_headers = {"Authorization": f"Bearer {response.json()['access_token']}"}
    assert client.get("/auth/me", headers=new_headers).status_code == 200


def test_deactivated_account_cannot_sign_in(client, db, make_user):
    user = make_user(email="gone@example.com", is_active=False)
    _link, token = issue_link(db, email=user.email)

    response = client.post("/auth/verify-magic-link", json={"token": token})

    assert response.status_code == 403


def test_logout_revokes_the_session(client, make_user, auth_headers):
    headers = auth_headers(make_user())

    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_bearer_token_failures(client, db, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)

    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer a.b.c"}).status_code == 401

    session = db.query(AuthSession).filter(AuthSession.user_id == user.id).one()
    session.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_token_hashing_is_deterministic():
    assert hash_token("abc") == hash_token("abc")
    assert hash_token("abc") != hash_token("abd")
