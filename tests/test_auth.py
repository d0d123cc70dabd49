from strata.auth.jwt import create_access_token, decode_token
from strata.models.models import AuditLog

PASSWORD = "changeme123"


def _login(client, email, password=PASSWORD):
    return client.post("/auth/login", data={"username": email, "password": password})


def test_login_issues_token_usable_for_me(db_session, create_user, api_client):
    user = create_user(email="bendahari@example.com", role="FINANCE")
    client = api_client()

    response = _login(client, "Bendahari@Example.com")
    assert response.status_code == 200
    assert response.headers["X-RateLimit-Remaining"] == "9"
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["role"] == "FINANCE"
    assert decode_token(body["access_token"])["sub"] == str(user.id)

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "bendahari@example.com"
    assert "bills:approve_refund" in me.json()["permissions"]
    assert "units:create" not in me.json()["permissions"]

    assert db_session.query(AuditLog).filter(AuditLog.action == "LOGIN").count() == 1


def test_login_rejects_bad_credentials_and_inactive_users(db_session, create_user, api_client):
    user = create_user(email="pemilik@example.com")
    client = api_client()

    response = _login(client, "pemilik@example.com", "salah-sekali")
    assert response.status_code == 401
    assert response.json()["detail"] == "E-mel atau kata laluan tidak sah."

    user.is_active = False
    db_session.commit()
    assert _login(client, "pemilik@example.com").status_code == 401


def test_login_is_rate_limited(db_session, create_user, api_client):
    create_user(email="cuba@example.com")
    client = api_client()

    statuses = [_login(client, "cuba@example.com", "salah-sekali").status_code for _ in range(11)]

    assert statuses[:10] == [401] * 10
    assert statuses[10] == 429
    assert _login(client, "cuba@example.com").json()["detail"] == "Terlalu banyak percubaan. Sila cuba sebentar lagi."


def test_protected_routes_reject_bad_tokens(db_session, create_user, api_client):
    client = api_client()

    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401

    user = create_user()
    token = create_access_token(user)
    user.is_active = False
    db_session.commit()
    assert client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_profile_update_requires_current_password(db_session, create_user, api_client):
    user = create_user(email="profil@example.com")
    client = api_client(user)

    response = client.patch("/auth/me", json={"new_password": "kata-baharu-123", "current_password": "salah"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Kata laluan semasa tidak betul."

    response = client.patch(
        "/auth/me",
        json={"name": "Nama Baharu", "new_password": "kata-baharu-123", "current_password": PASSWORD},
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Nama Baharu"

    assert _login(api_client(), "profil@example.com", "kata-baharu-123").status_code == 200


def test_residents_can_register_and_log_in(db_session, create_user, api_client):
    create_user(email="ada@example.com", phone="0121111111")
    client = api_client()
    payload = {
        "name": "Penyewa Baru",
        "email": "Baru@Example.com",
        "phone": "0129999999",
        "password": "rahsia-baru",
        "confirm_password": "rahsia-baru",
        "role": "TENANT",
    }

    response = client.post("/auth/register", json=payload)
    assert response.status_code == 201
    assert response.json()["role"] == "TENANT"
    assert response.json()["email"] == "baru@example.com"
    assert _login(client, "baru@example.com", "rahsia-baru").status_code == 200
    assert db_session.query(AuditLog).filter(AuditLog.action == "REGISTER").count() == 1

    duplicate_phone = dict(payload, email="lain@example.com", phone="0121111111")
    response = client.post("/auth/register", json=duplicate_phone)
    assert response.status_code == 409
    assert response.json()["detail"] == "Nombor telefon sudah didaftarkan."

    duplicate_email = dict(payload, email="ADA@example.com", phone="0128888888")
    assert client.post("/auth/register", json=duplicate_email).json()["detail"] == "E-mel sudah digunakan."


def test_registration_rejects_staff_roles_and_mismatched_passwords(db_session, api_client):
    client = api_client()
    payload = {
        "name": "Cuba",
        "email": "cuba@example.com",
        "phone": "0127777777",
        "password": "rahsia-baru",
        "confirm_password": "rahsia-lain",
    }

    response = client.post("/auth/register", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Kata laluan tidak sepadan."

    assert client.post("/auth/register", json=dict(payload, confirm_password="rahsia-baru", role="JMB")).status_code == 422
