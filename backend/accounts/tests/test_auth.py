import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from coaches.models import Coach

User = get_user_model()


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def athlete(db):
    return User.objects.create_user(
        username="ava@example.com",
        email="ava@example.com",
        password="sprint-fast-42",
        first_name="Ava",
        last_name="Athlete",
    )


@pytest.fixture
def coach(db):
    account = User.objects.create_user(
        username="casey@example.com",
        email="casey@example.com",
        password="sprint-fast-42",
    )
    return Coach.objects.create(user=account, display_name="Casey Sprint", hourly_rate="100.00")


def _login(client, email, password="sprint-fast-42"):
    return client.post("/api/auth/login/", {"email": email, "password": password}, format="json")


def test_sign_up_opens_an_athlete_account(db, client):
    response = client.post(
        "/api/auth/register/",
        {"email": "Ben@Example.com", "password": "password123", "first_name": "Ben", "last_name": "Runner"},
        format="json",
    )

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["role"] == "athlete"
    assert body["user"]["coach_id"] is None
    assert body["access"] and body["refresh"]
    account = User.objects.get(email="ben@example.com")
    assert account.username == "ben@example.com"
    assert account.display_name == "Ben Runner"


def test_sign_up_rejects_an_email_already_in_use(client, athlete):
    response = client.post(
        "/api/auth/register/",
        {"email": "AVA@example.com", "password": "password123"},
        format="json",
    )

    assert response.status_code == 400
    assert response.json()["email"] == ["An account with this email already exists."]


def test_sign_up_rejects_short_passwords(db, client):
    response = client.post("/api/auth/register/", {"email": "kim@example.com", "password": "short"}, format="json")

    assert response.status_code == 400
    assert "password" in response.json()
    assert not User.objects.filter(email="kim@example.com").exists()


def test_login_by_email_is_case_insensitive(client, athlete):
    response = _login(client, "Ava@Example.COM")

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"access", "refresh", "user"}
    assert body["user"]["email"] == "ava@example.com"
    assert body["user"]["role"] == "athlete"


def test_login_reports_coach_role(client, coach):
    response = _login(client, "casey@example.com")

    assert response.json()["user"]["role"] == "coach"
    assert response.json()["user"]["coach_id"] == coach.pk


@pytest.mark.parametrize(
    "email,password",
    [("ava@example.com", "wrong-password"), ("nobody@example.com", "sprint-fast-42")],
)
def test_bad_credentials_are_unauthorized(client, athlete, email, password):
    assert _login(client, email, password).status_code == 401


def test_login_requires_email(client, athlete):
    response = client.post("/api/auth/login/", {"password": "sprint-fast-42"}, format="json")

    assert response.status_code == 400
    assert "email" in response.json()


def test_refresh_token_yields_new_access_token(client, athlete):
    refresh = _login(client, "ava@example.com").json()["refresh"]

    response = client.post("/api/auth/refresh/", {"refresh": refresh}, format="json")

    assert response.status_code == 200
    assert "access" in response.json()


def test_current_account_with_bearer_token(client, coach):
    access = _login(client, "casey@example.com").json()["access"]
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")

    response = client.get("/api/auth/me/")

    assert response.status_code == 200
    assert response.json()["role"] == "coach"
    assert response.json()["coach_id"] == coach.pk


def test_current_account_requires_authentication(db, client):
    assert client.get("/api/auth/me/").status_code == 401


def test_current_account_is_read_only(client, athlete):
    client.force_authenticate(user=athlete)

    response = client.patch("/api/auth/me/", {"email": "new@example.com"}, format="json")

    assert response.status_code == 405
    athlete.refresh_from_db()
    assert athlete.email == "ava@example.com"
