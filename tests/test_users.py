import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_signup_success(client: AsyncClient):
    """Successful signup returns 201, creates the company and hides the password"""
    payload = {
        "email": "newuser123@example.com",
        "password": "strongpass123",
        "company_name": "Green Steel",
        "company_sector": "Steel",
    }
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == payload["email"]
    assert "id" in data
    assert isinstance(data["company_id"], int)
    assert "password" not in data
    # whoever creates a company administers it
    assert data["role"] == "admin"


@pytest.mark.asyncio
async def test_signup_joins_company_via_admin(
    client: AsyncClient, auth_headers_admin, test_company
):
    payload = {
        "email": "joiner@example.com",
        "password": "strongpass123",
        "company_id": test_company.id,
    }
    response = await client.post("/profile/signup", json=payload, headers=auth_headers_admin)

    assert response.status_code == 201
    assert response.json()["company_id"] == test_company.id
    assert response.json()["role"] == "user"


@pytest.mark.asyncio
async def test_anonymous_cannot_join_existing_company(client: AsyncClient, test_company):
    payload = {
        "email": "intruder@example.com",
        "password": "strongpass123",
        "role": "admin",
        "company_id": test_company.id,
    }
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 401

    login = await client.post(
        "/profile/login", json={"email": payload["email"], "password": payload["password"]}
    )
    assert login.status_code == 404


@pytest.mark.asyncio
async def test_non_admin_cannot_add_users(client: AsyncClient, auth_headers_user, test_company):
    payload = {
        "email": "friend@example.com",
        "password": "strongpass123",
        "role": "admin",
        "company_id": test_company.id,
    }
    response = await client.post("/profile/signup", json=payload, headers=auth_headers_user)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_add_users_to_other_company(
    client: AsyncClient, auth_headers_admin, other_company
):
    payload = {
        "email": "planted@example.com",
        "password": "strongpass123",
        "company_id": other_company.id,
    }
    response = await client.post("/profile/signup", json=payload, headers=auth_headers_admin)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_signup_duplicate_email(client: AsyncClient):
    """Duplicate email returns 409 Conflict"""
    payload = {
        "email": "duplicate@example.com",
        "password": "pass12345678",
        "company_name": "Dup Inc",
    }
    await client.post("/profile/signup", json=payload)
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 409
    assert response.json()["detail"] == "User already exists"


@pytest.mark.asyncio
async def test_signup_invalid_data(client: AsyncClient):
    """Invalid payload returns 422 Unprocessable Entity"""
    payload = {"email": "not-an-email", "password": "short"}
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 422
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_signup_without_company(client: AsyncClient):
    payload = {"email": "nocompany@example.com", "password": "strongpass123"}
    response = await client.post("/profile/signup", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient):
    """Login returns 200 with access_token"""
    payload = {
        "email": "loginuser@example.com",
        "password": "validpass123",
        "company_name": "Login Ltd",
    }
    await client.post("/profile/signup", json=payload)

    login_payload = {"email": payload["email"], "password": payload["password"]}
    response = await client.post("/profile/login", json=login_payload)

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert isinstance(data["access_token"], str)
    assert len(data["access_token"]) > 20


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_user):
    response = await client.post(
        "/profile/login", json={"email": test_user.email, "password": "wrongpass123"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_user_of_own_company(client: AsyncClient, auth_headers_user, test_admin):
    response = await client.get(f"/profile/{test_admin.id}", headers=auth_headers_user)

    assert response.status_code == 200
    assert response.json()["email"] == test_admin.email


@pytest.mark.asyncio
async def test_get_user_requires_auth(client: AsyncClient, test_user):
    response = await client.get(f"/profile/{test_user.id}")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_user_of_other_company_is_hidden(client: AsyncClient, auth_headers_admin):
    signup = await client.post(
        "/profile/signup",
        json={"email": "outsider@example.com", "password": "pass12345678", "company_name": "Outside"},
    )
    outsider_id = signup.json()["id"]

    response = await client.get(f"/profile/{outsider_id}", headers=auth_headers_admin)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_user_as_admin(client: AsyncClient, auth_headers_admin, test_company):
    """Admin can delete another user of the same company"""
    user_payload = {
        "email": "todelete@example.com",
        "password": "pass12345678",
        "role": "user",
        "company_id": test_company.id,
    }
    signup_resp = await client.post("/profile/signup", json=user_payload, headers=auth_headers_admin)
    user_id = signup_resp.json()["id"]

    delete_response = await client.delete(
        f"/profile/{user_id}", headers=auth_headers_admin
    )
    assert delete_response.status_code == 200

    get_response = await client.get(f"/profile/{user_id}", headers=auth_headers_admin)
    assert get_response.status_code == 404


@pytest.mark.asyncio
async def test_delete_user_of_other_company(client: AsyncClient, auth_headers_admin):
    payload = {
        "email": "elsewhere@example.com",
        "password": "pass12345678",
        "company_name": "Elsewhere",
    }
    signup_resp = await client.post("/profile/signup", json=payload)
    user_id = signup_resp.json()["id"]

    response = await client.delete(f"/profile/{user_id}", headers=auth_headers_admin)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_user_as_non_admin_fails(client: AsyncClient, auth_headers_user, test_admin):
    """Normal user cannot delete another user (403 or 401 expected)"""
    response = await client.delete(f"/profile/{test_admin.id}", headers=auth_headers_user)
    assert response.status_code in (403, 401)
