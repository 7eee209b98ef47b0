"""Tests for forwarding requests to the auth and users services."""
import json

import httpx
import pytest

from .conftest import AUTH_URL, INTERNAL_KEY, USERS_URL, body_of


class TestAuthRoutes:
    """Public routes relayed to the auth service."""

    def test_login_success_relayed(self, client, backends):
        backends.reply("POST", f"{AUTH_URL}/login", 200, {"message": "Success"})

        response = client.post("/auth/login", json={"name": "Alice", "password": "password1"})

        assert response.status_code == 200
        assert response.json() == {"message": "Success"}

        call = backends.calls_to(f"{AUTH_URL}/login")[0]
        assert body_of(call) == {"name": "Alice", "password": "password1"}
        assert call.headers["x-api-key"] == INTERNAL_KEY
        assert call.headers["content-type"] == "application/json"

    def test_login_wrong_password_relayed(self, client, backends):
        backends.reply("POST", f"{AUTH_URL}/login", 403, {"error": "Not Allowed"})

        response = client.post("/auth/login", json={"name": "Alice", "password": "nope"})

        assert response.status_code == 403
        assert response.json() == {"error": "Not Allowed"}

    def test_register_relayed(self, client, backends):
        backends.reply("POST", f"{AUTH_URL}/register", 201, {"id": 7})

        response = client.post("/auth/register", json={"name": "Bob", "password": "secret"})

        assert response.status_code == 201
        assert response.json() == {"id": 7}

    def test_auth_service_unreachable(self, client, backends):
        backends.fail("POST", f"{AUTH_URL}/login")

        response = client.post("/auth/login", json={"name": "Alice", "password": "password1"})

        assert response.status_code == 500
        assert response.json() == {"error": "Authentication service unavailable"}

    def test_downstream_body_relayed_byte_for_byte(self, client, backends):
        raw = b'{"b": 2,  "a": 1}'
        backends.on(
            "POST",
            f"{AUTH_URL}/login",
            lambda request: httpx.Response(
                409, content=raw, headers={"content-type": "application/json"}
            ),
        )

        response = client.post("/auth/login", json={})

        assert response.status_code == 409
        assert response.content == raw
        assert response.headers["content-type"] == "application/json"

    def test_non_json_error_relayed(self, client, backends):
        backends.on(
            "POST",
            f"{AUTH_URL}/register",
            lambda request: httpx.Response(502, text="Bad Gateway"),
        )

        response = client.post("/auth/register", json={})

        assert response.status_code == 502
        assert response.text == "Bad Gateway"


class TestUsersRoutes:
    """Protected routes relayed to the users service."""

    @pytest.fixture(autouse=True)
    def authorized(self, backends, alice):
        backends.token_valid(alice)

    def test_get_users(self, client, backends, auth_headers):
        backends.reply("GET", f"{USERS_URL}/", 200, [{"name": "Alice"}, {"name": "Bob"}])

        response = client.get("/users/", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == [{"name": "Alice"}, {"name": "Bob"}]

    def test_identity_and_key_passed_downstream(self, client, backends, alice, auth_headers):
        backends.reply("GET", f"{USERS_URL}/", 200, [])

        client.get("/users/", headers=auth_headers)

        call = backends.calls_to(f"{USERS_URL}/")[0]
        assert call.headers["x-api-key"] == INTERNAL_KEY
        assert json.loads(call.headers["x-user-data"]) == alice
        assert "authorization" not in call.headers

    def test_query_forwarded(self, client, backends, auth_headers):
        backends.reply("GET", f"{USERS_URL}/user", 200, {"name": "Bob"})

        response = client.get("/users/user?username=Bob&full=1", headers=auth_headers)

        assert response.status_code == 200
        call = backends.calls_to(f"{USERS_URL}/user")[0]
        assert call.url.params["username"] == "Bob"
        assert call.url.params["full"] == "1"

    def test_update_user_body_forwarded(self, client, backends, auth_headers):
        backends.reply("PUT", f"{USERS_URL}/update-user", 200, {"message": "Updated"})

        response = client.put(
            "/users/update-user", json={"username": "alice2"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Updated"}
        call = backends.calls_to(f"{USERS_URL}/update-user")[0]
        assert call.method == "PUT"
        assert body_of(call) == {"username": "alice2"}

    def test_downstream_error_relayed(self, client, backends, auth_headers):
        backends.reply("GET", f"{USERS_URL}/user", 404, {"error": "User not found"})

        response = client.get("/users/user?username=ghost", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}

    @pytest.mark.parametrize("exc_type", [httpx.ConnectError, httpx.ReadTimeout])
    def test_users_service_unreachable(self, client, backends, auth_headers, exc_type):
        backends.fail("GET", f"{USERS_URL}/", exc_type)

        response = client.get("/users/", headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"error": "Users service unavailable"}

    def test_repeated_get_is_idempotent(self, client, backends, auth_headers):
        backends.reply("GET", f"{USERS_URL}/user", 200, {"name": "Bob", "wins": 3})

        first = client.get("/users/user?username=Bob", headers=auth_headers)
        second = client.get("/users/user?username=Bob", headers=auth_headers)

        assert first.status_code == second.status_code == 200
        assert first.content == second.content

    def test_correlation_id_forwarded(self, client, backends, auth_headers):
        backends.reply("GET", f"{USERS_URL}/", 200, [])

        client.get("/users/", headers={**auth_headers, "X-Correlation-ID": "req-42"})

        call = backends.calls_to(f"{USERS_URL}/")[0]
        assert call.headers["x-correlation-id"] == "req-42"


class TestAvatarUpload:
    """Multipart avatar uploads relayed to the users service."""

    BOUNDARY = "----gatewayBoundary7MA4YWxk"

    @pytest.fixture(autouse=True)
    def authorized(self, backends, alice):
        backends.token_valid(alice)

    def multipart(self, payload: bytes) -> bytes:
        return (
            f"--{self.BOUNDARY}\r\n"
            'Content-Disposition: form-data; name="avatar"; filename="me.png"\r\n'
            "Content-Type: image/png\r\n\r\n"
        ).encode() + payload + f"\r\n--{self.BOUNDARY}--\r\n".encode()

    def test_multipart_body_forwarded_unchanged(self, client, backends, alice, auth_headers):
        backends.reply("POST", f"{USERS_URL}/upload-avatar", 200, {"avatar": "/avatars/1.png"})
        body = self.multipart(b"\x89PNG\r\n\x1a\n\x00\x01binary")
        content_type = f"multipart/form-data; boundary={self.BOUNDARY}"

        response = client.post(
            "/users/upload-avatar",
            content=body,
            headers={**auth_headers, "Content-Type": content_type},
        )

        assert response.status_code == 200
        assert response.json() == {"avatar": "/avatars/1.png"}
        call = backends.calls_to(f"{USERS_URL}/upload-avatar")[0]
        assert call.content == body
        assert call.headers["content-type"] == content_type
        assert json.loads(call.headers["x-user-data"]) == alice

    def test_oversized_upload_rejected_before_forwarding(self, client, backends, auth_headers):
        body = self.multipart(b"\x00" * (10 * 1024 * 1024))

        response = client.post(
            "/users/upload-avatar",
            content=body,
            headers={
                **auth_headers,
                "Content-Type": f"multipart/form-data; boundary={self.BOUNDARY}",
            },
        )

        assert response.status_code == 413
        assert response.json() == {"error": "File too large"}
        assert backends.calls_to(f"{USERS_URL}/upload-avatar") == []

    def test_empty_upload_rejected(self, client, backends, auth_headers):
        response = client.post("/users/upload-avatar", headers=auth_headers)

        assert response.status_code == 400
        assert response.json() == {"error": "No file uploaded"}
        assert backends.calls_to(f"{USERS_URL}/upload-avatar") == []

    def test_upload_requires_token(self, client, backends):
        response = client.post("/users/upload-avatar", content=self.multipart(b"x"))

        assert response.status_code == 401
        assert backends.calls == []


class TestRelayedHeaders:

    def test_redirect_location_relayed(self, client, backends):
        backends.on(
            "POST",
            f"{AUTH_URL}/login",
            lambda request: httpx.Response(302, headers={"location": "/elsewhere"}),
        )

        response = client.post("/auth/login", json={}, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/elsewhere"

    def test_retry_after_relayed_on_success_path(self, client, backends):
        backends.on(
            "POST",
            f"{AUTH_URL}/register",
            lambda request: httpx.Response(202, json={}, headers={"retry-after": "5"}),
        )

        response = client.post("/auth/register", json={})

        assert response.status_code == 202
        assert response.headers["retry-after"] == "5"

    def test_other_downstream_headers_dropped(self, client, backends):
        backends.on(
            "POST",
            f"{AUTH_URL}/login",
            lambda request: httpx.Response(200, json={}, headers={"x-internal-node": "auth-3"}),
        )

        response = client.post("/auth/login", json={})

        assert "x-internal-node" not in response.headers
