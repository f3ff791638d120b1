"""
Tests for signup, login, refresh rotation, logout and profile endpoints.

Run with: pytest tests/test_auth_routes.py -v
"""

import base64
from unittest.mock import patch

import pytest

from chatspace.core.config import get_settings
from chatspace.services.auth_service import AuthService

from tests.conftest import PNG_BYTES, auth_headers, signup


async def refresh_with(client, cookie_value):
    """Call the refresh endpoint presenting exactly `cookie_value`."""
    client.cookies.clear()
    return await client.post(
        "/api/auth/refresh-token",
        headers={"Cookie": f"refreshToken={cookie_value}"},
    )


# ============================================
# Signup / Login
# ============================================

class TestSignupAndLogin:

    @pytest.mark.asyncio
    async def test_signup_returns_token_and_sets_http_only_cookie(self, client):
        response = await client.post(
            "/api/auth/signup",
            json={"fullName": "Alice", "email": "Alice@Example.com", "password": "password123"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["token"]
        assert AuthService.verify_access_token(body["token"]) == body["userData"]["_id"]
        assert body["userData"]["email"] == "alice@example.com"
        assert body["userData"]["fullName"] == "Alice"
        assert "_id" in body["userData"]
        assert "hashedPassword" not in body["userData"]
        assert "refreshToken" not in body["userData"]

        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("refreshToken=")
        assert "HttpOnly" in set_cookie
        assert "samesite=strict" in set_cookie.lower()
        assert "Path=/" in set_cookie
        assert "Max-Age=604800" in set_cookie

    @pytest.mark.asyncio
    async def test_signup_applies_default_bio(self, client):
        user, _, _ = await signup(client, "carol@example.com", "Carol")
        assert user["bio"] == "Hey there! I am using Chatspace."

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, client, alice):
        response = await client.post(
            "/api/auth/signup",
            json={"fullName": "Other", "email": "ALICE@example.com", "password": "password123"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "User already exists"

    @pytest.mark.asyncio
    async def test_signup_missing_field_is_400(self, client):
        response = await client.post(
            "/api/auth/signup",
            json={"email": "nobody@example.com", "password": "password123"},
        )
        assert response.status_code == 400
        assert "fullName" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client, alice):
        response = await client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "wrong-password"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid credentials"
        assert "set-cookie" not in response.headers

    @pytest.mark.asyncio
    async def test_login_unknown_email(self, client):
        response = await client.post(
            "/api/auth/login",
            json={"email": "ghost@example.com", "password": "password123"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_login_success_replaces_refresh_token(self, client, alice):
        response = await client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "password123"},
        )
        assert response.status_code == 200
        new_refresh = response.cookies.get("refreshToken")
        assert new_refresh and new_refresh != alice["refresh"]

        # The signup refresh token is no longer the stored one
        stale = await refresh_with(client, alice["refresh"])
        assert stale.status_code == 401

    @pytest.mark.asyncio
    async def test_login_rate_limited(self, client, alice):
        for _ in range(10):
            await client.post(
                "/api/auth/login",
                json={"email": "alice@example.com", "password": "wrong-password"},
            )
        response = await client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "password123"},
        )
        assert response.status_code == 429
        assert int(response.headers["retry-after"]) >= 1

    @pytest.mark.asyncio
    async def test_forwarded_header_does_not_reset_login_limit(self, client, alice):
        # No trusted proxy is configured, so each spoofed address still counts against the real peer
        for i in range(10):
            response = await client.post(
                "/api/auth/login",
                json={"email": "alice@example.com", "password": "wrong-password"},
                headers={"X-Forwarded-For": f"10.0.0.{i}"},
            )
            assert response.status_code == 400

        response = await client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "wrong-password"},
            headers={"X-Forwarded-For": "10.0.0.250", "X-Real-IP": "10.0.0.251"},
        )
        assert response.status_code == 429

    @pytest.mark.asyncio
    async def test_forwarded_header_honoured_from_trusted_proxy(self, client, alice, monkeypatch):
        monkeypatch.setattr(get_settings(), "trusted_proxies", "127.0.0.1")
        for _ in range(10):
            await client.post(
                "/api/auth/login",
                json={"email": "alice@example.com", "password": "wrong-password"},
                headers={"X-Forwarded-For": "198.51.100.1"},
            )

        blocked = await client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "password123"},
            headers={"X-Forwarded-For": "198.51.100.1"},
        )
        assert blocked.status_code == 429

        other_client = await client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "password123"},
            headers={"X-Forwarded-For": "198.51.100.2"},
        )
        assert other_client.status_code == 200


# ============================================
# Refresh rotation
# ============================================

class TestRefreshRotation:

    @pytest.mark.asyncio
    async def test_refresh_succeeds_once_then_stale_cookie_revokes(self, client, alice):
        first = await refresh_with(client, alice["refresh"])
        assert first.status_code == 200
        rotated = first.cookies.get("refreshToken")
        assert rotated and rotated != alice["refresh"]
        assert first.json()["token"]

        # Replaying the old cookie fails and revokes the rotated token too
        replay = await refresh_with(client, alice["refresh"])
        assert replay.status_code == 401
        assert replay.json()["detail"] == "Invalid refresh token"

        after_revoke = await refresh_with(client, rotated)
        assert after_revoke.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh_without_cookie(self, client):
        client.cookies.clear()
        response = await client.post("/api/auth/refresh-token")
        assert response.status_code == 401
        assert response.json()["detail"] == "No refresh token provided"

    @pytest.mark.asyncio
    async def test_refresh_with_garbage_cookie(self, client):
        response = await refresh_with(client, "not-a-jwt")
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid refresh token"

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(self, client, alice):
        response = await refresh_with(client, alice["token"])
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_refresh_token(self, client, alice):
        from datetime import timedelta

        expired = AuthService._create_jwt(
            alice["user"]["_id"], timedelta(seconds=-5), get_settings().jwt_refresh_secret_key
        )
        response = await refresh_with(client, expired)
        assert response.status_code == 401
        assert response.json()["detail"] == "Refresh token expired"


# ============================================
# Session middleware
# ============================================

class TestCurrentUser:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/auth/get-profile")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authorized, no token"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get("/api/auth/get-profile", headers=auth_headers("garbage"))
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_expired_access_token(self, client, alice):
        from datetime import timedelta

        expired = AuthService._create_jwt(
            alice["user"]["_id"], timedelta(seconds=-5), get_settings().jwt_secret_key
        )
        response = await client.get("/api/auth/get-profile", headers=auth_headers(expired))
        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"

    @pytest.mark.asyncio
    async def test_token_for_deleted_user(self, client):
        token = AuthService.issue_access_token("00000000-0000-0000-0000-000000000000")
        response = await client.get("/api/auth/get-profile", headers=auth_headers(token))
        assert response.status_code == 401
        assert response.json()["detail"] == "User not found"

    @pytest.mark.asyncio
    async def test_get_profile(self, client, alice):
        response = await client.get("/api/auth/get-profile", headers=auth_headers(alice["token"]))
        assert response.status_code == 200
        assert response.json()["user"]["_id"] == alice["user"]["_id"]


# ============================================
# Logout
# ============================================

class TestLogout:

    @pytest.mark.asyncio
    async def test_logout_clears_cookie_and_stored_token(self, client, alice):
        response = await client.post("/api/auth/logout", headers=auth_headers(alice["token"]))
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert 'refreshToken=""' in response.headers["set-cookie"] or "Max-Age=0" in response.headers["set-cookie"]

        refresh = await refresh_with(client, alice["refresh"])
        assert refresh.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_requires_auth(self, client):
        response = await client.post("/api/auth/logout")
        assert response.status_code == 401


# ============================================
# Profile update
# ============================================

class TestUpdateProfile:

    @pytest.mark.asyncio
    async def test_update_name_and_bio(self, client, alice):
        response = await client.put(
            "/api/auth/update-profile",
            json={"fullName": "Alice Liddell", "bio": "Down the rabbit hole"},
            headers=auth_headers(alice["token"]),
        )
        assert response.status_code == 200
        updated = response.json()["updatedUser"]
        assert updated["fullName"] == "Alice Liddell"
        assert updated["bio"] == "Down the rabbit hole"

    @pytest.mark.asyncio
    async def test_update_avatar_multipart(self, client, alice):
        with patch("chatspace.services.image_processor.magic") as mock_magic:
            mock_magic.from_buffer.return_value = "image/png"
            response = await client.put(
                "/api/auth/update-profile",
                data={"bio": "new bio"},
                files={"profilePic": ("me.png", PNG_BYTES, "image/png")},
                headers=auth_headers(alice["token"]),
            )

        assert response.status_code == 200
        updated = response.json()["updatedUser"]
        assert updated["profilePic"].endswith(".png")
        assert "/static/uploads/avatars/" in updated["profilePic"]
        assert updated["bio"] == "new bio"

    @pytest.mark.asyncio
    async def test_update_avatar_data_url(self, client, alice):
        data_url = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        with patch("chatspace.services.image_processor.magic") as mock_magic:
            mock_magic.from_buffer.return_value = "image/png"
            response = await client.put(
                "/api/auth/update-profile",
                json={"profilePic": data_url},
                headers=auth_headers(alice["token"]),
            )

        assert response.status_code == 200
        assert response.json()["updatedUser"]["profilePic"]

    @pytest.mark.asyncio
    async def test_non_image_upload_rejected(self, client, alice):
        with patch("chatspace.services.image_processor.magic") as mock_magic:
            mock_magic.from_buffer.return_value = "application/pdf"
            response = await client.put(
                "/api/auth/update-profile",
                files={"profilePic": ("doc.png", b"%PDF-1.4 fake", "image/png")},
                headers=auth_headers(alice["token"]),
            )

        assert response.status_code == 400
        assert response.json()["detail"] == "Only image files are allowed!"

    @pytest.mark.asyncio
    async def test_oversized_upload_rejected(self, client, alice, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_upload_size_mb", 1)
        with patch("chatspace.services.image_processor.magic") as mock_magic:
            mock_magic.from_buffer.return_value = "image/png"
            response = await client.put(
                "/api/auth/update-profile",
                files={"profilePic": ("big.png", PNG_BYTES + b"\x00" * (1024 * 1024), "image/png")},
                headers=auth_headers(alice["token"]),
            )

        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_oversized_form_rejected_before_parsing(self, client, alice, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_upload_size_mb", 0)
        with patch("chatspace.api.routes.auth.read_upload") as read_upload:
            response = await client.put(
                "/api/auth/update-profile",
                files={"profilePic": ("big.png", PNG_BYTES + b"\x00" * (2 * 1024 * 1024), "image/png")},
                headers=auth_headers(alice["token"]),
            )

        assert response.status_code == 413
        read_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_blocked_when_disabled_by_admin(self, client, alice, bob, monkeypatch):
        monkeypatch.setattr(get_settings(), "admin_id", bob["user"]["_id"])
        toggle = await client.put(
            f"/api/auth/upload-access/{alice['user']['_id']}",
            json={"enabled": False},
            headers=auth_headers(bob["token"]),
        )
        assert toggle.status_code == 200
        assert toggle.json()["uploadsEnabled"] is False

        response = await client.put(
            "/api/auth/update-profile",
            files={"profilePic": ("me.png", PNG_BYTES, "image/png")},
            headers=auth_headers(alice["token"]),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_upload_access_requires_admin(self, client, alice, bob):
        response = await client.put(
            f"/api/auth/upload-access/{bob['user']['_id']}",
            json={"enabled": False},
            headers=auth_headers(alice["token"]),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_upload_access_unknown_user(self, client, alice, monkeypatch):
        monkeypatch.setattr(get_settings(), "admin_id", alice["user"]["_id"])
        response = await client.put(
            "/api/auth/upload-access/does-not-exist",
            json={"enabled": False},
            headers=auth_headers(alice["token"]),
        )
        assert response.status_code == 404


# ============================================
# Ambient
# ============================================

class TestAmbient:

    @pytest.mark.asyncio
    async def test_status(self, client):
        response = await client.get("/api/status")
        assert response.status_code == 200
        assert response.json()["success"] is True

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_json_body_too_large(self, client, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_json_body_mb", 0)
        response = await client.post(
            "/api/auth/login",
            json={"email": "alice@example.com", "password": "password123"},
        )
        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_chunked_json_body_too_large(self, client, alice):
        async def chunks():
            yield b'{"bio": "'
            for _ in range(3):
                yield b"x" * (1024 * 1024)
            yield b'"}'

        response = await client.put(
            "/api/auth/update-profile",
            content=chunks(),
            headers={**auth_headers(alice["token"]), "Content-Type": "application/json"},
        )
        assert "content-length" not in response.request.headers
        assert response.status_code == 413
        assert response.json()["detail"] == "Request body too large. Maximum size: 2MB"

    @pytest.mark.asyncio
    async def test_chunked_login_body_too_large(self, client, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_json_body_mb", 0)

        async def chunks():
            yield b'{"email": "alice@example.com", '
            yield b'"password": "password123"}'

        response = await client.post(
            "/api/auth/login",
            content=chunks(),
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_chunked_json_under_limit_is_accepted(self, client, alice):
        async def chunks():
            yield b'{"bio": '
            yield b'"streamed in"}'

        response = await client.put(
            "/api/auth/update-profile",
            content=chunks(),
            headers={**auth_headers(alice["token"]), "Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert response.json()["updatedUser"]["bio"] == "streamed in"
