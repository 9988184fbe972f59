"""Unit tests for the request gate middleware."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt as pyjwt
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from tenantgate.core.auth.jwt import TokenCodec
from tenantgate.core.context import current_request, get_current_account_id, get_tenant
from tenantgate.entrypoints.api.middleware.request_gate import (
    MAX_REQUEST_ID_LENGTH,
    REQUEST_ID_HEADER,
    RequestGate,
)
from tests.fixtures.identity import TEST_SECRET


@pytest.fixture
def gated_app(codec: TokenCodec) -> FastAPI:
    """Return a tiny app behind the gate that echoes the bound context."""
    app = FastAPI()
    app.add_middleware(RequestGate, codec=codec)

    @app.get("/whoami")
    async def whoami(request: Request) -> dict[str, str | None]:
        tenant_id = get_tenant()
        account_id = get_current_account_id()
        ctx = current_request()
        return {
            "tenant_id": str(tenant_id) if tenant_id else None,
            "account_id": str(account_id) if account_id else None,
            "request_id": ctx.request_id if ctx else None,
            "state_request_id": request.state.request_id,
            "authenticated": "yes" if request.state.auth else "no",
        }

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("handler crashed")

    return app


@pytest.fixture
def client(gated_app: FastAPI) -> TestClient:
    """Return a test client that turns crashes into 500s."""
    return TestClient(gated_app, raise_server_exceptions=False)


class TestRequestId:
    """Correlation id handling."""

    def test_generated_when_absent(self, client: TestClient) -> None:
        """A fresh id is generated and echoed."""
        response = client.get("/whoami")

        request_id = response.headers[REQUEST_ID_HEADER]
        assert request_id
        assert response.json()["request_id"] == request_id
        assert response.json()["state_request_id"] == request_id

    def test_incoming_id_propagated(self, client: TestClient) -> None:
        """A caller-supplied id is reused."""
        response = client.get("/whoami", headers={REQUEST_ID_HEADER: "trace-abc"})

        assert response.headers[REQUEST_ID_HEADER] == "trace-abc"
        assert response.json()["request_id"] == "trace-abc"

    def test_oversized_id_replaced(self, client: TestClient) -> None:
        """Absurdly long ids are not trusted."""
        long_id = "x" * (MAX_REQUEST_ID_LENGTH + 1)

        response = client.get("/whoami", headers={REQUEST_ID_HEADER: long_id})

        assert response.headers[REQUEST_ID_HEADER] != long_id

    def test_distinct_per_request(self, client: TestClient) -> None:
        """Two requests get two ids."""
        first = client.get("/whoami").headers[REQUEST_ID_HEADER]
        second = client.get("/whoami").headers[REQUEST_ID_HEADER]

        assert first != second


class TestAuthentication:
    """Bearer token handling."""

    def test_valid_token_binds_tenant(self, client: TestClient, codec: TokenCodec) -> None:
        """The handler sees the tenant and account from the token."""
        account_id, tenant_id = uuid4(), uuid4()
        token = codec.issue(account_id=account_id, tenant_id=tenant_id, role="employee")

        response = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})

        body = response.json()
        assert body["tenant_id"] == str(tenant_id)
        assert body["account_id"] == str(account_id)
        assert body["authenticated"] == "yes"

    def test_no_token_continues_unauthenticated(self, client: TestClient) -> None:
        """Anonymous requests reach the handler without a tenant."""
        response = client.get("/whoami")

        assert response.status_code == 200
        assert response.json()["tenant_id"] is None
        assert response.json()["authenticated"] == "no"

    @pytest.mark.parametrize(
        "header",
        ["Bearer not-a-jwt", "Basic dXNlcjpwYXNz", "Bearer ", "bearer"],
    )
    def test_unusable_header_continues_unauthenticated(
        self, client: TestClient, header: str
    ) -> None:
        """Malformed credentials are ignored, not rejected."""
        response = client.get("/whoami", headers={"Authorization": header})

        assert response.status_code == 200
        assert response.json()["authenticated"] == "no"

    def test_expired_token_ignored(self, client: TestClient) -> None:
        """Expired tokens bind nothing."""
        past = datetime.now(UTC) - timedelta(days=2)
        token = TokenCodec(secret=TEST_SECRET).issue(
            account_id=uuid4(), tenant_id=uuid4(), role="employee", now=past
        )

        response = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})

        assert response.json()["tenant_id"] is None

    def test_unknown_role_ignored(self, client: TestClient) -> None:
        """A signed token with a role outside the hierarchy binds nothing."""
        now = int(datetime.now(UTC).timestamp())
        token = pyjwt.encode(
            {
                "sub": str(uuid4()),
                "company_id": str(uuid4()),
                "role": "superuser",
                "iat": now,
                "exp": now + 60,
            },
            TEST_SECRET,
            algorithm="HS256",
        )

        response = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})

        assert response.json()["authenticated"] == "no"

    def test_codec_from_app_state(self, codec: TokenCodec) -> None:
        """Without an explicit codec the gate uses app.state.codec."""
        app = FastAPI()
        app.state.codec = codec
        app.add_middleware(RequestGate)

        @app.get("/tenant")
        async def tenant() -> dict[str, str | None]:
            tenant_id = get_tenant()
            return {"tenant_id": str(tenant_id) if tenant_id else None}

        tenant_id = uuid4()
        token = codec.issue(account_id=uuid4(), tenant_id=tenant_id, role="admin")

        response = TestClient(app).get("/tenant", headers={"Authorization": f"Bearer {token}"})

        assert response.json()["tenant_id"] == str(tenant_id)


class TestContextCleanup:
    """Context never leaks past the request."""

    def test_next_request_starts_clean(self, client: TestClient, codec: TokenCodec) -> None:
        """An anonymous request after an authenticated one sees no tenant."""
        token = codec.issue(account_id=uuid4(), tenant_id=uuid4(), role="employee")
        client.get("/whoami", headers={"Authorization": f"Bearer {token}"})

        response = client.get("/whoami")

        assert response.json()["tenant_id"] is None
        assert get_tenant() is None

    def test_cleared_after_handler_crash(self, client: TestClient, codec: TokenCodec) -> None:
        """A crashing handler still leaves no tenant behind."""
        token = codec.issue(account_id=uuid4(), tenant_id=uuid4(), role="employee")

        crashed = client.get("/boom", headers={"Authorization": f"Bearer {token}"})
        after = client.get("/whoami")

        assert crashed.status_code == 500
        assert after.json()["tenant_id"] is None
