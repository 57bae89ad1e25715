"""
Name: HTTP Test Fixtures

Responsibilities:
  - Build a FastAPI app with the v1 router and RFC7807 handlers
  - Stand in for the host's session layer (X-Test-User -> request.state.principal)
  - Point get_core at the in-memory SecurityCore fixture
"""

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from security_core.domain.identity import SessionPrincipal
from security_core.interfaces.api.http.dependencies import get_core
from security_core.interfaces.api.http.error_mapping import register_exception_handlers
from security_core.interfaces.api.http.router import build_router


@pytest.fixture
def app(core, users) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(build_router(), prefix="/v1")

    @app.middleware("http")
    async def session_layer(request: Request, call_next):
        user_id = request.headers.get("x-test-user")
        role = users.get_role(user_id) if user_id else None
        if role is not None:
            request.state.principal = SessionPrincipal(user_id=user_id, role=role)
        return await call_next(request)

    app.dependency_overrides[get_core] = lambda: core
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


def as_user(user_id: str) -> dict[str, str]:
    return {"X-Test-User": user_id}


@pytest.fixture
def headers_for():
    return as_user


def reasons(response) -> list[str]:
    return [e["reason"] for e in response.json().get("errors", []) if "reason" in e]


@pytest.fixture
def reasons_of():
    return reasons
