"""Tests for normalized error responses."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from creditdesk.api.deps import raise_for_failure
from creditdesk.core.errors import (
    AppError,
    ConflictError,
    NotFoundError,
    StorageError,
    UnauthenticatedError,
    ValidationError,
    app_error_handler,
    unhandled_exception_handler,
)
from creditdesk.core.middleware.request_id import RequestIdMiddleware
from creditdesk.features.accounts.results import FailureReason, MutationResult


def test_validation_error_has_standard_shape(api_client):
    api_client.post("/v1/session/login", json={"email": "x@y.com"})
    resp = api_client.post("/v1/credits/burn", json={"amount": 0})
    assert resp.status_code == 400
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "invalid_amount"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_wrong_plan_is_conflict(api_client):
    api_client.post("/v1/session/login", json={"email": "x@y.com"})
    resp = api_client.post("/v1/plans/pro/cancel")
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "wrong_plan"


def test_unknown_route_normalized(api_client):
    resp = api_client.get("/v1/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


@pytest.mark.parametrize(
    "reason,error_cls",
    [
        (FailureReason.NO_CURRENT_USER, UnauthenticatedError),
        (FailureReason.NOT_FOUND, NotFoundError),
        (FailureReason.INVALID_EMAIL, ValidationError),
        (FailureReason.INVALID_AMOUNT, ValidationError),
        (FailureReason.SEAT_LIMIT, ConflictError),
        (FailureReason.ALREADY_EXISTS, ConflictError),
        (FailureReason.WRONG_STATUS, ConflictError),
    ],
)
def test_failure_reason_mapping(reason, error_cls):
    with pytest.raises(error_cls):
        raise_for_failure(MutationResult.failure(reason, "nope"))


def test_storage_error_is_500_and_unhandled_is_generic():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)
    test_app.add_exception_handler(Exception, unhandled_exception_handler)

    @test_app.get("/storage")
    async def storage():
        raise StorageError("disk full")

    @test_app.get("/boom")
    async def boom():
        raise RuntimeError("secret detail")

    client = TestClient(test_app, raise_server_exceptions=False)
    resp = client.get("/storage")
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "storage_error"

    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["code"] == "internal_error"
    assert "secret" not in body["detail"]
