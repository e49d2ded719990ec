"""Tests for the global error boundary."""

import pytest
from fastapi.testclient import TestClient

from chatty.domain.exceptions import (
    ApplicationError,
    BadRequestError,
    InternalError,
    NotAuthorizedError,
    NotFoundError,
    PayloadTooLargeError,
    ServiceUnavailableError,
    ValidationError,
)
from chatty.presentation.error_handlers import error_response_for


STANDARD_METHODS = {
    "CONNECT",
    "DELETE",
    "GET",
    "HEAD",
    "OPTIONS",
    "PATCH",
    "POST",
    "PUT",
    "TRACE",
}


@pytest.fixture(name="client")
def client_fixture(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.mark.parametrize(
    "method", ["get", "post", "put", "patch", "delete", "trace"]
)
def test_unmatched_route_returns_404_naming_path(client: TestClient, method: str):
    response = client.request(method.upper(), "/api/v1/nothing-here")

    assert response.status_code == 404
    assert response.json() == {"message": "/api/v1/nothing-here not found"}


def test_catch_all_accepts_every_http_method(app):
    catch_all = next(
        route
        for route in app.routes
        if getattr(route, "path", None) == "/{unmatched_path:path}"
    )

    assert STANDARD_METHODS <= catch_all.methods


def test_unmatched_route_message_includes_query(client: TestClient):
    response = client.get("/missing?page=2")

    assert response.json() == {"message": "/missing?page=2 not found"}


def test_application_error_uses_own_status_and_payload(client: TestClient):
    response = client.get("/test/app-error")

    expected = NotFoundError("Conversation not found", field="conversation_id")
    assert response.status_code == expected.status_code == 404
    assert response.json() == expected.serialize_errors()
    assert response.json() == [
        {"message": "Conversation not found", "field": "conversation_id"}
    ]


def test_validation_error_lists_every_field(client: TestClient):
    response = client.get("/test/validation-error")

    assert response.status_code == 400
    assert response.json() == [
        {"message": "Username is too short", "field": "username"},
        {"message": "Email is invalid", "field": "email"},
    ]


def test_request_body_validation_becomes_field_errors(client: TestClient):
    response = client.post("/test/messages", json={})

    assert response.status_code == 400
    errors = response.json()
    assert len(errors) == 1
    assert errors[0]["field"] == "text"
    assert errors[0]["message"]


def test_unknown_error_returns_generic_500(client: TestClient):
    response = client.get("/test/boom")

    assert response.status_code == 500
    assert response.json() == [{"message": "Something went wrong"}]
    assert "hunter2" not in response.text
    assert "RuntimeError" not in response.text


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (ValidationError("Bad input", field="name"), 400),
        (BadRequestError(), 400),
        (NotAuthorizedError(), 401),
        (NotFoundError(), 404),
        (PayloadTooLargeError(), 413),
        (InternalError(), 500),
        (ServiceUnavailableError(), 503),
    ],
)
def test_error_variants_map_to_status(error: ApplicationError, status: int):
    response = error_response_for(error)

    assert response.status_code == status
    assert response.payload() == error.serialize_errors()


def test_unrecognized_error_maps_to_internal_error():
    response = error_response_for(KeyError("users.password_hash"))

    assert response.status_code == 500
    assert response.payload() == [{"message": "Something went wrong"}]


def test_field_is_omitted_when_unknown():
    assert NotAuthorizedError("Token expired").serialize_errors() == [
        {"message": "Token expired"}
    ]
