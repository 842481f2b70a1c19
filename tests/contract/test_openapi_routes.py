"""Contract tests for the published OpenAPI schema."""

import pytest

from booking_sync.server.app import create_app


@pytest.fixture
def openapi_schema(api_settings, api_services):
    return create_app(api_settings, services=api_services).openapi()


def test_openapi_required_endpoints(openapi_schema):
    """Test OpenAPI defines required endpoints."""
    paths = openapi_schema["paths"]

    assert "get" in paths["/availability"]
    assert "post" in paths["/availability/batch"]
    assert "post" in paths["/bookings"]
    assert "get" in paths["/bookings"]
    assert {"get", "patch", "delete"} <= set(paths["/bookings/{booking_id}"])
    assert "post" in paths["/otp/send"]
    assert "post" in paths["/otp/verify"]
    assert "post" in paths["/admin/reconcile"]
    assert "post" in paths["/admin/sync"]
    assert "post" in paths["/admin/blocks"]
    assert "delete" in paths["/admin/blocks/{block_id}"]
    assert "post" in paths["/webhooks/calendar"]
    assert "post" in paths["/webhooks/ledger"]
    assert "get" in paths["/health"]


def test_availability_query_parameters(openapi_schema):
    params = {p["name"]: p for p in openapi_schema["paths"]["/availability"]["get"]["parameters"]}

    assert params["date"]["required"]
    assert params["duration"]["required"]


def test_booking_creation_schema(openapi_schema):
    endpoint = openapi_schema["paths"]["/bookings"]["post"]

    request_body = endpoint["requestBody"]["content"]["application/json"]["schema"]
    assert "ReservationInput" in request_body["$ref"]
    assert "201" in endpoint["responses"]
