"""Unit tests for error body formatting."""

from booking_sync.handlers import ERROR_TEMPLATES, format_error_message


def test_format_error_message_structure():
    """Error bodies carry the problem, a code and the suggested action."""
    error = format_error_message("SLOT_CONFLICT", "Slot taken.", "Pick another time.")

    assert error == {"error": "Slot taken.", "code": "SLOT_CONFLICT", "details": ["Pick another time."]}


def test_format_error_message_without_action():
    assert format_error_message("NOT_FOUND", "Gone.")["details"] == []


def test_error_template_rate_limit():
    """Test rate_limit error template with dynamic seconds."""
    error = ERROR_TEMPLATES["rate_limit"](30)

    assert error["code"] == "RATE_LIMITED"
    assert "30 seconds" in error["details"][0]


def test_error_template_booking_not_found():
    error = ERROR_TEMPLATES["booking_not_found"]("Booking not found or email does not match")

    assert error["code"] == "BOOKING_NOT_FOUND"
    assert error["error"] == "Booking not found or email does not match"


def test_all_error_templates_callable():
    """Test that all error templates can be called."""
    no_args = ["unauthorized", "upstream_error", "internal_error"]
    one_arg = ["invalid_request", "slot_conflict", "booking_not_found", "not_found", "otp_required", "not_configured"]

    for name in no_args:
        body = ERROR_TEMPLATES[name]()
        assert body["code"].isupper()
    for name in one_arg:
        body = ERROR_TEMPLATES[name]("problem")
        assert body["error"] == "problem"
    assert ERROR_TEMPLATES["rate_limit"](60)

    assert set(ERROR_TEMPLATES) == set(no_args + one_arg + ["rate_limit"])


def test_internal_details_are_not_exposed():
    body = ERROR_TEMPLATES["upstream_error"]()

    assert "notion" not in body["error"].lower()
    assert "google" not in body["error"].lower()
