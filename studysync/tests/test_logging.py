"""Log redaction tests"""

from studysync.core.logging import redact


class TestRedact:
    def test_bearer_token(self):
        assert redact("GET /courses Authorization: Bearer abc.def-123") == "GET /courses Authorization: Bearer ***"

    def test_form_and_json_fields(self):
        assert redact("grant_type=refresh_token&refresh_token=1//0gAbC") == "grant_type=refresh_token&refresh_token=***"
        assert redact('{"access_token": "ya29.x", "expires_in": 3599}') == '{"access_token": "***", "expires_in": 3599}'

    def test_ordinary_text_is_untouched(self):
        message = "Token endpoint returned 400 for course_code=bio101, status code: 400"
        assert redact(message) == message
