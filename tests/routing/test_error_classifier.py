import httpx
import pytest

from streamgate.provider.base import UpstreamStreamError
from streamgate.routing.error_classifier import (
    UpstreamFailure,
    classify_upstream_error,
    extract_error_message,
    is_model_unavailable,
)


def _http_error(status_code, text=None, message="upstream error"):
    return UpstreamStreamError(status_code=status_code, message=message, text=text)


@pytest.mark.parametrize(
    "status_code, kind, retryable",
    [
        (400, "validation", False),
        (401, "authentication", False),
        (403, "authentication", False),
        (404, "availability", True),
        (408, "availability", True),
        (422, "validation", False),
        (429, "rate_limit", True),
        (500, "availability", True),
        (502, "availability", True),
        (503, "availability", True),
    ],
)
def test_classify_by_status(status_code, kind, retryable):
    failure = classify_upstream_error(_http_error(status_code))
    assert failure.kind == kind
    assert failure.retryable is retryable
    assert failure.status_code == status_code


def test_transport_errors_are_retryable_availability():
    request = httpx.Request("POST", "https://upstream.example.com/v1/chat/completions")
    failure = classify_upstream_error(httpx.ConnectError("refused", request=request))
    assert failure.kind == "availability"
    assert failure.retryable is True
    assert failure.status_code is None
    assert "ConnectError" in failure.message


def test_unknown_exceptions_are_treated_as_availability():
    failure = classify_upstream_error(RuntimeError("sdk exploded"))
    assert failure.kind == "availability"
    assert failure.retryable is True
    assert failure.message == "sdk exploded"


def test_model_unavailable_400_is_retryable():
    text = '{"error": {"message": "This model is not available in your region"}}'
    failure = classify_upstream_error(_http_error(400, text=text))
    assert failure.kind == "availability"
    assert failure.retryable is True
    assert failure.message == "This model is not available in your region"


def test_provider_retryable_status_codes_override_defaults():
    failure = classify_upstream_error(_http_error(500), retryable_status_codes=[429])
    assert failure.kind == "availability"
    assert failure.retryable is False

    failure = classify_upstream_error(_http_error(400), retryable_status_codes=[400])
    assert failure.kind == "validation"
    assert failure.retryable is True


def test_classify_passes_through_existing_failures():
    original = UpstreamFailure(kind="rate_limit", retryable=True, status_code=429, message="x")
    assert classify_upstream_error(original) is original


def test_extract_error_message_shapes():
    assert extract_error_message('{"error": {"message": "bad key"}}') == "bad key"
    assert extract_error_message('{"type": "error", "message": "overloaded"}') == "overloaded"
    assert extract_error_message('{"detail": "nope"}') == "nope"
    assert extract_error_message("plain text") == "plain text"
    assert extract_error_message(None) == ""


def test_is_model_unavailable_only_for_client_errors():
    text = "model does not support tools"
    assert is_model_unavailable(400, text) is True
    assert is_model_unavailable(500, text) is False
    assert is_model_unavailable(400, "messages must not be empty") is False
