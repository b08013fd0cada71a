"""
Tests for cocina_retriever.dsa_client — DSA object requests (mocked HTTP).
"""

from unittest.mock import MagicMock, patch

import requests

from cocina_retriever.dsa_client import CocinaResponse, DsaClient


def _mock_http_response(status=200, reason="OK", text='{"type":"DRO"}', headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.reason = reason
    resp.text = text
    resp.headers = headers if headers is not None else {"Content-Type": "application/json"}
    return resp


def test_object_show_success():
    client = DsaClient("https://dsa.example.edu", token="t0k3n", timeout=5)

    with patch.object(client.session, "get", return_value=_mock_http_response()) as mock_get:
        response = client.object_show("ab123cd4567")

    mock_get.assert_called_once_with(
        "https://dsa.example.edu/v1/objects/druid:ab123cd4567", timeout=5
    )
    assert response.status == 200
    assert response.ok is True
    assert response.reason_phrase == "OK"
    assert response.body == '{"type":"DRO"}'
    assert response.headers == {"Content-Type": "application/json"}


def test_object_show_keeps_existing_prefix():
    client = DsaClient("https://dsa.example.edu/")

    with patch.object(client.session, "get", return_value=_mock_http_response()) as mock_get:
        client.object_show("druid:ab123cd4567")

    url = mock_get.call_args[0][0]
    assert url == "https://dsa.example.edu/v1/objects/druid:ab123cd4567"


def test_object_show_not_found():
    client = DsaClient("https://dsa.example.edu")
    http_resp = _mock_http_response(404, "Not Found", '{"errors":[]}')

    with patch.object(client.session, "get", return_value=http_resp):
        response = client.object_show("ab123cd4567")

    assert response.status == 404
    assert response.ok is False
    assert response.reason_phrase == "Not Found"


def test_object_show_transport_error_becomes_status_zero():
    """A RequestException is returned as a response-shaped failure, not raised."""
    client = DsaClient("https://dsa.example.edu")

    with patch.object(
        client.session, "get", side_effect=requests.ConnectionError("connection refused")
    ):
        response = client.object_show("ab123cd4567")

    assert response.status == 0
    assert response.ok is False
    assert response.reason_phrase.startswith("ConnectionError")
    assert "connection refused" in response.reason_phrase
    assert response.body == ""
    assert response.headers == {}


def test_object_show_timeout_becomes_status_zero():
    client = DsaClient("https://dsa.example.edu")

    with patch.object(client.session, "get", side_effect=requests.Timeout("read timed out")):
        response = client.object_show("ab123cd4567")

    assert response.status == 0
    assert "Timeout" in response.reason_phrase


def test_bearer_token_header_set_when_configured():
    client = DsaClient("https://dsa.example.edu", token="  secret  ")
    assert client.session.headers["Authorization"] == "Bearer secret"
    assert client.session.headers["Accept"] == "application/json"


def test_no_authorization_header_without_token():
    client = DsaClient("https://dsa.example.edu", token="")
    assert "Authorization" not in client.session.headers


def test_from_config():
    config = {
        "dsa": {
            "url": "https://dsa.example.edu",
            "token": "abc",
            "request_timeout": 12,
        }
    }
    client = DsaClient.from_config(config)
    assert client.base_url == "https://dsa.example.edu"
    assert client.timeout == 12
    assert client.session.headers["Authorization"] == "Bearer abc"


def test_cocina_response_reason_defaults_to_empty():
    http_resp = _mock_http_response(204, None, "")
    response = CocinaResponse.from_requests(http_resp)
    assert response.reason_phrase == ""
