"""
Unit tests for the AgbCloud API client. The requests Session is kept real,
only its send() is replaced so no network traffic happens.
"""

import json
from unittest import mock
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from agbcloud import client as client_module
from agbcloud.client import ApiClient, OAuthURLResponse, TokenExchangeResponse
from agbcloud.config import Config
from agbcloud.utils import AgbApiException


def make_response(status_code=200, payload=None, text=None):
    resp = requests.Response()
    resp.status_code = status_code
    resp.reason = "OK" if status_code < 400 else "Error"
    if text is None:
        text = json.dumps(payload if payload is not None else {})
    resp._content = text.encode("utf-8")
    resp.encoding = "utf-8"
    return resp


@pytest.fixture
def session():
    return requests.Session()


def sent_request(session):
    request = session.send.call_args[0][0]
    url = urlparse(request.url)
    return request, url, {k: v[0] for k, v in parse_qs(url.query).items()}


class TestGetLoginProviderUrl:

    def test_first_round_parameters(self, session):
        payload = {
            "success": True,
            "code": "Success",
            "requestId": "req-1",
            "traceId": "trace-1",
            "data": {"invokeUrl": "https://accounts.example.com/auth", "alternativePorts": "9998,10000"},
        }
        with mock.patch.object(session, "send", return_value=make_response(payload=payload)):
            api = ApiClient("https://api.example.com/", session=session)
            response = api.get_login_provider_url("http://localhost:9999")

            request, url, params = sent_request(session)
            assert request.method == "GET"
            assert session.send.call_args[1]["timeout"] == 30

        assert url.netloc == "api.example.com"
        assert url.path == "/api/oauth/login_provider"
        assert params == {
            "fromUrlPath": "http://localhost:9999",
            "loginClientType": "CLI",
            "oauthProvider": "GOOGLE_LOCALHOST",
        }

        assert isinstance(response, OAuthURLResponse)
        assert response.success is True
        assert response.request_id == "req-1"
        assert response.trace_id == "trace-1"
        assert response.invoke_url == "https://accounts.example.com/auth"
        assert response.alternative_ports == [9998, 10000]

    def test_second_round_sends_port(self, session):
        with mock.patch.object(session, "send", return_value=make_response(payload={"success": True, "data": {}})):
            ApiClient("https://api.example.com", session=session).get_login_provider_url("http://localhost:10000", port=10000)
            _, _, params = sent_request(session)

        assert params["fromUrlPath"] == "http://localhost:10000"
        assert params["localhostPort"] == "10000"

    def test_missing_fields_default_to_empty(self, session):
        with mock.patch.object(session, "send", return_value=make_response(payload={"success": False, "code": "Denied"})):
            response = ApiClient(session=session).get_login_provider_url("http://localhost:8080")

        assert response.success is False
        assert response.code == "Denied"
        assert response.invoke_url == ""
        assert response.alternative_ports == []


class TestLoginTranslate:

    def test_parameters_and_tokens(self, session):
        payload = {
            "success": True,
            "code": "Success",
            "requestId": "req-2",
            "traceId": "trace-2",
            "httpStatusCode": 200,
            "data": {
                "loginToken": "lt",
                "sessionId": "sid",
                "keepAliveToken": "kat",
                "expiresAt": "2030-01-01T00:00:00Z",
            },
        }
        with mock.patch.object(session, "send", return_value=make_response(payload=payload)):
            response = ApiClient("https://api.example.com", session=session).login_translate("CODE123", 10000)
            _, url, params = sent_request(session)

        assert url.path == "/api/oauth/login_translate"
        assert params == {
            "loginClientType": "CLI",
            "oauthProvider": "GOOGLE_LOCALHOST",
            "authCode": "CODE123",
            "localhostPort": "10000",
        }
        assert isinstance(response, TokenExchangeResponse)
        assert response.http_status == 200
        assert response.http_status_code == 200
        assert response.tokens.login_token == "lt"
        assert response.tokens.session_id == "sid"
        assert response.tokens.keep_alive_token == "kat"
        assert response.tokens.expires_at == "2030-01-01T00:00:00Z"


class TestInvokeErrors:

    def test_transport_error(self, session):
        with mock.patch.object(session, "send", side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(AgbApiException) as exc_info:
                ApiClient(session=session).get_login_provider_url("http://localhost:8080")

        assert "network error" in str(exc_info.value)
        assert exc_info.value.code is None

    def test_http_error_status(self, session):
        with mock.patch.object(session, "send", return_value=make_response(500, text="internal")):
            with pytest.raises(AgbApiException) as exc_info:
                ApiClient(session=session).login_translate("CODE", 8080)

        assert exc_info.value.code == 500
        assert exc_info.value.body == "internal"
        assert "HTTP 500" in str(exc_info.value)

    def test_invalid_json(self, session):
        with mock.patch.object(session, "send", return_value=make_response(text="<html>")):
            with pytest.raises(AgbApiException) as exc_info:
                ApiClient(session=session).login_translate("CODE", 8080)

        assert "failed to decode" in str(exc_info.value)

    def test_non_object_json(self, session):
        with mock.patch.object(session, "send", return_value=make_response(payload=[1, 2])):
            with pytest.raises(AgbApiException) as exc_info:
                ApiClient(session=session).login_translate("CODE", 8080)

        assert "unexpected data" in str(exc_info.value)


class TestMalformedResponses:

    @pytest.mark.parametrize("data", ["oops", [1, 2], 42])
    def test_login_provider_non_object_data(self, session, data):
        with mock.patch.object(session, "send", return_value=make_response(payload={"success": True, "data": data})):
            with pytest.raises(AgbApiException) as exc_info:
                ApiClient(session=session).get_login_provider_url("http://localhost:8080")

        assert "unexpected \"data\"" in str(exc_info.value)

    def test_login_provider_non_string_url(self, session):
        with mock.patch.object(session, "send", return_value=make_response(payload={"success": True, "data": {"invokeUrl": {"x": 1}}})):
            with pytest.raises(AgbApiException) as exc_info:
                ApiClient(session=session).get_login_provider_url("http://localhost:8080")

        assert "invokeUrl" in str(exc_info.value)

    def test_alternative_ports_as_list(self, session):
        payload = {"success": True, "data": {"invokeUrl": "https://x", "alternativePorts": [9998, 10000]}}
        with mock.patch.object(session, "send", return_value=make_response(payload=payload)):
            response = ApiClient(session=session).get_login_provider_url("http://localhost:8080")

        assert response.alternative_ports == [9998, 10000]

    def test_login_translate_non_object_data(self, session):
        with mock.patch.object(session, "send", return_value=make_response(payload={"success": True, "data": "oops"})):
            with pytest.raises(AgbApiException):
                ApiClient(session=session).login_translate("CODE", 8080)

    def test_login_translate_non_string_token(self, session):
        payload = {"success": True, "data": {"loginToken": ["not", "a", "token"], "sessionId": "sid"}}
        with mock.patch.object(session, "send", return_value=make_response(payload=payload)):
            with pytest.raises(AgbApiException) as exc_info:
                ApiClient(session=session).login_translate("CODE", 8080)

        assert "loginToken" in str(exc_info.value)


class TestDebug:

    def test_debug_fn_receives_curl(self, session):
        messages = []
        with mock.patch.object(session, "send", return_value=make_response(payload={"success": True})):
            ApiClient("https://api.example.com", print_debug_fn=messages.append, session=session).get_login_provider_url("http://localhost:8080")

        assert any(m.split(": ", 1)[1].startswith("curl -X GET") for m in messages)
        assert any("api/oauth/login_provider ==> 200" in m for m in messages)

    def test_debug_output_hides_secrets(self, session):
        code = "AUTHCODE-0123456789-abcdefghij"
        payload = {
            "success": True,
            "data": {
                "loginToken": "SECRET-LOGIN-TOKEN-XYZ",
                "sessionId": "SECRET-SESSION-ID-XYZ",
                "keepAliveToken": "SECRET-KEEP-ALIVE-XYZ",
                "expiresAt": "2030-01-01T00:00:00Z",
            },
        }
        messages = []
        with mock.patch.object(session, "send", return_value=make_response(payload=payload)):
            response = ApiClient(print_debug_fn=messages.append, session=session).login_translate(code, 8080)

        output = "\n".join(messages)
        assert code not in output
        assert code[:20] + "..." in output
        for secret in ("SECRET-LOGIN-TOKEN-XYZ", "SECRET-SESSION-ID-XYZ", "SECRET-KEEP-ALIVE-XYZ"):
            assert secret not in output
        assert "2030-01-01T00:00:00Z" in output
        # The returned tokens themselves are untouched.
        assert response.tokens.login_token == "SECRET-LOGIN-TOKEN-XYZ"

    def test_transport_error_hides_code(self, session):
        code = "AUTHCODE-0123456789-abcdefghij"
        messages = []
        error = requests.exceptions.ConnectionError("Max retries exceeded with url: /api/oauth/login_translate?authCode=%s" % code)
        with mock.patch.object(session, "send", side_effect=error):
            with pytest.raises(AgbApiException) as exc_info:
                ApiClient(print_debug_fn=messages.append, session=session).login_translate(code, 8080)

        assert code not in str(exc_info.value)
        assert code not in "\n".join(messages)

    def test_default_debug_fn(self, session, monkeypatch):
        messages = []
        monkeypatch.setattr(client_module, "DEFAULT_PRINT_DEBUG_FN", None)
        client_module.set_default_print_debug_fn(messages.append)
        with mock.patch.object(session, "send", return_value=make_response(payload={"success": True})):
            ApiClient(session=session).get_login_provider_url("http://localhost:8080")

        assert messages


class TestFromConfig:

    def test_endpoint_from_config(self, config_path):
        api = ApiClient.from_config(Config(config_path, {"endpoint": "https://custom.example.com/"}))
        assert api._endpoint == "https://custom.example.com"

    def test_endpoint_env_override(self, config_path, monkeypatch):
        monkeypatch.setenv("AGBCLOUD_ENDPOINT", "https://env.example.com")
        api = ApiClient.from_config(Config(config_path, {"endpoint": "https://custom.example.com"}))
        assert api._endpoint == "https://env.example.com"
