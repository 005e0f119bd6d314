"""Tests for recon_erp.client -- response parsing and transport failures."""

import requests

from recon_erp.client import ErpClient, ErpResponse


class TestErpResponse:
    def test_2xx_without_flag_is_success(self):
        assert ErpResponse(200, {"id": 1}).success

    def test_success_flag_false_overrides_2xx(self):
        response = ErpResponse(200, {"success": False, "message": "Invalid SKU"})
        assert not response.success
        assert response.error_text == "Invalid SKU"

    def test_4xx_is_failure(self):
        response = ErpResponse(422, {"error": "name is required"})
        assert not response.success
        assert response.error_text == "name is required"

    def test_error_text_falls_back_to_status(self):
        assert ErpResponse(500, {}).error_text == "HTTP 500"

    def test_transport_failure(self):
        response = ErpResponse(None, {"success": False, "error": "timed out"})
        assert response.transport_failed
        assert not response.success

    def test_error_code_from_either_key(self):
        assert ErpResponse(400, {"error_code": "NOT_FOUND"}).error_code == "NOT_FOUND"
        assert ErpResponse(400, {"code": 404}).error_code == "404"
        assert ErpResponse(400, {}).error_code is None


class TestErpClient:
    def test_sends_authorized_json(self, fake_http, respond):
        fake_http.queue(respond(200, {"success": True}))
        client = ErpClient("secret", timeout=5, http=fake_http)

        response = client.put("https://erp/api/brands/BR-1", {"name": "Acme"})

        assert response.success
        sent = fake_http.requests[0]
        assert sent["method"] == "PUT"
        assert sent["json"] == {"name": "Acme"}
        assert sent["headers"]["Authorization"] == "secret"
        assert sent["headers"]["Content-Type"] == "application/json"
        assert sent["timeout"] == 5

    def test_post(self, fake_http, respond):
        fake_http.queue(respond(201, {"id": 9}))
        response = ErpClient("k", http=fake_http).post("https://erp/api/brands", {})
        assert fake_http.requests[0]["method"] == "POST"
        assert response.payload == {"id": 9}

    def test_non_json_body_becomes_error_text(self, fake_http, respond):
        fake_http.queue(respond(502, text="<html>Bad Gateway</html>"))
        response = ErpClient("k", http=fake_http).put("https://erp/x/1", {})
        assert not response.success
        assert response.error_text == "<html>Bad Gateway</html>"

    def test_non_object_json_is_wrapped(self, fake_http, respond):
        fake_http.queue(respond(200, [1, 2]))
        response = ErpClient("k", http=fake_http).put("https://erp/x/1", {})
        assert response.payload == {"data": [1, 2]}

    def test_transport_error_is_a_response(self, fake_http, captured_logs):
        fake_http.queue(requests.ConnectionError("connection refused"))

        response = ErpClient("k", http=fake_http).put("https://erp/x/1", {})

        assert response.transport_failed
        assert "connection refused" in response.error_text
        assert any(r["message"] == "erp_transport_error" for r in captured_logs())
