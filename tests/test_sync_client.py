# -*- coding: utf-8 -*-
"""HTTP client behaviour against a stubbed requests session."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path
from unittest import mock

import requests


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from panelsync.config import SyncSettings  # noqa: E402
from panelsync.endpoints import RemoteRequest  # noqa: E402
from panelsync.errors import NetworkError  # noqa: E402
from panelsync.models import FailureKind  # noqa: E402
from panelsync.sync_client import RemoteResponse, SyncClient  # noqa: E402


def make_response(status: int, reason: str = "", body: bytes = b"") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response._content = body
    return response


class SyncClientTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock(spec=requests.Session)
        self.client = SyncClient("https://mes.example.com/", timeout=3, session=self.session)

    def test_send_builds_url_headers_and_body(self) -> None:
        self.session.request.return_value = make_response(201, "Created", b'{"id": "P-1"}')

        response = self.client.send(
            RemoteRequest("POST", "/api/panels", {"serial": "A"}), idempotency_key="item-1"
        )

        self.session.request.assert_called_once_with(
            "POST",
            "https://mes.example.com/api/panels",
            json={"serial": "A"},
            headers={"Idempotency-Key": "item-1"},
            timeout=3,
        )
        self.assertEqual(response, RemoteResponse(201, "Created", {"id": "P-1"}))
        self.assertTrue(response.ok)

    def test_error_status_is_returned_not_raised(self) -> None:
        self.session.request.return_value = make_response(503, "Service Unavailable", b"down")
        response = self.client.send(RemoteRequest("PUT", "/api/panels/1", {"id": 1}))
        self.assertFalse(response.ok)
        self.assertEqual(response.status, 503)
        self.assertEqual(response.status_text, "Service Unavailable")
        self.assertEqual(response.body, "down")

    def test_empty_body_decodes_to_none(self) -> None:
        self.session.request.return_value = make_response(204, "No Content")
        response = self.client.send(RemoteRequest("DELETE", "/api/panels/1"))
        self.assertIsNone(response.body)

    def test_transport_failure_becomes_network_error(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(NetworkError) as ctx:
            self.client.send(RemoteRequest("DELETE", "/api/panels/1"))
        self.assertEqual(ctx.exception.failure_kind, FailureKind.NETWORK)
        self.assertTrue(ctx.exception.reason.startswith("Network error: "))

    def test_check_connection(self) -> None:
        self.session.get.return_value = make_response(200, "OK")
        self.assertTrue(self.client.check_connection())
        self.session.get.assert_called_once_with("https://mes.example.com/api/health", timeout=5)

        self.session.get.side_effect = requests.Timeout("slow")
        self.assertFalse(self.client.check_connection())

    def test_default_session_carries_token_and_retry_adapter(self) -> None:
        client = SyncClient("http://localhost:3000", api_token="secret", retries=4)
        try:
            session = client._session
            self.assertEqual(session.headers["Authorization"], "Bearer secret")
            self.assertEqual(session.headers["Content-Type"], "application/json")
            retry = session.get_adapter("http://localhost:3000").max_retries
            self.assertEqual(retry.total, 4)
            self.assertIn(503, retry.status_forcelist)
            self.assertNotIn("POST", retry.allowed_methods)
        finally:
            client.close()

    def test_from_settings(self) -> None:
        settings = SyncSettings(API_BASE_URL="http://mes.local:8080", REQUEST_TIMEOUT=7.5)
        client = SyncClient.from_settings(settings)
        try:
            self.assertEqual(client.base_url, "http://mes.local:8080/")
            self.assertEqual(client.timeout, 7.5)
        finally:
            client.close()


if __name__ == "__main__":  # pragma: no cover - manual run
    unittest.main()
