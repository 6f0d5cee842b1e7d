"""
Unit tests for the proxy HTTP transport.

The requests session is mocked; no network access is made.
"""

import unittest
from unittest import mock

import requests

from RS_Libs.errors import NetworkError
from RS_Libs.RemoteLib.proxy_client import GENERIC_FAILURE, ProxyClient


def _response(status=200, body=None, json_error=False):
    response = mock.Mock(spec=requests.Response)
    response.status_code = status
    response.ok = 200 <= status < 300
    if json_error:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


class TestProxyClient(unittest.TestCase):

    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.client = ProxyClient("http://proxy.test/api", timeout=5, session=self.session)

    def test_posts_payload_as_json(self):
        self.session.post.return_value = _response(body={"candidates": []})

        result = self.client({"model": "m"})

        self.assertEqual(result, {"candidates": []})
        self.session.post.assert_called_once_with("http://proxy.test/api", json={"model": "m"}, timeout=5)

    def test_error_message_from_body(self):
        self.session.post.return_value = _response(500, {"error": {"message": "quota exceeded"}})

        with self.assertRaises(NetworkError) as ctx:
            self.client.post({})

        self.assertEqual(str(ctx.exception), "quota exceeded")
        self.assertEqual(ctx.exception.status_code, 500)

    def test_generic_error_without_body(self):
        self.session.post.return_value = _response(502, json_error=True)

        with self.assertRaises(NetworkError) as ctx:
            self.client.post({})

        self.assertEqual(str(ctx.exception), GENERIC_FAILURE)

    def test_connection_failure(self):
        self.session.post.side_effect = requests.ConnectionError("refused")

        with self.assertRaises(NetworkError):
            self.client.post({})

    def test_non_object_body(self):
        self.session.post.return_value = _response(body=["not", "a", "dict"])

        with self.assertRaises(NetworkError):
            self.client.post({})

    def test_empty_url(self):
        with self.assertRaises(ValueError):
            ProxyClient("  ")

    def test_close(self):
        self.client.close()
        self.session.close.assert_called_once()
