import ssl
import time
import unittest
from unittest import mock

from redfish_core.errors import InvalidArgumentError
from redfish_core.transport import PooledHTTPAdapter, build_transport, idle_timeout_minutes


class IdleTimeoutTests(unittest.TestCase):
    def test_idle_timeout_is_one_less_than_lifetime_with_floor(self):
        for lifetime in range(1, 121):
            self.assertEqual(idle_timeout_minutes(lifetime), max(lifetime - 1, 1))

    def test_idle_timeout_is_strictly_shorter_when_possible(self):
        for lifetime in range(2, 30):
            self.assertLess(idle_timeout_minutes(lifetime), lifetime)

    def test_invalid_lifetime(self):
        for lifetime in (0, -5):
            with self.assertRaises(InvalidArgumentError):
                idle_timeout_minutes(lifetime)


class BuildTransportTests(unittest.TestCase):
    def test_standard_headers_and_pool_settings(self):
        transport = build_transport(timeout_seconds=30, max_connections=7, connection_lifetime_minutes=5,
                                    verify_ssl=True, user_agent="redfish-core/test")
        self.addCleanup(transport.close)

        self.assertEqual(transport.headers["Accept"], "application/json")
        self.assertEqual(transport.headers["OData-Version"], "4.0")
        self.assertEqual(transport.headers["User-Agent"], "redfish-core/test")
        self.assertTrue(transport.verify)

        adapter = transport.get_adapter("https://bmc.example.com/redfish/v1")
        self.assertIsInstance(adapter, PooledHTTPAdapter)
        self.assertIs(transport.get_adapter("http://bmc.example.com/redfish/v1"), adapter)
        self.assertEqual(adapter.max_connections, 7)
        self.assertEqual(adapter.idle_timeout_minutes, 4)
        self.assertEqual(adapter.poolmanager.connection_pool_kw["maxsize"], 7)
        self.assertTrue(adapter.poolmanager.connection_pool_kw["block"])

    def test_verified_transport_requires_modern_tls(self):
        transport = build_transport(verify_ssl=True)
        self.addCleanup(transport.close)
        adapter = transport.get_adapter("https://bmc.example.com")

        self.assertEqual(adapter.ssl_context.minimum_version, ssl.TLSVersion.TLSv1_2)
        self.assertEqual(adapter.ssl_context.verify_mode, ssl.CERT_REQUIRED)

    def test_skip_cert_check_accepts_any_certificate(self):
        with self.assertLogs("redfish_core.transport", level="WARNING"):
            transport = build_transport(verify_ssl=False)
        self.addCleanup(transport.close)
        adapter = transport.get_adapter("https://bmc.example.com")

        self.assertFalse(transport.verify)
        self.assertFalse(adapter.ssl_context.check_hostname)
        self.assertEqual(adapter.ssl_context.verify_mode, ssl.CERT_NONE)

    def test_out_of_range_settings(self):
        with self.assertRaises(InvalidArgumentError):
            build_transport(timeout_seconds=0)
        with self.assertRaises(InvalidArgumentError):
            build_transport(timeout_seconds=301)
        with self.assertRaises(InvalidArgumentError):
            build_transport(max_connections=0)
        with self.assertRaises(InvalidArgumentError):
            build_transport(connection_lifetime_minutes=0)


class PoolRecyclingTests(unittest.TestCase):
    def setUp(self):
        self.adapter = PooledHTTPAdapter(max_connections=2, connection_lifetime_minutes=5)
        self.addCleanup(self.adapter.close)

    def test_fresh_pool_is_kept(self):
        with mock.patch.object(self.adapter.poolmanager, "clear") as clear:
            self.adapter._recycle_if_stale()
        clear.assert_not_called()

    def test_pool_older_than_lifetime_is_recycled(self):
        self.adapter._pool_created_at = time.monotonic() - 6 * 60
        self.adapter._last_used_at = time.monotonic()

        with mock.patch.object(self.adapter.poolmanager, "clear") as clear:
            self.adapter._recycle_if_stale()

        clear.assert_called_once_with()
        self.assertGreater(self.adapter._pool_created_at, time.monotonic() - 5)

    def test_idle_pool_is_recycled_before_lifetime(self):
        self.adapter._pool_created_at = time.monotonic() - 4.5 * 60
        self.adapter._last_used_at = time.monotonic() - 4.5 * 60

        with mock.patch.object(self.adapter.poolmanager, "clear") as clear:
            self.adapter._recycle_if_stale()

        clear.assert_called_once_with()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
