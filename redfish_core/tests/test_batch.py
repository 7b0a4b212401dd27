import unittest

from redfish_core.batch import BatchErrorRecord, RequestDescriptor, execute_batch, fetch_collection_members
from redfish_core.errors import InvalidArgumentError, PermanentHttpError
from redfish_core.metrics import SessionMetrics
from redfish_core.tests.fakes import RecordingSleep, Reply, ScriptedAdapter, open_session

SYSTEMS = "/redfish/v1/Systems"


def system(n):
    return {"@odata.id": f"{SYSTEMS}/{n}", "Id": str(n)}


class BatchOrderingTests(unittest.TestCase):
    def test_results_follow_input_order_with_failures(self):
        adapter = ScriptedAdapter({
            ("GET", "/A"): [Reply(body={"Id": "A"}, delay=0.2)],
            ("GET", "/B"): [Reply(status=404, body={"error": {"message": "B is gone"}})],
            ("GET", "/C"): [Reply(body={"Id": "C"}, delay=0.1)],
        })
        session = open_session(adapter)

        results = execute_batch(session, ["/A", "/B", "/C"], continue_on_error=True)

        self.assertEqual(results[0], {"Id": "A"})
        self.assertIsInstance(results[1], BatchErrorRecord)
        self.assertEqual(results[1].status_code, 404)
        self.assertEqual(results[1].message, "B is gone")
        self.assertEqual(results[1].url, "/B")
        self.assertEqual(results[1].method, "GET")
        self.assertEqual(results[2], {"Id": "C"})

    def test_malformed_error_body_becomes_error_record(self):
        adapter = ScriptedAdapter({
            ("GET", "/ok"): [Reply(body={"Id": "ok"})],
            ("GET", "/bad"): [Reply(status=400, body={"error": {"@Message.ExtendedInfo": [{"Message": {"Code": 7}}]}})],
        })
        session = open_session(adapter)

        results = execute_batch(session, ["/ok", "/bad"], continue_on_error=True)

        self.assertEqual(results[0], {"Id": "ok"})
        self.assertIsInstance(results[1], BatchErrorRecord)
        self.assertEqual(results[1].status_code, 400)
        self.assertEqual(results[1].message, "{'Code': 7}")

    def test_fail_fast_raises_and_returns_nothing(self):
        adapter = ScriptedAdapter({
            ("GET", "/A"): [Reply(body={"Id": "A"})],
            ("GET", "/B"): [Reply(status=400)],
            ("GET", "/C"): [Reply(body={"Id": "C"})],
        })
        session = open_session(adapter)

        with self.assertRaises(PermanentHttpError) as ctx:
            execute_batch(session, ["/A", "/B", "/C"])

        self.assertTrue(ctx.exception.url.endswith("/B"))
        # every unit was dispatched and awaited before the abort
        self.assertEqual(len(adapter.sent), 3)

    def test_descriptors_carry_method_and_body(self):
        adapter = ScriptedAdapter({
            ("PATCH", "/Bios/Settings"): [Reply(status=202)],
            ("GET", "/Bios"): [Reply(body={"Attributes": {}})],
        })
        session = open_session(adapter)

        results = execute_batch(session, [
            RequestDescriptor(url="/Bios/Settings", method="patch", body={"Attributes": {"BootMode": "Uefi"}}),
            {"url": "/Bios"},
        ])

        self.assertEqual(results, [None, {"Attributes": {}}])
        patch = next(r for r in adapter.sent if r.method == "PATCH")
        self.assertIn("BootMode", patch.body)

    def test_empty_input_dispatches_nothing(self):
        adapter = ScriptedAdapter()
        self.assertEqual(execute_batch(open_session(adapter), []), [])
        self.assertEqual(adapter.sent, [])


class BatchConcurrencyTests(unittest.TestCase):
    def test_in_flight_sends_never_exceed_limit(self):
        adapter = ScriptedAdapter({("GET", "/slow"): [Reply(body={}, delay=0.1)]})
        session = open_session(adapter)

        results = execute_batch(session, ["/slow"] * 5, max_concurrency=2)

        self.assertEqual(len(results), 5)
        self.assertLessEqual(adapter.max_in_flight, 2)
        self.assertEqual(len(adapter.sent), 5)

    def test_retries_inside_batch(self):
        adapter = ScriptedAdapter({("GET", "/busy"): [Reply(status=503), Reply(body={"ok": True})]})
        session = open_session(adapter)
        sleep = RecordingSleep()

        results = execute_batch(session, ["/busy"], sleep=sleep)

        self.assertEqual(results, [{"ok": True}])
        self.assertEqual(sleep.delays_ms, [1000])

    def test_concurrency_range_is_enforced(self):
        session = open_session(ScriptedAdapter())
        for bad in (0, 51):
            with self.assertRaises(InvalidArgumentError):
                execute_batch(session, ["/A"], max_concurrency=bad)

    def test_metrics_from_concurrent_workers(self):
        adapter = ScriptedAdapter({("GET", "/item"): [Reply(body={}, delay=0.01)]})
        metrics = SessionMetrics()
        session = open_session(adapter, metrics=metrics)

        execute_batch(session, ["/item"] * 40, max_concurrency=10)

        # updates are serialized by the collector lock, so counts are exact
        self.assertEqual(metrics.total_requests, 40)
        self.assertEqual(metrics.successful_requests, 40)
        self.assertEqual(len(metrics.request_durations), 40)


class CollectionFetchTests(unittest.TestCase):
    def test_empty_collection_dispatches_no_batch(self):
        adapter = ScriptedAdapter({("GET", SYSTEMS): [Reply(body={"Members": [], "Members@odata.count": 0})]})
        session = open_session(adapter)

        self.assertEqual(fetch_collection_members(session, SYSTEMS), [])
        self.assertEqual(len(adapter.sent), 1)

    def test_absent_members_yields_empty(self):
        adapter = ScriptedAdapter({("GET", SYSTEMS): [Reply(body={"Name": "Systems"})]})
        session = open_session(adapter)

        self.assertEqual(fetch_collection_members(session, SYSTEMS), [])
        self.assertEqual(len(adapter.sent), 1)

    def test_members_fetched_in_collection_order(self):
        adapter = ScriptedAdapter({
            ("GET", SYSTEMS): [Reply(body={"Members": [
                {"@odata.id": f"{SYSTEMS}/1"}, {"@odata.id": f"{SYSTEMS}/2"}, {"@odata.id": f"{SYSTEMS}/3"},
            ]})],
            ("GET", f"{SYSTEMS}/1"): [Reply(body=system(1), delay=0.1)],
            ("GET", f"{SYSTEMS}/2"): [Reply(body=system(2))],
            ("GET", f"{SYSTEMS}/3"): [Reply(body=system(3), delay=0.05)],
        })
        session = open_session(adapter)

        members = fetch_collection_members(session, SYSTEMS, max_concurrency=3)

        self.assertEqual([m["Id"] for m in members], ["1", "2", "3"])

    def test_next_link_pages_are_followed(self):
        adapter = ScriptedAdapter({
            ("GET", SYSTEMS): [Reply(body={
                "Members": [{"@odata.id": f"{SYSTEMS}/1"}],
                "Members@odata.nextLink": f"{SYSTEMS}?$skip=1",
            })],
            ("GET", "?$skip=1"): [Reply(body={"Members": [{"@odata.id": f"{SYSTEMS}/2"}]})],
            ("GET", f"{SYSTEMS}/1"): [Reply(body=system(1))],
            ("GET", f"{SYSTEMS}/2"): [Reply(body=system(2))],
        })
        session = open_session(adapter)

        members = fetch_collection_members(session, SYSTEMS)

        self.assertEqual([m["Id"] for m in members], ["1", "2"])

    def test_member_failure_aborts(self):
        adapter = ScriptedAdapter({
            ("GET", SYSTEMS): [Reply(body={"Members": [{"@odata.id": f"{SYSTEMS}/1"}]})],
            ("GET", f"{SYSTEMS}/1"): [Reply(status=401)],
        })
        session = open_session(adapter)

        with self.assertRaises(PermanentHttpError):
            fetch_collection_members(session, SYSTEMS)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
