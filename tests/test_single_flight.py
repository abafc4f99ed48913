import threading
import unittest
from unittest.mock import patch

from grclink import single_flight as single_flight_module
from grclink.single_flight import SingleFlight


class SingleFlightTests(unittest.TestCase):
    def setUp(self) -> None:
        self.flight = SingleFlight()

    def _run_with_follower(self, fn_result=None, fn_error=None):
        """Run a leader call and one follower joining while it is in flight."""
        joined = threading.Event()
        calls = []
        results = {}

        def fn():
            calls.append(threading.current_thread().name)
            follower.start()
            self.assertTrue(joined.wait(timeout=5))
            if fn_error is not None:
                raise fn_error
            return fn_result

        def run(name):
            try:
                results[name] = self.flight.do("/api/risks", fn)
            except Exception as exc:  # noqa: BLE001
                results[name] = exc

        follower = threading.Thread(target=run, args=("follower",), name="follower")
        with patch.object(
            single_flight_module.logger, "debug", side_effect=lambda *_args: joined.set()
        ):
            run("leader")
            follower.join(timeout=5)
        return calls, results

    def test_concurrent_callers_share_one_call(self) -> None:
        payload = [{"id": 1}]

        calls, results = self._run_with_follower(fn_result=payload)

        self.assertEqual(len(calls), 1)
        self.assertIs(results["leader"], payload)
        self.assertIs(results["follower"], payload)
        self.assertEqual(self.flight.in_flight_count(), 0)

    def test_errors_reach_every_waiter(self) -> None:
        error = RuntimeError("boom")

        calls, results = self._run_with_follower(fn_error=error)

        self.assertEqual(len(calls), 1)
        self.assertIs(results["leader"], error)
        self.assertIs(results["follower"], error)
        self.assertFalse(self.flight.is_in_flight("/api/risks"))

    def test_sequential_calls_run_again(self) -> None:
        counter = {"calls": 0}

        def fn():
            counter["calls"] += 1
            return counter["calls"]

        self.assertEqual(self.flight.do("/api/controls", fn), 1)
        self.assertEqual(self.flight.do("/api/controls", fn), 2)

    def test_distinct_keys_do_not_share(self) -> None:
        self.assertEqual(self.flight.do("/api/a", lambda: "a"), "a")
        self.assertEqual(self.flight.do("/api/b", lambda: "b"), "b")


if __name__ == "__main__":
    unittest.main()
