import unittest
from unittest.mock import MagicMock

from grclink.query_keys import (
    build_query_url,
    invalidate_resource,
    normalize_query_key,
    query_keys,
    stable_params,
)


class BuildQueryUrlTests(unittest.TestCase):
    def test_bare_path(self) -> None:
        self.assertEqual(build_query_url("/api/risks"), "/api/risks")
        self.assertEqual(build_query_url(("/api/risks",)), "/api/risks")

    def test_parts_are_joined(self) -> None:
        self.assertEqual(
            build_query_url(("/api/risks", "risk-123", "controls")),
            "/api/risks/risk-123/controls",
        )

    def test_mapping_becomes_query_string(self) -> None:
        url = build_query_url(("/api/risks", {"limit": 50, "offset": 0, "search": None}))

        self.assertEqual(url, "/api/risks?limit=50&offset=0")

    def test_boolean_params_are_lowercase(self) -> None:
        url = build_query_url(("/api/controls", {"active": True, "archived": False}))

        self.assertEqual(url, "/api/controls?active=true&archived=false")

    def test_empty_mapping_leaves_path(self) -> None:
        self.assertEqual(build_query_url(("/api/risks", {"search": None})), "/api/risks")


class QueryKeyFactoryTests(unittest.TestCase):
    def test_keys_are_deterministic(self) -> None:
        self.assertEqual(query_keys.risks.detail("r-1"), query_keys.risks.detail("r-1"))
        self.assertEqual(
            query_keys.risks.paginated({"page": 1, "limit": 10}),
            query_keys.risks.paginated({"limit": 10, "page": 1}),
        )

    def test_nested_keys_share_resource_prefix(self) -> None:
        detail = query_keys.audits.detail("a-1")
        milestones = query_keys.audits.milestones("a-1")

        self.assertEqual(milestones[: len(detail)], detail)
        self.assertEqual(detail[:1], query_keys.audits.all())

    def test_flat_resources(self) -> None:
        self.assertEqual(query_keys.processes(), ("/api/processes",))
        self.assertEqual(query_keys.trash(), ("/api/trash",))
        self.assertEqual(query_keys.auth.user(), ("/api/auth/user",))

    def test_stable_params_sorts_keys(self) -> None:
        self.assertEqual(stable_params({"b": 1, "a": 2}), '{"a":2,"b":1}')
        self.assertEqual(stable_params(), "{}")

    def test_normalize_wraps_strings(self) -> None:
        self.assertEqual(normalize_query_key("/api/users"), ("/api/users",))
        self.assertEqual(normalize_query_key(["/api/users", "u-1"]), ("/api/users", "u-1"))


class InvalidateResourceTests(unittest.TestCase):
    def test_detail_invalidation(self) -> None:
        client = MagicMock()
        client.invalidate_queries.return_value = 2

        self.assertEqual(invalidate_resource(client, "risks", "r-1"), 2)
        client.invalidate_queries.assert_called_once_with(("/api/risks", "r-1"), refetch=True)

    def test_list_invalidation(self) -> None:
        client = MagicMock()

        invalidate_resource(client, "controls")

        client.invalidate_queries.assert_called_once_with(("/api/controls",), refetch=True)

    def test_flat_resource_invalidation(self) -> None:
        client = MagicMock()

        invalidate_resource(client, "processes")

        client.invalidate_queries.assert_called_once_with(("/api/processes",), refetch=True)

    def test_unknown_resource(self) -> None:
        with self.assertRaises(ValueError):
            invalidate_resource(MagicMock(), "spreadsheets")


if __name__ == "__main__":
    unittest.main()
