import unittest
from unittest.mock import MagicMock, patch

from grclink.optimistic import (
    add_to_list,
    create_optimistic_mutation,
    invalidate_audit_relations,
    invalidate_entity,
    invalidate_process_relations,
    invalidate_risk_relations,
    remove_from_list,
    restore,
    soft_delete,
    update_in_list,
)
from grclink.query_client import QueryClient
from grclink.query_keys import query_keys


class OptimisticMutationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.refetched = []
        self.client = QueryClient(
            default_query_fn=lambda key: self.refetched.append(key) or [{"id": "server"}]
        )
        self.key = query_keys.risks.all()
        self.client.set_query_data(self.key, [{"id": "r-1", "name": "Fraude"}])

    def _create_mutation(self, mutation_fn, **kwargs):
        return create_optimistic_mutation(
            self.client,
            self.key,
            mutation_fn,
            get_optimistic_data=lambda risk: risk,
            update_cache=lambda items, risk, _variables: add_to_list(items, risk),
            **kwargs,
        )

    def test_optimistic_data_is_visible_during_mutation(self) -> None:
        seen = []

        def mutation_fn(risk):
            seen.append(self.client.get_query_data(self.key))
            return {"id": "r-2", **risk}

        on_success = MagicMock()
        result = self._create_mutation(mutation_fn, on_success=on_success)({"name": "Robo"})

        self.assertEqual(seen, [[{"id": "r-1", "name": "Fraude"}, {"name": "Robo"}]])
        self.assertEqual(result, {"id": "r-2", "name": "Robo"})
        on_success.assert_called_once_with(result)
        self.assertEqual(self.refetched, [self.key])
        self.assertEqual(self.client.get_query_data(self.key), [{"id": "server"}])

    def test_failure_restores_snapshot(self) -> None:
        on_error = MagicMock()
        error = RuntimeError("409 Conflict")
        mutate = self._create_mutation(MagicMock(side_effect=error), on_error=on_error)

        with self.assertRaises(RuntimeError):
            mutate({"name": "Robo"})

        self.assertEqual(self.client.get_query_data(self.key), [{"id": "r-1", "name": "Fraude"}])
        on_error.assert_called_once_with(error)
        self.assertEqual(self.refetched, [])

    def test_failure_without_snapshot_removes_entry(self) -> None:
        key = query_keys.controls.detail("c-1")
        mutate = create_optimistic_mutation(
            self.client,
            key,
            MagicMock(side_effect=ValueError("bad")),
            get_optimistic_data=lambda control: control,
        )

        with self.assertRaises(ValueError):
            mutate({"id": "c-1"})

        self.assertIsNone(self.client.get_query_state(key))

    def test_without_optimistic_data_cache_is_untouched(self) -> None:
        mutate = create_optimistic_mutation(self.client, self.key, lambda _v: "done")

        self.assertEqual(mutate(None), "done")
        self.assertEqual(self.refetched, [self.key])


class ListTransformTests(unittest.TestCase):
    def setUp(self) -> None:
        self.items = [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]

    def test_add_update_remove(self) -> None:
        self.assertEqual(add_to_list(None, {"id": 3}), [{"id": 3}])
        self.assertEqual(add_to_list(self.items, {"id": 3})[-1], {"id": 3})
        self.assertEqual(
            update_in_list(self.items, {"id": 2, "name": "z"}),
            [{"id": 1, "name": "a"}, {"id": 2, "name": "z"}],
        )
        self.assertEqual(remove_from_list(self.items, 1), [{"id": 2, "name": "b"}])
        self.assertEqual(update_in_list(None, {"id": 1}), [])
        self.assertEqual(remove_from_list([], 1), [])

    def test_inputs_are_not_mutated(self) -> None:
        update_in_list(self.items, {"id": 1, "name": "changed"})
        soft_delete(self.items, 1)

        self.assertEqual(self.items, [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])

    def test_soft_delete_and_restore(self) -> None:
        with patch("grclink.optimistic.Now.as_iso", return_value="2024-01-01T00:00:00+00:00"):
            deleted = soft_delete(self.items, 2, deleted_by="u-1", deletion_reason="duplicado")

        self.assertEqual(
            deleted[1],
            {
                "id": 2,
                "name": "b",
                "status": "deleted",
                "deletedBy": "u-1",
                "deletionReason": "duplicado",
                "deletedAt": "2024-01-01T00:00:00+00:00",
            },
        )
        self.assertEqual(deleted[0], self.items[0])
        restored = restore(deleted, 2)
        self.assertEqual(restored[1]["status"], "active")
        self.assertIsNone(restored[1]["deletedAt"])


class CacheStrategyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = QueryClient()
        for key in (
            ("/api/risks",),
            ("/api/risks", "r-1"),
            ("/api/risks", "r-1", "controls"),
            ("/api/risk-controls",),
            ("/api/controls",),
            ("/api/audits",),
            ("/api/users",),
        ):
            self.client.set_query_data(key, [])

    def _invalidated(self):
        return sorted(
            key for key in self.client.keys() if self.client.get_query_state(key).is_invalidated
        )

    def test_invalidate_entity(self) -> None:
        invalidate_entity(self.client, "controls")

        self.assertEqual(self._invalidated(), [("/api/controls",)])

    def test_risk_relations(self) -> None:
        count = invalidate_risk_relations(self.client, "r-1")

        self.assertEqual(
            self._invalidated(),
            [
                ("/api/controls",),
                ("/api/risk-controls",),
                ("/api/risks",),
                ("/api/risks", "r-1"),
                ("/api/risks", "r-1", "controls"),
            ],
        )
        self.assertEqual(count, 7)

    def test_process_relations(self) -> None:
        invalidate_process_relations(self.client, "p-1")

        self.assertEqual(
            self._invalidated(),
            [
                ("/api/controls",),
                ("/api/risks",),
                ("/api/risks", "r-1"),
                ("/api/risks", "r-1", "controls"),
            ],
        )

    def test_audit_relations(self) -> None:
        invalidate_audit_relations(self.client)

        self.assertEqual(self._invalidated(), [("/api/audits",)])


if __name__ == "__main__":
    unittest.main()
