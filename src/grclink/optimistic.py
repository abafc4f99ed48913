"""Optimistic cache updates with rollback, and list transforms keyed by ``id``."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from grclink.query_client import QueryClient
from grclink.query_keys import normalize_query_key
from grclink.utils.logger import get_logger
from grclink.utils.now import Now

logger = get_logger(__name__)

D = TypeVar("D")
V = TypeVar("V")

Record = Mapping[str, Any]


def create_optimistic_mutation(
    query_client: QueryClient,
    query_key: str | Sequence[Any],
    mutation_fn: Callable[[V], D],
    *,
    get_optimistic_data: Callable[[V], Any] | None = None,
    update_cache: Callable[[Any, Any, V], Any] | None = None,
    on_success: Callable[[D], None] | None = None,
    on_error: Callable[[Exception], None] | None = None,
) -> Callable[[V], D]:
    """Build a mutation that patches the cache before the server answers.

    The returned callable snapshots the cached data for ``query_key``,
    applies the optimistic value (merged through ``update_cache`` when data
    was cached), and runs ``mutation_fn``. Success invalidates and refetches
    the key; failure restores the snapshot and re-raises.

    Args:
        query_client: Cache holding the query.
        query_key: Key whose data the mutation changes.
        mutation_fn: Call performing the real mutation.
        get_optimistic_data: Computes the presumed result from the variables.
        update_cache: Merges the presumed result into the cached data.
        on_success: Called with the mutation result.
        on_error: Called with the mutation error before it is re-raised.

    Returns:
        The mutation callable.

    Example:
        >>> create_risk = create_optimistic_mutation(
        ...     runtime.query_client,
        ...     QueryKeys.risks.all(),
        ...     lambda risk: runtime.api.api_request("POST", "/api/risks", risk),
        ...     get_optimistic_data=lambda risk: risk,
        ...     update_cache=lambda items, risk, _: add_to_list(items, risk),
        ... )
    """

    key = normalize_query_key(query_key)

    def mutate(variables: V) -> D:
        previous = query_client.get_query_data(key)
        if get_optimistic_data is not None:
            optimistic = get_optimistic_data(variables)
            if update_cache is not None and previous is not None:
                query_client.set_query_data(key, update_cache(previous, optimistic, variables))
            else:
                query_client.set_query_data(key, optimistic)
        try:
            data = mutation_fn(variables)
        except Exception as exc:
            logger.warning("Mutation for %s failed, rolling back: %s", key, exc)
            if previous is None:
                query_client.remove_queries(key, exact=True)
            else:
                query_client.set_query_data(key, previous)
            if on_error is not None:
                on_error(exc)
            raise
        query_client.invalidate_queries(key, refetch=True)
        if on_success is not None:
            on_success(data)
        return data

    return mutate


def add_to_list(items: Sequence[Record] | None, new_item: Record) -> list[Record]:
    if not items:
        return [new_item]
    return [*items, new_item]


def update_in_list(items: Sequence[Record] | None, updated_item: Record) -> list[Record]:
    if not items:
        return []
    item_id = updated_item["id"]
    return [{**item, **updated_item} if item.get("id") == item_id else item for item in items]


def remove_from_list(items: Sequence[Record] | None, item_id: Any) -> list[Record]:
    if not items:
        return []
    return [item for item in items if item.get("id") != item_id]


def soft_delete(
    items: Sequence[Record] | None,
    item_id: Any,
    deleted_by: str | None = None,
    deletion_reason: str | None = None,
) -> list[Record]:
    """Mark one record deleted, stamping who, why and when."""

    if not items:
        return []
    deleted_at = Now.as_iso()
    return [
        {
            **item,
            "status": "deleted",
            "deletedBy": deleted_by,
            "deletionReason": deletion_reason,
            "deletedAt": deleted_at,
        }
        if item.get("id") == item_id
        else item
        for item in items
    ]


def restore(items: Sequence[Record] | None, item_id: Any) -> list[Record]:
    if not items:
        return []
    return [
        {
            **item,
            "status": "active",
            "deletedBy": None,
            "deletionReason": None,
            "deletedAt": None,
        }
        if item.get("id") == item_id
        else item
        for item in items
    ]


def invalidate_entity(
    query_client: QueryClient, entity_type: str, entity_id: str | None = None
) -> int:
    """Invalidate an entity list and, with an id, its detail queries."""
    return invalidate_with_relations(query_client, entity_type, (), entity_id)


def invalidate_with_relations(
    query_client: QueryClient,
    entity_type: str,
    related_types: Iterable[str],
    entity_id: str | None = None,
) -> int:
    keys: list[tuple[str, ...]] = [(f"/api/{entity_type}",)]
    keys.extend((f"/api/{related}",) for related in related_types)
    if entity_id:
        keys.append((f"/api/{entity_type}", entity_id))
    return sum(query_client.invalidate_queries(key) for key in keys)


def invalidate_risk_relations(query_client: QueryClient, risk_id: str | None = None) -> int:
    return invalidate_with_relations(
        query_client,
        "risks",
        ("risk-controls", "risk-events", "action-plans", "controls"),
        risk_id,
    )


def invalidate_process_relations(
    query_client: QueryClient, process_id: str | None = None
) -> int:
    return invalidate_with_relations(
        query_client,
        "processes",
        ("risks", "controls", "macroprocesos", "subprocesos"),
        process_id,
    )


def invalidate_audit_relations(query_client: QueryClient, audit_id: str | None = None) -> int:
    return invalidate_with_relations(
        query_client,
        "audits",
        ("audit-tests", "audit-findings", "audit-reports", "commitments"),
        audit_id,
    )
