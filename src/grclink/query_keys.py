"""Query-key factory and query-key to URL resolution.

Keys are tuples shaped ``(resource, id?, subresource?, params?)``. The same
arguments always produce equal keys, so reads, writes and invalidations hit
the same cache entries.

Examples:
    ``("/api/risks",)`` list, ``("/api/risks", "risk-123")`` detail,
    ``("/api/risks", "risk-123", "controls")`` nested,
    ``("/api/risks", {"limit": 50})`` with query parameters.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

if TYPE_CHECKING:
    from grclink.query_client import QueryClient

QueryKey = tuple[Any, ...]


def normalize_query_key(query_key: str | Sequence[Any]) -> QueryKey:
    if isinstance(query_key, str):
        return (query_key,)
    return tuple(query_key)


def _coerce_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query_url(query_key: str | Sequence[Any]) -> str:
    """Resolve a query key into the request path.

    A mapping in second position becomes the query string, skipping ``None``
    values. Any other multi-part key is joined with ``/``.

    Args:
        query_key: Query key tuple or a bare path.

    Returns:
        Request path, possibly with a query string.
    """

    key = normalize_query_key(query_key)
    url = str(key[0])
    if len(key) > 1 and isinstance(key[1], Mapping):
        params = [
            (str(name), _coerce_param(value))
            for name, value in key[1].items()
            if value is not None
        ]
        if params:
            url = f"{url}?{urlencode(params)}"
    elif len(key) > 1:
        url = "/".join(str(part) for part in key)
    return url


def stable_params(params: Mapping[str, Any] | None = None) -> str:
    """Serialize parameters with sorted keys for use inside a query key."""

    return json.dumps(dict(params or {}), sort_keys=True, separators=(",", ":"))


class AuditKeys:
    @staticmethod
    def all() -> QueryKey:
        return ("/api/audits",)

    @staticmethod
    def detail(audit_id: str | None) -> QueryKey:
        return ("/api/audits", audit_id)

    @staticmethod
    def risks(audit_id: str | None) -> QueryKey:
        return ("/api/audits", audit_id, "risks")

    @staticmethod
    def ad_hoc_risks(audit_id: str | None) -> QueryKey:
        return ("/api/audits", audit_id, "ad-hoc-risks")

    @staticmethod
    def controls_scope(audit_id: str | None) -> QueryKey:
        return ("/api/audits", audit_id, "controls-scope")

    @staticmethod
    def milestones(audit_id: str | None) -> QueryKey:
        return ("/api/audits", audit_id, "milestones")


class AuditPlanKeys:
    @staticmethod
    def all() -> QueryKey:
        return ("/api/audit-plans",)

    @staticmethod
    def detail(plan_id: str | None) -> QueryKey:
        return ("/api/audit-plans", plan_id)

    @staticmethod
    def prioritization(plan_id: str | None) -> QueryKey:
        return ("/api/audit-plans", plan_id, "prioritization")


class RiskKeys:
    @staticmethod
    def all() -> QueryKey:
        return ("/api/risks",)

    @staticmethod
    def paginated(params: Mapping[str, Any] | None = None) -> QueryKey:
        return ("/api/risks", "paginated", stable_params(params))

    @staticmethod
    def detail(risk_id: str | None) -> QueryKey:
        return ("/api/risks", risk_id)

    @staticmethod
    def controls(risk_id: str | None) -> QueryKey:
        return ("/api/risks", risk_id, "controls")

    @staticmethod
    def validation_status(risk_id: str | None) -> QueryKey:
        return ("/api/risks", risk_id, "validation-status")

    @staticmethod
    def processes(risk_id: str | None) -> QueryKey:
        return ("/api/risk-processes", "risk", risk_id)

    @staticmethod
    def with_controls(params: Mapping[str, Any] | None = None) -> QueryKey:
        return ("/api/risks/with-controls", stable_params(params))


class ControlKeys:
    @staticmethod
    def all() -> QueryKey:
        return ("/api/controls",)

    @staticmethod
    def paginated(params: Mapping[str, Any] | None = None) -> QueryKey:
        return ("/api/controls", "paginated", stable_params(params))

    @staticmethod
    def detail(control_id: str | None) -> QueryKey:
        return ("/api/controls", control_id)

    @staticmethod
    def risks(control_id: str | None) -> QueryKey:
        return ("/api/controls", control_id, "risks")

    @staticmethod
    def with_details(params: Mapping[str, Any] | None = None) -> QueryKey:
        return ("/api/controls/with-details", stable_params(params))


class RiskEventKeys:
    @staticmethod
    def all() -> QueryKey:
        return ("/api/risk-events",)

    @staticmethod
    def by_risk(risk_id: str | None) -> QueryKey:
        return ("/api/risk-events", "risk", risk_id)


class TenantKeys:
    @staticmethod
    def all() -> QueryKey:
        return ("/api/tenants",)

    @staticmethod
    def detail(tenant_id: str | None) -> QueryKey:
        return ("/api/tenants", tenant_id)

    @staticmethod
    def users(tenant_id: str | None) -> QueryKey:
        return ("/api/tenants", tenant_id, "users")


class UserKeys:
    @staticmethod
    def all() -> QueryKey:
        return ("/api/users",)

    @staticmethod
    def detail(user_id: str | None) -> QueryKey:
        return ("/api/users", user_id)

    @staticmethod
    def roles(user_id: str | None) -> QueryKey:
        return ("/api/users", user_id, "roles")


class AuthKeys:
    @staticmethod
    def me() -> QueryKey:
        return ("/api/auth/me",)

    @staticmethod
    def user() -> QueryKey:
        return ("/api/auth/user",)


class SystemConfigKeys:
    @staticmethod
    def risk_level_ranges() -> QueryKey:
        return ("/api/system-config/risk-level-ranges",)

    @staticmethod
    def risk_decimals() -> QueryKey:
        return ("/api/system-config/risk-decimals",)


class DashboardKeys:
    @staticmethod
    def risk_matrix() -> QueryKey:
        return ("/api/dashboard/risk-matrix",)

    @staticmethod
    def stats() -> QueryKey:
        return ("/api/dashboard/stats",)

    @staticmethod
    def risk_trends() -> QueryKey:
        return ("/api/dashboard/risk-trends",)

    @staticmethod
    def alerts() -> QueryKey:
        return ("/api/dashboard/alerts",)


def _flat(path: str):
    return staticmethod(lambda: (path,))


class QueryKeys:
    """Single source of cache keys for every API resource."""

    audits = AuditKeys
    audit_plans = AuditPlanKeys
    risks = RiskKeys
    controls = ControlKeys
    risk_events = RiskEventKeys
    tenants = TenantKeys
    users = UserKeys
    auth = AuthKeys
    system_config = SystemConfigKeys
    dashboard = DashboardKeys

    processes = _flat("/api/processes")
    macroprocesos = _flat("/api/macroprocesos")
    subprocesos = _flat("/api/subprocesos")
    gerencias = _flat("/api/gerencias")
    process_owners = _flat("/api/process-owners")
    action_plans = _flat("/api/action-plans")
    trash = _flat("/api/trash")
    risk_controls = _flat("/api/risk-controls")
    risk_controls_with_details = _flat("/api/risk-controls-with-details")
    risk_processes = _flat("/api/risk-processes")
    roles = _flat("/api/roles")
    user_roles = _flat("/api/user-roles")
    ai_status = _flat("/api/ai/status")
    csrf_token = _flat("csrf-token")


query_keys = QueryKeys


def invalidate_resource(
    query_client: QueryClient, resource: str, resource_id: str | None = None
) -> int:
    """Invalidate every cached query of a resource.

    Args:
        query_client: Cache to invalidate.
        resource: Attribute name on ``QueryKeys`` (``"risks"``, ``"processes"``...).
        resource_id: When given, only the detail key and its nested keys.

    Returns:
        Number of invalidated cache entries.

    Raises:
        ValueError: When the resource is unknown.
    """

    entry = getattr(QueryKeys, resource, None)
    if entry is None:
        raise ValueError(f"Unknown query resource: {resource}")
    if not isinstance(entry, type):
        return query_client.invalidate_queries(entry(), refetch=True)
    if resource_id and hasattr(entry, "detail"):
        return query_client.invalidate_queries(entry.detail(resource_id), refetch=True)
    if hasattr(entry, "all"):
        return query_client.invalidate_queries(entry.all(), refetch=True)
    return 0
