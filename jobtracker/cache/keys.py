"""Deterministic cache key construction.

Key layout (prefix defaults to "jobtracker"):
    {prefix}:chat:group:{group_id}:messages    sorted set, message id -> created_at ms
    {prefix}:chat:group:{group_id}:count       integer message count
    {prefix}:chat:message:{message_id}         msgpack CachedMessage
    {prefix}:jobs:user:{user_id}:query:{hash}  msgpack JobPage
"""

import hashlib
import json
import re
from collections.abc import Mapping
from typing import Any

# Values meaning "no filter"; they normalize to the field default
_EMPTY_VALUES = (None, "", "all")

_GLOB_SPECIALS = re.compile(r"([*?\[\]\\])")

JOB_FILTER_DEFAULTS: dict[str, Any] = {
    "archived": "false",
    "dateFrom": "",
    "dateTo": "",
    "limit": 50,
    "page": 1,
    "priority": "",
    "search": "",
    "sortBy": "dateApplied",
    "sortOrder": "desc",
    "status": "",
    "tags": "",
    "workType": "",
}


def escape_glob(value: str) -> str:
    """Escape Redis MATCH glob characters in a literal key segment."""
    return _GLOB_SPECIALS.sub(r"\\\1", value)


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v).strip() for v in value)
    return str(value).strip()


class CacheKeyBuilder:
    """Builds stable keys from an entity id and a parameter set.

    Normalization:
        1. Missing, None, "" and "all" become the field default
        2. Values are coerced to the default's type ("1" -> 1, True -> "true")
        3. Keys are sorted before serialization

    The normalized JSON is digested (SHA256, first 16 hex chars) and joined
    with the namespace and entity id, so parameter order and
    omitted-vs-default values never change the key.

    Example:
        >>> builder = CacheKeyBuilder("jobtracker:jobs", "user", JOB_FILTER_DEFAULTS)
        >>> builder.build("u1", {"status": "applied", "page": 1}) == builder.build(
        ...     "u1", {"page": "1", "status": "applied", "workType": None}
        ... )
        True
    """

    def __init__(
        self,
        namespace: str,
        entity: str,
        defaults: Mapping[str, Any] | None = None,
        digest_length: int = 16,
    ):
        self.namespace = namespace
        self.entity = entity
        self.defaults = dict(defaults or {})
        self.digest_length = digest_length

    def _coerce(self, raw: Any, default: Any) -> Any:
        if isinstance(default, bool):
            return _as_text(raw).lower() == "true"
        if isinstance(default, int):
            try:
                return int(_as_text(raw)) or default
            except ValueError:
                return default
        return _as_text(raw)

    def normalize(self, params: Mapping[str, Any] | None) -> dict[str, Any]:
        """Replace empty values with defaults and coerce types; keys sorted."""
        params = params or {}
        normalized: dict[str, Any] = {}

        for name, default in self.defaults.items():
            raw = params.get(name)
            if raw in _EMPTY_VALUES:
                normalized[name] = default
            else:
                normalized[name] = self._coerce(raw, default)

        # Parameters without a declared default only count when non-empty
        for name, raw in params.items():
            if name in self.defaults or raw in _EMPTY_VALUES:
                continue
            text = _as_text(raw)
            if text:
                normalized[name] = text

        return dict(sorted(normalized.items()))

    def digest(self, params: Mapping[str, Any] | None) -> str:
        """Fixed-length hash of the normalized parameters."""
        serialized = json.dumps(
            self.normalize(params), sort_keys=True, separators=(",", ":")
        )
        return hashlib.sha256(serialized.encode()).hexdigest()[: self.digest_length]

    def entity_prefix(self, entity_id: str) -> str:
        """Namespace shared by every key of one entity."""
        return f"{self.namespace}:{self.entity}:{entity_id}"

    def build(self, entity_id: str, params: Mapping[str, Any] | None = None) -> str:
        """Key for one entity and parameter set."""
        return f"{self.entity_prefix(entity_id)}:query:{self.digest(params)}"

    def entity_pattern(self, entity_id: str) -> str:
        """SCAN MATCH pattern covering every key of one entity."""
        return f"{self.namespace}:{self.entity}:{escape_glob(entity_id)}:*"


class ChatCacheKeys:
    """Key names for the chat cache."""

    def __init__(self, prefix: str = "jobtracker"):
        self.namespace = f"{prefix}:chat"

    def group_messages(self, group_id: str) -> str:
        """Hot window sorted set of a group."""
        return f"{self.namespace}:group:{group_id}:messages"

    def group_count(self, group_id: str) -> str:
        """Approximate message count of a group."""
        return f"{self.namespace}:group:{group_id}:count"

    def message(self, message_id: str) -> str:
        """Single cached message record."""
        return f"{self.namespace}:message:{message_id}"


def job_key_builder(prefix: str = "jobtracker") -> CacheKeyBuilder:
    """Key builder for job list queries."""
    return CacheKeyBuilder(f"{prefix}:jobs", "user", JOB_FILTER_DEFAULTS)
