"""Cross-store identity join.

Records fetched from one store reference users living in another. Instead of
a per-record lookup, the join runs in two phases: gather the distinct foreign
ids, resolve them in one batched call, then merge by id.
"""

from collections.abc import Callable, Sequence
from typing import TypeVar

from jobtracker.core.models import UserSnapshot
from jobtracker.core.stores import IdentityResolver

T = TypeVar("T")
R = TypeVar("R")


def collect_foreign_ids(records: Sequence[T], key: Callable[[T], str | None]) -> list[str]:
    """Distinct non-empty foreign ids in first-seen order."""
    seen: dict[str, None] = {}
    for record in records:
        foreign_id = key(record)
        if foreign_id:
            seen.setdefault(foreign_id, None)
    return list(seen)


async def attach_identities(
    records: Sequence[T],
    resolver: IdentityResolver,
    key: Callable[[T], str | None],
    attach: Callable[[T, UserSnapshot | None], R],
) -> list[R]:
    """Resolve every record's foreign user id with a single batched call.

    Args:
        records: Records fetched from the first store
        resolver: Identity collaborator backed by the second store
        key: Extracts the foreign user id from a record
        attach: Builds the output record from (record, snapshot or None)

    Returns:
        One output record per input record, in input order

    Raises:
        Whatever the resolver raises; store errors are not swallowed here.
    """
    ids = collect_foreign_ids(records, key)
    identities = await resolver.resolve_identities(ids) if ids else {}
    return [
        attach(record, identities.get(key(record) or ""))
        for record in records
    ]
