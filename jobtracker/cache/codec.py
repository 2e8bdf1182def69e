"""MessagePack encoding of cached pydantic models."""

from typing import Any, TypeVar

import msgpack
from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


def encode(model: BaseModel) -> bytes:
    """Serialize a model's JSON-mode dump (datetimes become ISO strings)."""
    return msgpack.packb(model.model_dump(mode="json"), use_bin_type=True)


def decode_dict(data: bytes) -> dict[str, Any]:
    """Raw field dict of a cached value."""
    return msgpack.unpackb(data, raw=False)


def decode(data: bytes, model: type[M]) -> M:
    """Deserialize and re-validate so cache hits match store reads."""
    return model.model_validate(decode_dict(data))
