"""State codec: opaque JSON blobs <-> typed handler models."""

import hashlib
import json
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from converge.utils.errors import DecodeError, ErrorContext

M = TypeVar("M", bound=BaseModel)


def canonicalize(value: Any) -> bytes:
    """Encode a JSON-compatible value with sorted keys and no whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def encode(value: BaseModel) -> bytes:
    """Encode a typed config or state into its canonical blob."""
    return canonicalize(value.model_dump(mode="json"))


def decode(blob: bytes, shape: Type[M], what: str = "blob") -> M:
    """Decode a blob into ``shape``.

    Args:
        blob: Raw JSON bytes
        shape: Pydantic model describing the expected structure
        what: Label used in error messages ("desired config", "prior state")

    Returns:
        Validated model instance

    Raises:
        DecodeError: If the blob is not a JSON object or fails validation.
            The error's ``path`` names the first failing field.
    """
    if not blob or not blob.strip():
        raise DecodeError(f"{what} is empty")

    try:
        data = json.loads(blob)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"{what} is not valid JSON: {e}", cause=e)

    if not isinstance(data, dict):
        raise DecodeError(
            f"{what} must be a JSON object, got {type(data).__name__}", path=""
        )

    try:
        return shape.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        first = errors[0]
        path = ".".join(str(part) for part in first["loc"])
        raise DecodeError(
            f"{what} field '{path}': {first['msg']}",
            path=path,
            cause=e,
            context=ErrorContext(additional_info={
                "errors": [
                    {"path": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                    for err in errors
                ]
            }),
        )


def decode_optional(blob: Optional[bytes], shape: Type[M], what: str = "blob") -> Optional[M]:
    """Decode a blob that may be absent; absence is returned as None untouched."""
    if blob is None:
        return None
    return decode(blob, shape, what)


def is_untracked(blob: Optional[bytes]) -> bool:
    """An explicitly empty state means "no resource is tracked"."""
    return blob is not None and not blob.strip()


def blob_hash(blob: Optional[bytes]) -> Optional[str]:
    """SHA-256 of a blob, None when absent."""
    if blob is None:
        return None
    return hashlib.sha256(blob).hexdigest()
