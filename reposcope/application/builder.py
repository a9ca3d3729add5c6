"""Generic request-builder core shared by every resource handler.

A builder is a frozen dataclass whose fields are the request parameters.
Fields are declared with :func:`param`; setters return a modified copy via
:meth:`RequestBuilder._set`, so a builder value is never mutated and
independent call chains never share state.

Serialization omits every optional field that was not set. The API treats
an omitted field differently from an explicit ``null``, so ``None`` is
reserved to mean "absent" and is never written to the parameter bag.
"""
import dataclasses
from typing import Any, Dict, Optional, TypeVar

from reposcope.domain.errors import InvalidArgumentError


B = TypeVar("B", bound="RequestBuilder")

_WIRE_NAME = "reposcope.wire_name"
_SERIALIZE = "reposcope.serialize"

U8_MAX = 2 ** 8 - 1
U32_MAX = 2 ** 32 - 1


def param(
    *,
    wire_name: Optional[str] = None,
    serialize: bool = True,
    required: bool = False,
) -> Any:
    """Declare a builder field.

    Args:
        wire_name: Name used in the serialized bag; defaults to the attribute name
        serialize: False for linkage fields (e.g. the owning handler)
        required: Required fields have no default and must be passed to the constructor
    """
    metadata = {_WIRE_NAME: wire_name, _SERIALIZE: serialize}
    if required:
        return dataclasses.field(metadata=metadata)
    return dataclasses.field(default=None, metadata=metadata)


def to_unsigned(value: Any, maximum: int, field_name: str) -> int:
    """Convert ``value`` to an unsigned integer no larger than ``maximum``."""
    if isinstance(value, bool):
        raise InvalidArgumentError(f"{field_name} must be an integer, got bool")
    try:
        converted = int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidArgumentError(f"{field_name} must be an integer, got {value!r}") from e
    # int() truncates floats, Decimals and Fractions
    if not isinstance(value, (int, str)) and converted != value:
        raise InvalidArgumentError(f"{field_name} must be a whole number, got {value!r}")
    if not 0 <= converted <= maximum:
        raise InvalidArgumentError(
            f"{field_name} must be between 0 and {maximum}, got {converted}"
        )
    return converted


def to_text(value: Any, field_name: str) -> str:
    """Accept a string; anything else is a construction error."""
    if not isinstance(value, str):
        raise InvalidArgumentError(
            f"{field_name} must be a string, got {type(value).__name__}"
        )
    return value


def to_flag(value: Any, field_name: str) -> bool:
    """Accept a real bool only; truthy strings such as ``"false"`` are rejected."""
    if not isinstance(value, bool):
        raise InvalidArgumentError(
            f"{field_name} must be a bool, got {type(value).__name__}"
        )
    return value


def require_text(value: Any, field_name: str) -> str:
    """Like :func:`to_text`, but blank strings are rejected too."""
    text = to_text(value, field_name)
    if not text.strip():
        raise InvalidArgumentError(f"{field_name} must not be empty")
    return text


@dataclasses.dataclass(frozen=True)
class RequestBuilder:
    """Base class for operation builders."""

    def _set(self: B, **changes: Any) -> B:
        return dataclasses.replace(self, **changes)

    def to_params(self) -> Dict[str, Any]:
        """Serialize the present fields into a fresh parameter bag.

        Linkage fields and absent optional fields are left out.
        """
        bag: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            if not f.metadata.get(_SERIALIZE, True):
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            bag[f.metadata.get(_WIRE_NAME) or f.name] = value
        return bag
