"""Decoding of tool-call arguments.

Providers send arguments in their transport encoding, usually a JSON object
serialized as a string. Everything is normalized to ``dict[str, JsonValue]``
where ``JsonValue`` is pydantic's tagged JSON value (str, int, float, bool,
None, list, dict), so tools never see arbitrary Python objects.
"""

import json
from typing import Any, Mapping, Optional, Union

from pydantic import JsonValue, TypeAdapter, ValidationError

from react_loop.exceptions import ArgumentParseError

Arguments = dict[str, JsonValue]

_ARGUMENTS_ADAPTER = TypeAdapter(Arguments)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    error = errors[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def parse_arguments(raw: Union[str, bytes, Mapping[str, Any], None]) -> Arguments:
    """Decode raw tool-call arguments into a JSON object mapping.

    Args:
        raw: JSON text, an already-decoded mapping, or None.

    Returns:
        The decoded arguments. Empty input decodes to an empty dict.

    Raises:
        ArgumentParseError: If the payload is not valid JSON, is not a JSON
            object, or holds values that aren't JSON-representable.
    """
    if raw is None:
        return {}

    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            return {}
        try:
            return _ARGUMENTS_ADAPTER.validate_json(raw)
        except ValidationError as e:
            raise ArgumentParseError(f"invalid JSON arguments ({_first_error(e)})") from e

    if isinstance(raw, Mapping):
        try:
            return _ARGUMENTS_ADAPTER.validate_python(dict(raw))
        except ValidationError as e:
            raise ArgumentParseError(f"arguments are not JSON values ({_first_error(e)})") from e

    raise ArgumentParseError(
        f"arguments must be a JSON object, got {type(raw).__name__}"
    )


def dump_arguments(arguments: Union[str, Mapping[str, Any], None]) -> str:
    """Encode arguments back to their JSON transport form."""
    if arguments is None:
        return "{}"
    if isinstance(arguments, str):
        return arguments or "{}"
    return json.dumps(dict(arguments))


def try_parse_arguments(raw: Union[str, Mapping[str, Any], None]) -> Optional[Arguments]:
    """Like parse_arguments but returns None on failure."""
    try:
        return parse_arguments(raw)
    except ArgumentParseError:
        return None
