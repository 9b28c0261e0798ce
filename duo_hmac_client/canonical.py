"""
Parameter canonicalization shared by the query string, the form body and the
signature base string. The three must match character for character, so every
code path that serializes parameters goes through :func:`canonicalize`.
"""

import re
from typing import Any, Iterable, List, Mapping, Optional
from urllib.parse import quote_plus

_HEX_ESCAPE = re.compile(r"%[0-9A-Fa-f]{2}")
_RESERVED = re.compile(r"[!'()*]")


def finish_canonicalize(segment: str) -> str:
    """
    Post-process a form-encoded ``key=value`` segment.

    Signatures require upper-case hex digits, ``!'()*`` escaped, ``~`` left
    literal and ``%20`` for spaces. A real ``+`` is already ``%2B`` at this point.
    """
    segment = _HEX_ESCAPE.sub(lambda m: m.group(0).upper(), segment)
    segment = _RESERVED.sub(lambda m: "%%%02X" % ord(m.group(0)), segment)
    segment = segment.replace("%7E", "~")
    return segment.replace("+", "%20")


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _values(value: Any) -> Iterable[str]:
    if isinstance(value, (list, tuple)):
        return [_to_text(v) for v in value]
    return [_to_text(value)]


def encode_segments(params: Optional[Mapping[str, Any]]) -> List[str]:
    """
    Return one encoded segment per key, unsorted.

    A list value becomes ``key=v1&key=v2`` in list order and stays one segment.
    """
    segments = []
    for key, value in (params or {}).items():
        encoded_key = quote_plus(_to_text(key), safe="")
        segment = "&".join(f"{encoded_key}={quote_plus(item, safe='')}"
                           for item in _values(value))
        segments.append(finish_canonicalize(segment))
    return segments


def canonicalize(params: Optional[Mapping[str, Any]]) -> str:
    """
    Canonicalize request parameters.

    List values expand to repeated ``key=value`` pairs kept together in list
    order. The per-key segments are sorted by ordinal comparison of the encoded
    text, so the result does not depend on the mapping's iteration order.

    Args:
        params: Mapping of parameter name to a string or a list of strings

    Returns:
        The canonical string, empty when there are no parameters
    """
    return "&".join(sorted(encode_segments(params)))
