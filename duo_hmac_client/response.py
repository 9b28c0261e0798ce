"""
Parsing of the Duo JSON response envelope.

A body that cannot be interpreted raises :class:`BadResponseError`; a
well-formed envelope with ``stat: FAIL`` raises :class:`ApiError`. Callers can
tell a broken payload apart from a business error reported by the server.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional

from .exceptions import ApiError, BadResponseError

STAT_OK = "OK"
STAT_FAIL = "FAIL"


@dataclass(frozen=True)
class PagingInfo:
    next_offset: Optional[Any] = None
    prev_offset: Optional[int] = None
    total_objects: Optional[int] = None

    @classmethod
    def from_metadata(cls, metadata) -> "PagingInfo":
        if not isinstance(metadata, dict):
            return cls()
        return cls(
            next_offset=metadata.get("next_offset"),
            prev_offset=metadata.get("prev_offset"),
            total_objects=metadata.get("total_objects"),
        )


@dataclass(frozen=True)
class Envelope:
    stat: str
    response: Any
    metadata: PagingInfo


def parse_envelope(body, http_status: int) -> Envelope:
    """
    Parse a response body.

    Args:
        body: Response text or bytes
        http_status: HTTP status of the response, kept on raised errors

    Returns:
        The parsed envelope when stat is OK

    Raises:
        BadResponseError: If the body is not a valid envelope
        ApiError: If the envelope reports stat FAIL
    """
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise BadResponseError(http_status, e) from e

    if not isinstance(data, dict):
        raise BadResponseError(http_status, "response is not a JSON object")

    stat = data.get("stat")
    if stat == STAT_OK:
        return Envelope(stat, data.get("response"), PagingInfo.from_metadata(data.get("metadata")))
    if stat == STAT_FAIL:
        raise ApiError(
            data.get("code") or 0,
            http_status,
            data.get("message"),
            data.get("message_detail"),
        )
    raise BadResponseError(http_status, f"unexpected stat {stat!r}")
