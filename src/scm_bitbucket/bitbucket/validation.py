"""Response validation for Bitbucket API calls.

Two conventions coexist and callers match on their message text:

* check_response_error() for list and webhook operations, which reads
  Bitbucket's ``{"error": {"message", "detail": {"required"}}}`` envelope.
* check_status() for single-request lookups, which reports the raw body as
  ``STATUS CODE <code>: <body>``.
"""

import json
from typing import Any, Iterable, Optional

from ..scm.exceptions import ProviderError
from ..transport.executor import ScmResponse


def stringify(body: Any) -> str:
    """Serialize a response body compactly for error messages."""
    try:
        return json.dumps(body, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(body)


def reach(obj: Any, path: str, default: Any = None) -> Any:
    """Follow a dotted path through nested mappings (and list indices).

    Returns default as soon as a segment is missing or the value is None.
    """
    current = obj
    for segment in path.split("."):
        if isinstance(current, dict):
            current = current.get(segment)
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return default
        if current is None:
            return default
    return current


def check_response_error(response: ScmResponse) -> None:
    """Raise ProviderError unless the status code is 2xx.

    The message is ``<error.message> Reason "<error.detail.required>"``,
    defaulting to ``SCM service unavailable (<code>).`` and the stringified
    body respectively.
    """
    if response.ok:
        return

    error_message = reach(
        response.body,
        "error.message",
        default=f"SCM service unavailable ({response.status_code}).",
    )
    error_reason = reach(response.body, "error.detail.required")
    if error_reason is None:
        error_reason = stringify(response.body)

    raise ProviderError(
        f'{error_message} Reason "{error_reason}"',
        status_code=response.status_code,
        response_body=response.body,
    )


def check_status(
    response: ScmResponse,
    accepted: Iterable[int] = (200,),
    not_found_message: Optional[str] = None,
) -> None:
    """Raise ProviderError unless the status code is one of ``accepted``.

    When not_found_message is given, a 404 raises with that message instead.
    """
    if response.status_code in accepted:
        return

    if response.status_code == 404 and not_found_message:
        raise ProviderError(
            not_found_message,
            status_code=404,
            response_body=response.body,
        )

    raise ProviderError(
        f"STATUS CODE {response.status_code}: {stringify(response.body)}",
        status_code=response.status_code,
        response_body=response.body,
    )
