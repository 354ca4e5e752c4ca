"""Error classifiers for delivery gateway responses and exceptions.

Converts HTTP responses and ``requests`` exceptions into OperationResult so
channel adapters only deal with one result type.

Usage:
    from infrastructure.operations.classifiers import classify_http_response

    response = requests.post(url, json=payload, timeout=10)
    result = classify_http_response(response)
"""

from typing import Optional

import requests

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus


def _retry_after(response: requests.Response) -> Optional[int]:
    header_value = response.headers.get("Retry-After") if response.headers else None
    if not header_value:
        return None
    try:
        return int(header_value)
    except (ValueError, TypeError):
        return None


def classify_http_response(response: requests.Response) -> OperationResult:
    """Classify an HTTP response into an OperationResult.

    Status Code Mapping:
    - 2xx: SUCCESS, parsed JSON body (if any) in data
    - 429: TRANSIENT_ERROR with retry_after
    - 401/403: UNAUTHORIZED
    - 404: NOT_FOUND
    - other 4xx: PERMANENT_ERROR (the gateway rejected the payload)
    - 5xx: TRANSIENT_ERROR

    Args:
        response: Response returned by ``requests``

    Returns:
        OperationResult describing the response
    """
    status_code = response.status_code

    if 200 <= status_code < 300:
        try:
            body = response.json()
        except ValueError:
            body = None
        return OperationResult.success(data=body, message=f"HTTP {status_code}")

    if status_code == 429:
        return OperationResult.error(
            OperationStatus.TRANSIENT_ERROR,
            "Delivery gateway rate limited",
            error_code="RATE_LIMITED",
            retry_after=_retry_after(response),
        )

    if status_code in (401, 403):
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            f"Delivery gateway rejected credentials: HTTP {status_code}",
            error_code=f"HTTP_{status_code}",
        )

    if status_code == 404:
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            "Delivery gateway endpoint not found",
            error_code="NOT_FOUND",
        )

    if status_code >= 500:
        return OperationResult.transient_error(
            f"Delivery gateway error: HTTP {status_code}",
            error_code=f"HTTP_{status_code}",
        )

    return OperationResult.permanent_error(
        f"Delivery gateway rejected request: HTTP {status_code}",
        error_code=f"HTTP_{status_code}",
    )


def classify_request_exception(exc: Exception) -> OperationResult:
    """Classify an exception raised while calling the gateway.

    Timeouts and connection failures are transient; anything else raised by
    ``requests`` is treated as permanent.
    """
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return OperationResult.transient_error(
            f"Connection error: {type(exc).__name__}: {exc}",
            error_code="CONNECTION_ERROR",
        )

    return OperationResult.permanent_error(
        f"Request error: {type(exc).__name__}: {exc}",
        error_code="REQUEST_ERROR",
    )
