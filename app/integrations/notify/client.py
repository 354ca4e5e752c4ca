"""GC Notify client.

Thin HTTP client for the GC Notify v2 API, used by the SMS and email
delivery channels. Every call returns an OperationResult; HTTP status codes
and ``requests`` exceptions are classified so callers can tell transient
failures from permanent rejections.
"""

import calendar
import time
from typing import Any, Dict, Optional, Tuple

import jwt
import requests

from infrastructure.configuration.integrations.notify import NotifySettings
from infrastructure.logging import get_module_logger, mask_contact
from infrastructure.operations import (
    OperationResult,
    classify_http_response,
    classify_request_exception,
)

logger = get_module_logger()


# generate the epoch seconds for the jwt token
def epoch_seconds():
    return calendar.timegm(time.gmtime())


def create_jwt_token(secret, client_id):
    """
    Generate a JWT Token for the Notify API

    Tokens have a header consisting of:
    {
        "typ": "JWT",
        "alg": "HS256"
    }

    Parameters:
    secret: Application signing secret
    client_id: Identifier for the client

    Claims are:
    iss: identifier for the client
    iat: epoch seconds for the token (UTC)

    Returns a JWT token for this request
    """
    if not secret:
        logger.error("jwt_token_creation_failed", error="Missing secret key")
        raise ValueError("Missing secret key")
    if not client_id:
        logger.error("jwt_token_creation_failed", error="Missing client id")
        raise ValueError("Missing client id")

    headers = {"typ": "JWT", "alg": "HS256"}

    claims = {"iss": client_id, "iat": epoch_seconds()}
    t = jwt.encode(payload=claims, key=secret, headers=headers)
    if isinstance(t, str):
        return t
    else:
        return t.decode()


class NotifyClient:
    """GC Notify API client for SMS and email deliveries.

    Args:
        settings: NotifySettings with API URL, credentials and template ids.
        session: Optional ``requests`` session (tests inject a mock).
    """

    def __init__(
        self,
        settings: NotifySettings,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings
        self._api_url = settings.NOTIFY_API_URL.rstrip("/")
        self._timeout = settings.NOTIFY_TIMEOUT_SECONDS
        self._session = session or requests.Session()

    @property
    def api_url(self) -> str:
        return self._api_url

    def create_authorization_header(self) -> Tuple[str, str]:
        """Create the authorization header for the Notify API"""
        client_id = self._settings.NOTIFY_CLIENT_ID
        secret = self._settings.NOTIFY_CLIENT_SECRET

        if not client_id:
            error = "NOTIFY_CLIENT_ID is missing"
            logger.error("authorization_header_creation_failed", error=error)
            raise ValueError(error)
        if not secret:
            error = "NOTIFY_CLIENT_SECRET is missing"
            logger.error("authorization_header_creation_failed", error=error)
            raise ValueError(error)

        token = create_jwt_token(secret=secret, client_id=client_id)
        return "Authorization", "Bearer {}".format(token)

    def post(self, path: str, payload: Dict[str, Any]) -> OperationResult:
        """Post a payload to a Notify API path and classify the response."""
        if not self._api_url:
            return OperationResult.permanent_error(
                message="NOTIFY_API_URL is not configured",
                error_code="NOT_CONFIGURED",
            )

        try:
            header_key, header_value = self.create_authorization_header()
        except ValueError as e:
            return OperationResult.permanent_error(
                message=str(e), error_code="MISSING_CREDENTIALS"
            )

        headers = {header_key: header_value, "Content-Type": "application/json"}
        url = f"{self._api_url}{path}"

        try:
            response = self._session.post(
                url, json=payload, headers=headers, timeout=self._timeout
            )
        except requests.RequestException as e:
            logger.warning("notify_request_failed", path=path, error=str(e))
            return classify_request_exception(e)

        result = classify_http_response(response)
        if not result.is_success:
            logger.warning(
                "notify_request_rejected",
                path=path,
                status_code=response.status_code,
                error_code=result.error_code,
            )
        return result

    def send_sms(
        self,
        phone_number: str,
        message: str,
        reference: Optional[str] = None,
    ) -> OperationResult:
        """Send an SMS through the configured SMS template.

        Returns:
            OperationResult with ``notification_id`` in data on success.
        """
        payload: Dict[str, Any] = {
            "phone_number": phone_number,
            "template_id": self._settings.NOTIFY_SMS_TEMPLATE_ID,
            "personalisation": {"message": message},
        }
        if reference:
            payload["reference"] = reference

        result = self.post("/v2/notifications/sms", payload)
        if result.is_success:
            logger.info(
                "notify_sms_accepted", phone_number=mask_contact(phone_number)
            )
            return OperationResult.success(
                message="SMS accepted by GC Notify",
                data={"notification_id": (result.data or {}).get("id")},
            )
        return result

    def send_email(
        self,
        email_address: str,
        subject: str,
        body: str,
        reference: Optional[str] = None,
    ) -> OperationResult:
        """Send an email through the configured email template.

        Returns:
            OperationResult with ``notification_id`` in data on success.
        """
        payload: Dict[str, Any] = {
            "email_address": email_address,
            "template_id": self._settings.NOTIFY_EMAIL_TEMPLATE_ID,
            "personalisation": {"subject": subject, "body": body},
        }
        if reference:
            payload["reference"] = reference

        result = self.post("/v2/notifications/email", payload)
        if result.is_success:
            logger.info("notify_email_accepted", email=mask_contact(email_address))
            return OperationResult.success(
                message="Email accepted by GC Notify",
                data={"notification_id": (result.data or {}).get("id")},
            )
        return result

    def check_credentials(self) -> OperationResult:
        """Verify the client can sign requests (no network call)."""
        if not self._api_url:
            return OperationResult.permanent_error(
                message="NOTIFY_API_URL is not configured",
                error_code="NOT_CONFIGURED",
            )
        try:
            self.create_authorization_header()
        except ValueError as e:
            return OperationResult.permanent_error(
                message=str(e), error_code="MISSING_CREDENTIALS"
            )
        return OperationResult.success(
            message="GC Notify API credentials valid",
            data={"api_url": self._api_url},
        )
