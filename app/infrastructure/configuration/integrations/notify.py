"""GC Notify integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class NotifySettings(IntegrationSettings):
    """GC Notify API configuration (SMS and email gateway).

    Environment Variables:
        NOTIFY_API_URL: GC Notify API endpoint URL
        NOTIFY_CLIENT_ID: Service id used as the JWT issuer
        NOTIFY_CLIENT_SECRET: Service API secret used to sign the JWT
        NOTIFY_SMS_TEMPLATE_ID: Template used for SMS deliveries
        NOTIFY_EMAIL_TEMPLATE_ID: Template used for email deliveries
        NOTIFY_TIMEOUT_SECONDS: HTTP timeout per request (default: 10s)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        api_url = settings.notify.NOTIFY_API_URL
        ```
    """

    NOTIFY_API_URL: str = Field(default="", alias="NOTIFY_API_URL")
    NOTIFY_CLIENT_ID: str | None = Field(default=None, alias="NOTIFY_CLIENT_ID")
    NOTIFY_CLIENT_SECRET: str | None = Field(
        default=None, alias="NOTIFY_CLIENT_SECRET"
    )
    NOTIFY_SMS_TEMPLATE_ID: str = Field(default="", alias="NOTIFY_SMS_TEMPLATE_ID")
    NOTIFY_EMAIL_TEMPLATE_ID: str = Field(
        default="", alias="NOTIFY_EMAIL_TEMPLATE_ID"
    )
    NOTIFY_TIMEOUT_SECONDS: float = Field(default=10.0, alias="NOTIFY_TIMEOUT_SECONDS")
