import jwt
import pytest
import requests
from integrations.notify import client as notify
from infrastructure.configuration.integrations.notify import NotifySettings
from infrastructure.operations import OperationStatus
from unittest.mock import patch, MagicMock
from freezegun import freeze_time


# helper function to decode the token for testing
def decode_token(token, secret):
    return jwt.decode(
        token, key=secret, options={"verify_signature": True}, algorithms=["HS256"]
    )


@pytest.fixture
def notify_settings():
    return NotifySettings(
        NOTIFY_API_URL="https://api.notification.example/",
        NOTIFY_CLIENT_ID="client_id",
        NOTIFY_CLIENT_SECRET="secret",
        NOTIFY_SMS_TEMPLATE_ID="sms-template",
        NOTIFY_EMAIL_TEMPLATE_ID="email-template",
        NOTIFY_TIMEOUT_SECONDS=5,
    )


@pytest.fixture
def mock_session():
    session = MagicMock()
    response = MagicMock()
    response.status_code = 201
    response.headers = {}
    response.json.return_value = {"id": "notify-1"}
    session.post.return_value = response
    return session


@pytest.fixture
def client(notify_settings, mock_session):
    return notify.NotifyClient(notify_settings, session=mock_session)


# Test that an exception is raised if the secret is missing
@patch("integrations.notify.client.logger")
def test_create_jwt_token_secret_missing(mock_logger):
    with pytest.raises(ValueError) as err:
        notify.create_jwt_token(None, "client_id")
    assert str(err.value) == "Missing secret key"
    mock_logger.error.assert_called_once_with(
        "jwt_token_creation_failed", error="Missing secret key"
    )


# Test that an exception is raised if the client_id is missing
@patch("integrations.notify.client.logger")
def test_create_jwt_token_client_id_missing(mock_logger):
    with pytest.raises(ValueError) as err:
        notify.create_jwt_token("secret", None)
    assert str(err.value) == "Missing client id"
    mock_logger.error.assert_called_once_with(
        "jwt_token_creation_failed", error="Missing client id"
    )


# Test that the token is created correctly and the type and alg headers are set correctly
def test_create_jwt_token_contains_correct_headers():
    token = notify.create_jwt_token("secret", "client_id")
    headers = jwt.get_unverified_header(token)
    assert headers["typ"] == "JWT"
    assert headers["alg"] == "HS256"


def test_create_jwt_token_contains_correct_claims_headers():
    token = notify.create_jwt_token("secret", "client_id")
    decoded_token = decode_token(token, "secret")
    assert decoded_token["iss"] == "client_id"
    assert "iat" in decoded_token


@patch("jwt.encode")
def test_create_jwt_token_with_bytes_return(mock_jwt_encode):
    mock_jwt_encode.return_value = b"encoded_token_as_bytes"

    token = notify.create_jwt_token("secret", "client_id")

    assert isinstance(token, str)
    assert token == "encoded_token_as_bytes"
    call_args = mock_jwt_encode.call_args[1]
    assert call_args["key"] == "secret"
    assert call_args["payload"]["iss"] == "client_id"


# Test that the correct iat time in epoch seconds is set correctly
@freeze_time("2020-01-01 00:00:00")
def test_token_contains_correct_iat():
    token = notify.create_jwt_token("secret", "client_id")
    decoded_token = decode_token(token, "secret")
    assert decoded_token["iat"] == 1577836800


@patch("integrations.notify.client.logger")
@patch("integrations.notify.client.create_jwt_token")
def test_authorization_header_missing_client_id(
    jwt_token_mock, mock_logger, notify_settings
):
    notify_settings.NOTIFY_CLIENT_ID = ""
    client = notify.NotifyClient(notify_settings, session=MagicMock())
    with pytest.raises(ValueError) as err:
        client.create_authorization_header()
    assert str(err.value) == "NOTIFY_CLIENT_ID is missing"
    mock_logger.error.assert_called_once_with(
        "authorization_header_creation_failed",
        error="NOTIFY_CLIENT_ID is missing",
    )
    jwt_token_mock.assert_not_called()


@patch("integrations.notify.client.logger")
@patch("integrations.notify.client.create_jwt_token")
def test_authorization_header_missing_secret(
    jwt_token_mock, mock_logger, notify_settings
):
    notify_settings.NOTIFY_CLIENT_SECRET = None
    client = notify.NotifyClient(notify_settings, session=MagicMock())
    with pytest.raises(ValueError) as err:
        client.create_authorization_header()
    assert str(err.value) == "NOTIFY_CLIENT_SECRET is missing"
    jwt_token_mock.assert_not_called()


@patch("integrations.notify.client.create_jwt_token")
def test_successful_creation_of_header(mock_jwt_token, client):
    mock_jwt_token.return_value = "mocked_jwt_token"
    header_key, header_value = client.create_authorization_header()
    assert header_key == "Authorization"
    assert header_value == "Bearer mocked_jwt_token"
    mock_jwt_token.assert_called_once_with(secret="secret", client_id="client_id")


def test_send_sms_posts_template_payload(client, mock_session):
    result = client.send_sms("+15555551234", "You were outbid", reference="r-1:sms")

    assert result.is_success
    assert result.data == {"notification_id": "notify-1"}
    args, kwargs = mock_session.post.call_args
    assert args[0] == "https://api.notification.example/v2/notifications/sms"
    assert kwargs["json"] == {
        "phone_number": "+15555551234",
        "template_id": "sms-template",
        "personalisation": {"message": "You were outbid"},
        "reference": "r-1:sms",
    }
    assert kwargs["headers"]["Authorization"].startswith("Bearer ")
    assert kwargs["timeout"] == 5


def test_send_email_posts_template_payload(client, mock_session):
    result = client.send_email("user@example.com", subject="Hi", body="Body")

    assert result.is_success
    args, kwargs = mock_session.post.call_args
    assert args[0] == "https://api.notification.example/v2/notifications/email"
    assert kwargs["json"] == {
        "email_address": "user@example.com",
        "template_id": "email-template",
        "personalisation": {"subject": "Hi", "body": "Body"},
    }


def test_post_without_api_url(notify_settings, mock_session):
    notify_settings.NOTIFY_API_URL = ""
    client = notify.NotifyClient(notify_settings, session=mock_session)

    result = client.post("/v2/notifications/sms", {})

    assert result.error_code == "NOT_CONFIGURED"
    mock_session.post.assert_not_called()


def test_post_without_credentials(notify_settings, mock_session):
    notify_settings.NOTIFY_CLIENT_SECRET = None
    client = notify.NotifyClient(notify_settings, session=mock_session)

    result = client.send_sms("+15555551234", "hello")

    assert result.status == OperationStatus.PERMANENT_ERROR
    assert result.error_code == "MISSING_CREDENTIALS"
    mock_session.post.assert_not_called()


def test_post_connection_error_is_transient(client, mock_session):
    mock_session.post.side_effect = requests.ConnectionError("refused")

    result = client.send_sms("+15555551234", "hello")

    assert result.is_retryable
    assert result.error_code == "CONNECTION_ERROR"


def test_post_rejection_is_classified(client, mock_session):
    mock_session.post.return_value.status_code = 400
    mock_session.post.return_value.json.return_value = {"errors": ["bad phone"]}

    result = client.send_sms("not-a-phone", "hello")

    assert result.status == OperationStatus.PERMANENT_ERROR
    assert result.error_code == "HTTP_400"


def test_post_rate_limited(client, mock_session):
    mock_session.post.return_value.status_code = 429
    mock_session.post.return_value.headers = {"Retry-After": "7"}

    result = client.send_email("user@example.com", subject="Hi", body="Body")

    assert result.is_retryable
    assert result.retry_after == 7


def test_check_credentials(client, mock_session):
    result = client.check_credentials()

    assert result.is_success
    assert result.data == {"api_url": "https://api.notification.example"}
    mock_session.post.assert_not_called()


def test_check_credentials_missing_client_id(notify_settings):
    notify_settings.NOTIFY_CLIENT_ID = None
    client = notify.NotifyClient(notify_settings, session=MagicMock())

    result = client.check_credentials()

    assert result.error_code == "MISSING_CREDENTIALS"
