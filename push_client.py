"""
Mobile push client (FCM HTTP v1 API).
"""
import asyncio
import httpx
import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import google.auth.transport.requests
from google.oauth2 import service_account

from config import FCM_PROJECT_ID, FIREBASE_SERVICE_ACCOUNT, PUSH_TIMEOUT

logger = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

# FCM error codes that mean the token itself is dead or malformed
TOKEN_ERROR_CODES = {"UNREGISTERED", "INVALID_ARGUMENT", "SENDER_ID_MISMATCH"}

TokenProvider = Callable[[], Awaitable[str]]


def get_push_headers(access_token: str) -> dict:
    """Get push API request headers."""
    return {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }


def build_push_message(token: str, title: str, body: str, data: Dict[str, str]) -> dict:
    """
    Build a v1 send request for a single device token.

    Args:
        token: Device registration token
        title: Notification title
        body: Notification body
        data: String key/value payload delivered to the app

    Returns:
        JSON-serialisable request body
    """
    return {
        "message": {
            "token": token,
            "notification": {"title": title, "body": body},
            "data": data,
            "android": {
                "priority": "high",
                "notification": {"sound": "default", "channel_id": "booking_notifications"},
            },
            "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
        }
    }


def get_error_code(response: httpx.Response) -> Optional[str]:
    """Pull the FCM error code out of an error response, falling back to the RPC status."""
    try:
        error = response.json().get("error", {})
    except ValueError:
        return None
    if not isinstance(error, dict):
        return None

    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode"):
            return detail["errorCode"]

    if error.get("status") == "NOT_FOUND":
        return "UNREGISTERED"
    return error.get("status")


class ServiceAccountTokenProvider:
    """OAuth2 access tokens for FCM from a Firebase service account."""

    def __init__(self, service_account_info: dict):
        self.project_id = service_account_info.get("project_id")
        self.credentials = service_account.Credentials.from_service_account_info(
            service_account_info, scopes=[FCM_SCOPE]
        )

    async def __call__(self) -> str:
        if not self.credentials.valid:
            # google-auth refreshes synchronously
            await asyncio.to_thread(self.credentials.refresh, google.auth.transport.requests.Request())
        return self.credentials.token


class PushClient:
    """
    Thin async client for Firebase Cloud Messaging.

    Disabled when no project or credentials are configured; callers treat
    push as best-effort and never depend on its outcome.
    """

    def __init__(
        self,
        project_id: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = PUSH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.project_id = project_id
        self.token_provider = token_provider
        self.timeout = timeout
        self.transport = transport
        if not self.enabled:
            logger.warning("Firebase not configured. Push notifications disabled.")

    @property
    def enabled(self) -> bool:
        return bool(self.project_id and self.token_provider)

    @property
    def url(self) -> str:
        return FCM_SEND_URL.format(project_id=self.project_id)

    async def send_multicast(
        self,
        tokens: List[str],
        title: str,
        body: str,
        data: Dict[str, str],
    ) -> List[str]:
        """
        Send one notification to several devices, one request per token.

        Returns:
            Tokens FCM reported as unregistered or invalid, in request order
        """
        if not self.enabled or not tokens:
            return []

        headers = get_push_headers(await self.token_provider())
        failed_tokens = []

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for token in tokens:
                response = await client.post(
                    self.url, json=build_push_message(token, title, body, data), headers=headers
                )
                if response.is_success:
                    continue

                error_code = get_error_code(response)
                if error_code in TOKEN_ERROR_CODES:
                    logger.warning(f"Failed to send to token: {error_code}")
                    failed_tokens.append(token)
                    continue

                try:
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    logger.error(f"Push API error: {e.response.status_code} - {e.response.text}")
                    raise

        logger.info(f"Push notification sent: {len(tokens) - len(failed_tokens)}/{len(tokens)} successful")
        return failed_tokens


def create_push_client(
    service_account_json: Optional[str] = FIREBASE_SERVICE_ACCOUNT,
    project_id: Optional[str] = FCM_PROJECT_ID,
) -> PushClient:
    """Build the push client from the service account JSON in the environment."""
    if not service_account_json:
        return PushClient()

    info = json.loads(service_account_json)
    provider = ServiceAccountTokenProvider(info)
    logger.info("Firebase credentials loaded")
    return PushClient(project_id=project_id or provider.project_id, token_provider=provider)
