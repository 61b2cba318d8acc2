"""
Alert Engine — Notification Dispatcher
───────────────────────────────────────
Formats a push message for one device token and hands it to the push
provider (Firebase Cloud Messaging, HTTP v1 API).

send() returns True only when the provider accepted the message. When the
provider says the token is no longer registered (errorCode UNREGISTERED),
the dispatcher deletes that subscriber from the SubscriberStore. That
write-back is the only place the dispatcher touches shared state. Any
other failure, a plain 404 included, is treated as transient.

FCM needs a service account:
  FCM_CREDENTIALS_FILE  service-account JSON (or GOOGLE_APPLICATION_CREDENTIALS)
  FCM_PROJECT_ID        Firebase project id (defaults to the account's project)
The OAuth2 bearer token is short-lived; it is refreshed from the service
account whenever it has expired or the provider answered 401. Without
credentials the sender logs what it would have sent and reports
not-accepted.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from alert_engine.config import MonitorConfig
from alert_engine.store import SubscriberStore, short_token

log = logging.getLogger("alerts.dispatcher")

FCM_SEND_URL    = "https://fcm.googleapis.com/v1/projects/{project}/messages:send"
FCM_SCOPES      = ["https://www.googleapis.com/auth/firebase.messaging"]
REQUEST_TIMEOUT = 10
VIBRATE_PATTERN = [200, 100, 200]


@dataclass
class PushResult:
    accepted:          bool
    permanent_failure: bool = False
    error:             Optional[str] = None


def _is_unregistered(body: dict) -> bool:
    err = body.get("error") if isinstance(body, dict) else None
    if not isinstance(err, dict):
        return False
    for detail in err.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode") == "UNREGISTERED":
            return True
    return False


def load_service_account(path: str):
    """Scoped service-account credentials, or None if the file is unusable."""
    try:
        return service_account.Credentials.from_service_account_file(path, scopes=FCM_SCOPES)
    except (OSError, ValueError) as e:
        log.error(f"Could not load FCM service account from {path}: {e}")
        return None


class FcmPushSender:

    def __init__(self, project_id: Optional[str], credentials=None,
                 client: Optional[httpx.AsyncClient] = None):
        self.project_id    = project_id or getattr(credentials, "project_id", None)
        self.credentials   = credentials
        self._client       = client
        self._auth_request = None
        self._token_stale  = False

        if not self.is_configured():
            log.warning("FCM not configured (FCM_CREDENTIALS_FILE / FCM_PROJECT_ID) - push sending disabled")

    @classmethod
    def from_config(cls, config: MonitorConfig) -> "FcmPushSender":
        credentials = None
        if config.fcm_key_file:
            credentials = load_service_account(config.fcm_key_file)
        return cls(project_id=config.fcm_project_id, credentials=credentials)

    def is_configured(self) -> bool:
        return bool(self.project_id and self.credentials)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        return self._client

    async def aclose(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _bearer_token(self) -> str:
        # google-auth refresh is blocking I/O
        if self._token_stale or not self.credentials.valid:
            if self._auth_request is None:
                self._auth_request = GoogleAuthRequest()
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.credentials.refresh, self._auth_request)
            self._token_stale = False
            log.info("FCM access token refreshed")
        return self.credentials.token

    async def send(self, message: dict) -> PushResult:
        if not self.is_configured():
            notif = message.get("notification", {})
            log.info(f"(dry-run) Would push: {notif.get('title')} - {notif.get('body')}")
            return PushResult(accepted=False, error="not configured")

        try:
            token = await self._bearer_token()
        except GoogleAuthError as e:
            return PushResult(accepted=False, error=f"token refresh failed: {e}")

        client = await self._get_client()
        url = FCM_SEND_URL.format(project=self.project_id)
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            r = await client.post(url, json={"message": message}, headers=headers,
                                  timeout=REQUEST_TIMEOUT)
        except httpx.TimeoutException:
            return PushResult(accepted=False, error="timeout")
        except httpx.HTTPError as e:
            return PushResult(accepted=False, error=str(e))

        if r.status_code == 200:
            return PushResult(accepted=True)
        if r.status_code == 401:
            self._token_stale = True
        try:
            body = r.json()
        except ValueError:
            body = {}
        return PushResult(
            accepted          = False,
            permanent_failure = _is_unregistered(body),
            error             = f"HTTP {r.status_code}: {r.text[:200]}",
        )


class NotificationDispatcher:

    def __init__(self, sender, store: SubscriberStore, config: MonitorConfig,
                 clock=time.time):
        self.sender = sender
        self.store  = store
        self.config = config
        self._clock = clock

    def build_message(self, token: str, title: str, body: str,
                      metadata: Optional[Dict[str, object]] = None) -> dict:
        # FCM data values must all be strings
        data = {str(k): str(v) for k, v in (metadata or {}).items()}
        data["timestamp"] = str(int(self._clock() * 1000))
        return {
            "token":        token,
            "notification": {"title": title, "body": body},
            "data":         data,
            "webpush": {
                "notification": {
                    "icon":               self.config.notification_icon,
                    "badge":              self.config.notification_badge,
                    "requireInteraction": True,
                    "vibrate":            VIBRATE_PATTERN,
                },
                "fcm_options": {"link": self.config.notification_link},
            },
        }

    async def send(self, token: str, title: str, body: str,
                   metadata: Optional[Dict[str, object]] = None) -> bool:
        message = self.build_message(token, title, body, metadata)
        try:
            result = await self.sender.send(message)
        except Exception as e:
            log.error(f"Push send raised for {short_token(token)}: {e}")
            return False

        if result.accepted:
            log.info(f"Sent to {short_token(token)}: {title}")
            return True

        log.error(f"Push send failed for {short_token(token)}: {result.error}")
        if result.permanent_failure:
            # Side effect: stale registration is dropped from the store
            self.store.remove(token)
            log.info(f"Removed invalid token {short_token(token)}")
        return False
