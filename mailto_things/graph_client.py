"""Microsoft Graph helper focused on reading task mail and forwarding documents."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator
from urllib.parse import quote

import msal
import requests
from requests import Response

from .config import Settings
from .models import MessageMetadata
from .utils import parse_graph_datetime

logger = logging.getLogger(__name__)


class GraphClient:
    """Thin wrapper that authenticates with Graph and exposes the mailbox calls we need."""

    GRAPH_SCOPE = ["https://graph.microsoft.com/.default"]
    GRAPH_BASE = "https://graph.microsoft.com/v1.0"

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.session = requests.Session()
        self.scopes = settings.graph_scopes
        self.auth_mode = settings.graph_auth_mode
        self.authority = settings.authority_url
        self._token_cache = None

        if self.auth_mode == "client_credentials":
            self.app = msal.ConfidentialClientApplication(
                client_id=settings.graph_client_id,
                client_credential=settings.graph_client_secret,
                authority=self.authority,
            )
        else:
            token_cache = msal.SerializableTokenCache()
            cache_path = settings.graph_token_cache
            if cache_path.exists():
                token_cache.deserialize(cache_path.read_text())
            self._token_cache = token_cache
            self.app = msal.PublicClientApplication(
                client_id=settings.graph_client_id,
                authority=self.authority,
                token_cache=token_cache,
            )

    def iter_unread(self, recipient: str, max_messages: int | None = None) -> Iterator[MessageMetadata]:
        """Yield unread messages addressed (To or Cc) to ``recipient``, oldest first."""
        url = f"{self.GRAPH_BASE}{self._messages_collection()}"
        params = {
            "$select": "id,subject,internetMessageId,from,toRecipients,ccRecipients,receivedDateTime,isRead",
            # Graph rejects $orderby properties that do not lead the $filter.
            "$filter": "receivedDateTime ge 1900-01-01T00:00:00Z and isRead eq false",
            "$orderby": "receivedDateTime asc",
            "$top": self.settings.graph_page_size,
        }
        wanted = recipient.lower()

        yielded = 0
        while url:
            logger.debug("Fetching Graph messages page %s", url)
            payload = self._request("GET", url, params=params).json()

            for raw in payload.get("value", []):
                message = self._to_message(raw)
                if wanted not in message.recipients:
                    continue
                yield message
                yielded += 1
                if max_messages and yielded >= max_messages:
                    return

            url = payload.get("@odata.nextLink")
            params = None  # only pass params to the first call

    def fetch_mime(self, message_id: str) -> bytes:
        """Download the full RFC 822 representation of a message."""
        url = f"{self._message_url(message_id)}/$value"
        return self._request("GET", url).content

    def send_mail(self, to: str, subject: str, body: str) -> None:
        url = f"{self.GRAPH_BASE}{self._user_root()}/sendMail"
        payload = {
            "message": {
                "subject": subject,
                "body": {"contentType": "Text", "content": body},
                "toRecipients": [{"emailAddress": {"address": to}}],
            },
            "saveToSentItems": False,
        }
        self._request("POST", url, json=payload)
        logger.debug("Sent '%s' to %s", subject, to)

    def mark_read(self, message_id: str) -> None:
        self._request("PATCH", self._message_url(message_id), json={"isRead": True})

    def trash(self, message_id: str) -> None:
        url = f"{self._message_url(message_id)}/move"
        self._request("POST", url, json={"destinationId": "deleteditems"})

    def _request(self, method: str, url: str, **kwargs: Any) -> Response:
        headers = {"Authorization": f"Bearer {self._acquire_token()}"}
        resp = self.session.request(method, url, headers=headers, timeout=30, **kwargs)
        if resp.status_code >= 400:
            logger.error("Graph request failed (%s): %s", resp.status_code, resp.text)
            resp.raise_for_status()
        return resp

    def _acquire_token(self) -> str:
        if self.auth_mode == "client_credentials":
            return self._acquire_token_client_credentials()
        return self._acquire_token_device_flow()

    def _acquire_token_client_credentials(self) -> str:
        result = self.app.acquire_token_silent(self.GRAPH_SCOPE, account=None)
        if not result:
            result = self.app.acquire_token_for_client(scopes=self.GRAPH_SCOPE)
        if "access_token" not in result:
            raise RuntimeError(f"Unable to obtain Graph token: {result.get('error_description')}")
        return result["access_token"]

    def _acquire_token_device_flow(self) -> str:
        accounts = self.app.get_accounts()
        result = None
        if accounts:
            result = self.app.acquire_token_silent(self.scopes, account=accounts[0])
        if not result:
            flow = self.app.initiate_device_flow(scopes=self.scopes)
            if "user_code" not in flow:
                raise RuntimeError(f"Unable to start device code flow: {flow}")
            logger.info(flow.get("message"))
            result = self.app.acquire_token_by_device_flow(flow)
        if "access_token" not in result:
            raise RuntimeError(f"Unable to obtain Graph token: {result.get('error_description')}")
        self._persist_token_cache()
        return result["access_token"]

    def _persist_token_cache(self) -> None:
        if not self._token_cache or not self._token_cache.has_state_changed:
            return
        cache_path: Path = self.settings.graph_token_cache
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cache_path.write_text(self._token_cache.serialize())

    def _user_root(self) -> str:
        if self.settings.graph_mailbox:
            mailbox = quote(self.settings.graph_mailbox)
            return f"/users/{mailbox}"
        return "/me"

    def _messages_collection(self) -> str:
        if self.settings.graph_mail_folder:
            folder = quote(self.settings.graph_mail_folder)
            return f"{self._user_root()}/mailFolders/{folder}/messages"
        return f"{self._user_root()}/messages"

    def _message_url(self, message_id: str) -> str:
        return f"{self.GRAPH_BASE}{self._user_root()}/messages/{quote(message_id, safe='')}"

    @staticmethod
    def _to_message(raw: dict) -> MessageMetadata:
        sender = (raw.get("from") or {}).get("emailAddress") or {}
        recipients = [
            ((entry or {}).get("emailAddress") or {}).get("address", "").lower()
            for entry in (raw.get("toRecipients") or []) + (raw.get("ccRecipients") or [])
        ]
        return MessageMetadata(
            message_id=raw["id"],
            internet_message_id=raw.get("internetMessageId", ""),
            subject=raw.get("subject") or "",
            sender_email=sender.get("address", ""),
            received=parse_graph_datetime(raw["receivedDateTime"]),
            recipients=[address for address in recipients if address],
            raw=raw,
        )
