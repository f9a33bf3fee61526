from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import httpx

from markvault.client.records import BookmarkRecord, CategoryRecord
from markvault.services.metadata import PageMetadata

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


class NoRowsAffectedError(GatewayError):
    pass


class SubscriptionGoneError(GatewayError):
    pass


@dataclass
class ClientConfig:
    base_url: str = "http://127.0.0.1:8072"
    token: str | None = None
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> ClientConfig:
        return cls(
            base_url=os.environ.get("MARKVAULT_URL", cls.base_url),
            token=os.environ.get("MARKVAULT_TOKEN") or None,
            timeout=float(os.environ.get("MARKVAULT_TIMEOUT", str(cls.timeout))),
        )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"HTTP {response.status_code}"


class GatewayClient:
    """HTTP client for the MarkVault API, scoped to one authenticated owner."""

    def __init__(self, config: ClientConfig, transport: httpx.BaseTransport | None = None):
        headers = {"Accept": "application/json"}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._http = httpx.Client(
            base_url=config.base_url.rstrip("/") + "/api/v1",
            headers=headers,
            timeout=config.timeout,
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self._http.close()

    def _request(
        self,
        method: str,
        path: str,
        missing: type[GatewayError] = GatewayError,
        **kwargs,
    ):
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            message = str(exc).strip() or exc.__class__.__name__
            raise GatewayError(message) from exc

        if response.status_code == 404:
            raise missing(_error_message(response), status=404)
        if response.status_code >= 400:
            raise GatewayError(_error_message(response), status=response.status_code)
        return response.json()

    def whoami(self) -> dict:
        return self._request("GET", "/me")

    def list_bookmarks(self) -> list[BookmarkRecord]:
        payload = self._request("GET", "/bookmarks")
        return [BookmarkRecord.from_dict(item) for item in payload["items"]]

    def insert_bookmark(self, fields: dict) -> BookmarkRecord:
        return BookmarkRecord.from_dict(self._request("POST", "/bookmarks", json=fields))

    def update_bookmark(self, bookmark_id: str, fields: dict) -> BookmarkRecord:
        payload = self._request(
            "PATCH",
            f"/bookmarks/{bookmark_id}",
            missing=NoRowsAffectedError,
            json=fields,
        )
        return BookmarkRecord.from_dict(payload)

    def delete_bookmark(self, bookmark_id: str) -> None:
        self._request(
            "DELETE", f"/bookmarks/{bookmark_id}", missing=NoRowsAffectedError
        )

    def list_categories(self) -> list[CategoryRecord]:
        payload = self._request("GET", "/categories")
        return [CategoryRecord.from_dict(item) for item in payload["items"]]

    def insert_category(self, fields: dict) -> CategoryRecord:
        return CategoryRecord.from_dict(
            self._request("POST", "/categories", json=fields)
        )

    def delete_category(self, category_id: str) -> None:
        self._request(
            "DELETE", f"/categories/{category_id}", missing=NoRowsAffectedError
        )

    def fetch_metadata(self, url: str) -> PageMetadata:
        payload = self._request("GET", "/og", params={"url": url})
        return PageMetadata(
            title=payload.get("ogTitle"),
            description=payload.get("ogDesc"),
            image=payload.get("ogImage"),
        )

    def upload_image(
        self, filename: str, content: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        payload = self._request(
            "POST", "/uploads", files={"file": (filename, content, content_type)}
        )
        return payload["public_url"]

    def subscribe(self, relation: str, channel: str | None = None) -> dict:
        body = {"relation": relation}
        if channel:
            body["channel"] = channel
        return self._request("POST", "/realtime/subscriptions", json=body)

    def poll(self, channel: str, since: int | None = None, limit: int | None = None) -> dict:
        params = {}
        if since is not None:
            params["since"] = since
        if limit is not None:
            params["limit"] = limit
        return self._request(
            "GET",
            f"/realtime/subscriptions/{channel}/events",
            missing=SubscriptionGoneError,
            params=params,
        )

    def ack(self, channel: str, cursor: int) -> None:
        self._request(
            "POST",
            f"/realtime/subscriptions/{channel}/ack",
            missing=SubscriptionGoneError,
            json={"cursor": cursor},
        )

    def unsubscribe(self, channel: str) -> None:
        self._request(
            "DELETE",
            f"/realtime/subscriptions/{channel}",
            missing=SubscriptionGoneError,
        )
        logger.debug("Unsubscribed from %s", channel)
