"""
Remote service client for Tidings.

Thin httpx wrapper around the notification service's JSON API. Every
non-2xx response is turned into a typed error (see tidings.errors); callers
decide whether that error matters.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from tidings.errors import (
    AuthenticationError,
    BusyError,
    NotFoundError,
    PayloadError,
    RemoteError,
)
from tidings.models import PinnedSearch, UserProfile

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 100
BUSY_STATUSES = (423, 503)


class RemoteClient:
    """Client for the remote notification service."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        per_page: int = DEFAULT_PER_PAGE,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.per_page = per_page
        self.timeout = timeout
        self._transport = transport
        logger.info(f"RemoteClient initialized for {self.base_url}")

    @classmethod
    def from_config(cls, config: dict[str, Any], api_token: str) -> "RemoteClient":
        remote = config.get("remote", {})
        return cls(
            base_url=remote["base_url"],
            api_token=api_token,
            per_page=remote.get("per_page", DEFAULT_PER_PAGE),
            timeout=remote.get("timeout", 30.0),
        )

    # Notifications

    def fetch_page(
        self,
        page: int = 1,
        starred: bool | None = None,
        archived: bool | None = None,
        query: str | None = None,
    ) -> dict[str, Any]:
        """
        Fetch one page of notifications.

        Returns {"notifications": [...], "pagination": {"current_page", "total_pages"}}
        with raw notification payloads.
        """
        params: dict[str, Any] = {"page": page, "per_page": self.per_page}
        if starred is not None:
            params["starred"] = _flag(starred)
        if archived is not None:
            params["archive"] = _flag(archived)
        if query:
            params["q"] = query

        logger.info(f"Fetching notifications (page: {page}, per_page: {self.per_page})")
        data = self._json(self._request("GET", "/api/notifications.json", params=params))
        if not isinstance(data, dict):
            raise PayloadError("Expected a notifications page object")

        notifications = data.get("notifications") or []
        if not isinstance(notifications, list):
            raise PayloadError("Expected a list of notifications")

        pagination = data.get("pagination") or {}
        if not isinstance(pagination, dict):
            raise PayloadError("Expected a pagination object")

        try:
            current_page = int(pagination.get("current_page") or page)
            total_pages = int(pagination.get("total_pages") or 1)
        except (TypeError, ValueError) as e:
            raise PayloadError(f"Malformed pagination: {pagination}") from e

        logger.info(f"Fetched {len(notifications)} notifications")
        logger.debug(f"Pagination: {pagination}")
        return {
            "notifications": notifications,
            "pagination": {"current_page": current_page, "total_pages": total_pages},
        }

    def fetch_all(
        self,
        starred: bool | None = None,
        archived: bool | None = None,
        query: str | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every page until the last page or an empty page."""
        everything: list[dict[str, Any]] = []
        page = 1

        while True:
            data = self.fetch_page(page=page, starred=starred, archived=archived, query=query)
            notifications = data["notifications"]
            if not notifications:
                break

            everything.extend(notifications)

            pagination = data["pagination"]
            if pagination["current_page"] >= pagination["total_pages"]:
                break
            page += 1

        return everything

    # Sync job

    def trigger_sync(self) -> None:
        """Ask the service to start syncing from upstream. Raises BusyError if one is running."""
        logger.info("Triggering remote sync")
        self._request("POST", "/api/notifications/sync.json")

    def is_syncing(self) -> bool:
        """True while the remote sync job is running."""
        try:
            self._request("GET", "/api/notifications/syncing.json")
        except BusyError:
            return True
        return False

    # Mutations

    def star(self, notification_id: int) -> None:
        """Toggle the star on one notification."""
        logger.info(f"Toggling star for notification {notification_id}")
        self._request("POST", f"/api/notifications/{notification_id}/star.json")

    def archive(self, notification_ids: int | list[int]) -> None:
        ids = _ids(notification_ids)
        logger.info(f"Archiving {len(ids)} notification(s)")
        self._request("POST", "/api/notifications/archive_selected.json", params={"id[]": ids})

    def unarchive(self, notification_ids: int | list[int]) -> None:
        ids = _ids(notification_ids)
        logger.info(f"Unarchiving {len(ids)} notification(s)")
        self._request(
            "POST",
            "/api/notifications/archive_selected.json",
            params={"id[]": ids, "value": "false"},
        )

    def mute(self, notification_ids: int | list[int]) -> None:
        ids = _ids(notification_ids)
        logger.info(f"Muting {len(ids)} notification(s)")
        self._request("POST", "/api/notifications/mute_selected.json", params={"id[]": ids})

    def mark_read(self, notification_ids: int | list[int]) -> None:
        ids = _ids(notification_ids)
        logger.info(f"Marking {len(ids)} notification(s) as read")
        self._request("GET", "/api/notifications/mark_read_selected.json", params={"id[]": ids})

    # Account

    def pinned_searches(self) -> list[PinnedSearch]:
        """Saved searches defined on the remote service."""
        data = self._json(self._request("GET", "/api/pinned_searches.json"))
        items = data.get("pinned_searches", []) if isinstance(data, dict) else data
        try:
            return [PinnedSearch.model_validate(item) for item in items or []]
        except (ValidationError, TypeError) as e:
            raise PayloadError(f"Malformed pinned searches: {e}") from e

    def user_profile(self) -> UserProfile:
        data = self._json(self._request("GET", "/api/users/profile.json"))
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            data = data["user"]
        try:
            return UserProfile.model_validate(data)
        except ValidationError as e:
            raise PayloadError(f"Malformed user profile: {e}") from e

    # Transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "X-Octobox-API": "1",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            with self._client() as client:
                response = client.request(method, path, params=params)
        except httpx.HTTPError as e:
            raise RemoteError(f"Request failed: {method} {path}: {e}") from e

        _raise_for_status(response)
        return response

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise PayloadError(f"Invalid JSON from {response.request.url}") from e


def _raise_for_status(response: httpx.Response) -> None:
    """Classify non-2xx responses."""
    status = response.status_code
    if 200 <= status < 300:
        return
    if status == 401:
        raise AuthenticationError("Unauthorized: check your API token", status)
    if status == 404:
        raise NotFoundError(f"Not found: {response.request.url}", status)
    if status in BUSY_STATUSES:
        raise BusyError("Service busy (sync in progress?)", status)
    raise RemoteError(f"API error: {status} - {response.text[:200]}", status)


def _ids(notification_ids: int | list[int]) -> list[int]:
    if isinstance(notification_ids, int):
        return [notification_ids]
    return list(notification_ids)


def _flag(value: bool) -> str:
    return "true" if value else "false"
