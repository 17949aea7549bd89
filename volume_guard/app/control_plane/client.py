"""HTTP client for the hosting panel's application and client APIs."""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib import error as urllib_error, parse as urllib_parse, request as urllib_request

from pydantic import ValidationError

from ..errors import ControlPlaneError
from ..schemas.control_plane import PowerSignalRequest, ServerAttributes, ServerListPage, SuspendRequest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_PAGE_SIZE = 100
# Guards against a panel that keeps reporting more pages than it serves.
_MAX_PAGES = 1000

UrlOpener = Callable[..., Any]


class ControlPlaneClient:
    """Thin wrapper over the panel REST API.

    Application endpoints are called with the admin-scoped key, the power
    endpoint with the client-scoped key. Every request carries an explicit
    timeout and failures surface as :class:`ControlPlaneError`.
    """

    def __init__(
        self,
        *,
        base_url: str,
        admin_api_key: str,
        client_api_key: Optional[str] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        opener: Optional[UrlOpener] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._admin_api_key = admin_api_key
        self._client_api_key = client_api_key
        self.timeout_seconds = timeout_seconds
        self.page_size = max(1, page_size)
        self._urlopen = opener or urllib_request.urlopen

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        api_key: Optional[str],
        payload: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> tuple[int, Optional[Dict[str, Any]]]:
        if not api_key:
            raise ControlPlaneError(message=f"No API key configured for {method} {path}")

        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{urllib_parse.urlencode(query)}"
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        request = urllib_request.Request(url, data=data, headers=self._headers(api_key), method=method)

        try:
            with self._urlopen(request, timeout=self.timeout_seconds) as response:
                status = getattr(response, "status", None) or response.getcode()
                body = response.read()
        except urllib_error.HTTPError as exc:
            raise ControlPlaneError(
                message=f"{method} {path} returned HTTP {exc.code}",
                status_code=exc.code,
                detail={"path": path},
            ) from exc
        except (urllib_error.URLError, TimeoutError, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            raise ControlPlaneError(
                message=f"{method} {path} failed: {reason}",
                detail={"path": path},
            ) from exc

        if not body:
            return status, None
        try:
            decoded = json.loads(body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ControlPlaneError(
                message=f"{method} {path} returned an undecodable body",
                status_code=status,
                detail={"path": path},
            ) from exc
        return status, decoded if isinstance(decoded, dict) else {"data": decoded}

    def list_servers(self) -> List[ServerAttributes]:
        """Fetch every workload, following the panel's pagination."""

        servers: List[ServerAttributes] = []
        page = 1
        while page <= _MAX_PAGES:
            _, body = self._request(
                "GET",
                "/api/application/servers",
                api_key=self._admin_api_key,
                query={"page": page, "per_page": self.page_size},
            )
            try:
                listing = ServerListPage.model_validate(body or {})
            except ValidationError as exc:
                raise ControlPlaneError(
                    message=f"Unexpected server list payload on page {page}",
                    detail={"errors": exc.error_count()},
                ) from exc

            servers.extend(item.attributes for item in listing.data)
            if page >= listing.meta.pagination.total_pages or not listing.data:
                break
            page += 1

        logger.debug("Fetched %d server(s) from %s", len(servers), self.base_url)
        return servers

    def kill_server(self, identifier: str) -> int:
        """Send a ``kill`` power signal using the client-scoped key."""

        quoted = urllib_parse.quote(identifier, safe="")
        status, _ = self._request(
            "POST",
            f"/api/client/servers/{quoted}/power",
            api_key=self._client_api_key,
            payload=PowerSignalRequest(signal="kill").model_dump(),
        )
        return status

    def suspend_server(self, internal_id: int) -> int:
        """Suspend a workload using the admin-scoped key.

        A 409 means the workload is already suspended and is returned as-is
        rather than raised.
        """

        path = f"/api/application/servers/{int(internal_id)}/suspend"
        try:
            status, _ = self._request(
                "POST",
                path,
                api_key=self._admin_api_key,
                payload=SuspendRequest().model_dump(),
            )
        except ControlPlaneError as exc:
            if exc.status_code == 409:
                logger.info("Server %s already suspended", internal_id)
                return 409
            raise
        return status


__all__ = ["ControlPlaneClient", "DEFAULT_TIMEOUT_SECONDS"]
