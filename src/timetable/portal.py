"""HTTP helpers for the portal's JSON endpoints.

All requests replay the cookies captured by SessionAcquirer and look like the
XHR calls the portal's own batch report page makes.
"""

from typing import Any

import requests

from src.timetable.config import TimetableConfig, get_config
from src.timetable.errors import (
    MalformedResponseError,
    TimetableError,
    UpstreamStatusError,
    UpstreamUnreachableError,
)
from src.timetable.logging import get_logger
from src.timetable.models import SessionContext
from src.timetable.session import SessionAcquirer

logger = get_logger(__name__)


class PortalClient:
    """Session acquisition plus GET/POST calls returning parsed JSON."""

    def __init__(self, config: TimetableConfig | None = None, http=requests) -> None:
        self.config = config or get_config()
        self.http = http
        self.acquirer = SessionAcquirer(self.config, http)

    def acquire(self) -> SessionContext:
        return self.acquirer.acquire()

    def _headers(self, session: SessionContext, *, form: bool = False) -> dict[str, str]:
        headers = {
            "User-Agent": self.config.user_agent,
            "X-Requested-With": "XMLHttpRequest",
            "Accept": "application/json",
        }
        if session.cookies:
            headers["Cookie"] = session.cookie_header()
        if form:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            headers["Referer"] = self.config.page_url
        return headers

    def get_json(
        self, path: str, session: SessionContext, params: dict[str, str] | None = None
    ) -> Any:
        """GET an endpoint and parse its JSON body.

        Raises:
            UpstreamUnreachableError: Network-level failure.
            UpstreamStatusError: Non-2xx response.
            MalformedResponseError: Body is not valid JSON.
        """
        url = self.config.url(path)
        try:
            response = self.http.get(
                url,
                params=params,
                headers=self._headers(session),
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as e:
            raise UpstreamUnreachableError(f"GET {url} failed: {e}") from e
        return self._parse(url, response)

    def post_form(
        self, path: str, session: SessionContext, form: dict[str, str]
    ) -> Any:
        """POST a form-encoded body and parse the JSON response.

        Raises the same errors as get_json().
        """
        url = self.config.url(path)
        try:
            response = self.http.post(
                url,
                data=form,
                headers=self._headers(session, form=True),
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as e:
            raise UpstreamUnreachableError(f"POST {url} failed: {e}") from e
        return self._parse(url, response)

    def try_get_json(
        self, path: str, session: SessionContext, params: dict[str, str] | None = None
    ) -> Any | None:
        """get_json() that logs failures and returns None instead of raising."""
        try:
            return self.get_json(path, session, params)
        except TimetableError as e:
            logger.warning("endpoint_failed", method="GET", path=path, error=str(e))
            return None

    def try_post_form(
        self, path: str, session: SessionContext, form: dict[str, str]
    ) -> Any | None:
        """post_form() that logs failures and returns None instead of raising."""
        try:
            return self.post_form(path, session, form)
        except TimetableError as e:
            logger.warning("endpoint_failed", method="POST", path=path, error=str(e))
            return None

    @staticmethod
    def _parse(url: str, response) -> Any:
        if not response.ok:
            raise UpstreamStatusError(url, response.status_code)
        try:
            return response.json()
        except ValueError as e:
            logger.debug("endpoint_body_preview", url=url, body=response.text[:300])
            raise MalformedResponseError(f"{url} returned invalid JSON") from e
