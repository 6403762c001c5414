"""Session acquisition against the timetable portal.

The portal has no API credentials. Its JSON endpoints want the cookies and
the anti-forgery token handed out with the batch report page, so every
logical operation starts by loading that page and scraping both out of it.
"""

import re
from collections.abc import Callable, Iterable

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.timetable.config import TimetableConfig, get_config
from src.timetable.errors import TransientError, UpstreamUnreachableError
from src.timetable.logging import get_logger
from src.timetable.models import SessionContext

logger = get_logger(__name__)

_META_TOKEN_RE = re.compile(r'<meta\s+name="csrf-token"\s+content="([^"]+)"')
_INPUT_TOKEN_RE = re.compile(r'<input[^>]+name="_token"[^>]+value="([^"]+)"')


def meta_csrf_token(html: str) -> str | None:
    """Token from <meta name="csrf-token" content="...">."""
    match = _META_TOKEN_RE.search(html)
    return match.group(1) if match else None


def input_csrf_token(html: str) -> str | None:
    """Token from a hidden <input name="_token" value="..."> form field."""
    match = _INPUT_TOKEN_RE.search(html)
    return match.group(1) if match else None


TOKEN_EXTRACTORS: tuple[Callable[[str], str | None], ...] = (
    meta_csrf_token,
    input_csrf_token,
)


def extract_csrf_token(html: str) -> str:
    """Return the first token any extractor finds, or "" if none does.

    Some endpoints don't check the token, so an empty token is a usable result.
    """
    for extractor in TOKEN_EXTRACTORS:
        token = extractor(html)
        if token:
            return token
    return ""


def cookie_pairs(set_cookie_values: Iterable[str]) -> tuple[str, ...]:
    """Keep the "name=value" part of each Set-Cookie header, in order.

    Duplicate names are kept; the server decides which one wins.
    """
    pairs = []
    for value in set_cookie_values:
        pair = value.split(";", 1)[0].strip()
        if pair:
            pairs.append(pair)
    return tuple(pairs)


def _set_cookie_headers(response) -> list[str]:
    # requests folds repeated headers into one comma-joined value; the
    # underlying urllib3 response still has each one separately.
    return list(response.raw.headers.getlist("Set-Cookie"))


class SessionAcquirer:
    """Obtains a fresh SessionContext from the portal's batch report page.

    Retries on TransientError; gives up with UpstreamUnreachableError.
    """

    def __init__(self, config: TimetableConfig | None = None, http=requests) -> None:
        """Initialize SessionAcquirer.

        Args:
            config: Timetable configuration (defaults to the singleton).
            http: Object exposing requests-style get/post (the requests module
                  by default, so no cookie jar outlives an operation).
        """
        self.config = config or get_config()
        self.http = http

    def acquire(self) -> SessionContext:
        """Load the portal page and capture its cookies and CSRF token.

        Raises:
            UpstreamUnreachableError: If the page could not be loaded after
                all retry attempts.
        """
        retrying = Retrying(
            stop=stop_after_attempt(max(1, self.config.session_retry_attempts)),
            wait=wait_fixed(self.config.session_retry_wait_seconds),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        )
        return retrying(self._acquire_once)

    def _acquire_once(self) -> SessionContext:
        url = self.config.page_url
        try:
            response = self.http.get(
                url,
                headers={"User-Agent": self.config.user_agent},
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.warning("session_page_unreachable", url=url, error=str(e))
            raise UpstreamUnreachableError(f"Could not load {url}: {e}") from e

        if not response.ok:
            logger.warning("session_page_status", url=url, status=response.status_code)
            raise UpstreamUnreachableError(
                f"Portal page returned HTTP {response.status_code}"
            )

        session = SessionContext(
            cookies=cookie_pairs(_set_cookie_headers(response)),
            csrf_token=extract_csrf_token(response.text),
        )
        logger.info(
            "session_acquired",
            cookies=len(session.cookies),
            csrf=bool(session.csrf_token),
        )
        return session
