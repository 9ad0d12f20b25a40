from __future__ import annotations

import hashlib
import logging
import threading
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning  # type: ignore

from .signals_config import (
    ACCEPT_LANGUAGE,
    DEFAULT_TIMEOUT,
    HEADING_SELECTOR,
    HTML_PARSER,
    USER_AGENT,
)

warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A page could not be retrieved or parsed.

    ``kind`` is one of ``timeout``, ``network``, ``status`` or ``parse``. The
    pipeline only uses it for diagnostics; every kind collapses to an empty
    analysis result.
    """

    def __init__(self, kind: str, message: str, *, url: str = "", status: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"{self.kind}: {base} (status {self.status})"
        return f"{self.kind}: {base}"


def _collapse_whitespace(text: str) -> str:
    return " ".join((text or "").split())


@dataclass
class FetchConfig:
    """Configuration parameters for synchronous page fetching."""

    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = USER_AGENT
    accept_language: str = ACCEPT_LANGUAGE
    parser: str = HTML_PARSER
    verify_ssl: bool = True


@dataclass
class PageContent:
    """A fetched, parsed HTML page."""

    url: str
    status: int
    html: str
    fetched_at: str
    parser: str = HTML_PARSER
    soup: Optional[BeautifulSoup] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.soup is None:
            self.soup = BeautifulSoup(self.html or "", self.parser)

    @property
    def domain(self) -> str:
        return urlparse(self.url).netloc

    def body_text(self) -> str:
        """Full visible body text, whitespace collapsed."""

        root = self.soup.body or self.soup
        return _collapse_whitespace(root.get_text(" "))

    def headings(self) -> List[str]:
        """Visible text of every h2/h3 element, in document order."""

        return [_collapse_whitespace(node.get_text(" ")) for node in self.soup.select(HEADING_SELECTOR)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "domain": self.domain,
            "status": self.status,
            "html_sha256": hashlib.sha256(self.html.encode("utf-8")).hexdigest() if self.html else "",
            "html_length": len(self.html),
            "fetched_at": self.fetched_at,
        }


FetchFunc = Callable[[str, float], PageContent]


class PageFetcher:
    """Blocking page fetcher; one requests.Session per worker thread."""

    def __init__(self, config: Optional[FetchConfig] = None) -> None:
        self.config = config or FetchConfig()
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._lock = threading.Lock()
        self._generation = 0

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None or getattr(self._local, "generation", None) != self._generation:
            session = requests.Session()
            session.headers.update(
                {
                    "User-Agent": self.config.user_agent,
                    "Accept-Language": self.config.accept_language,
                    "Accept-Encoding": "gzip, deflate",
                }
            )
            self._local.session = session
            self._local.generation = self._generation
            with self._lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        """Close every session opened by the worker threads."""

        with self._lock:
            sessions, self._sessions = self._sessions, []
            self._generation += 1
        for session in sessions:
            session.close()

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch(self, url: str, timeout: Optional[float] = None) -> PageContent:
        effective_timeout = self.config.timeout if timeout is None else timeout
        try:
            resp = self._session().get(url, timeout=effective_timeout, verify=self.config.verify_ssl)
        except requests.Timeout as exc:
            raise FetchError("timeout", f"timed out after {effective_timeout}s", url=url) from exc
        except requests.RequestException as exc:
            raise FetchError("network", str(exc) or exc.__class__.__name__, url=url) from exc

        if not 200 <= resp.status_code < 300:
            raise FetchError("status", f"non-success response for {url}", url=url, status=resp.status_code)

        logger.debug("fetched %s (status %d, %d chars)", url, resp.status_code, len(resp.text or ""))
        fetched_at = datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
        try:
            return PageContent(
                url=url,
                status=resp.status_code,
                html=resp.text or "",
                fetched_at=fetched_at,
                parser=self.config.parser,
            )
        except Exception as exc:
            raise FetchError("parse", f"unable to parse body: {exc}", url=url, status=resp.status_code) from exc

    __call__ = fetch


__all__ = [
    "FetchConfig",
    "FetchError",
    "FetchFunc",
    "PageContent",
    "PageFetcher",
]
