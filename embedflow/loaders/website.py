"""Web page fetching and text extraction.

A page is reduced to three block kinds, embedded separately with the kind in
their metadata: headers (``h1``-``h6``), paragraphs and code blocks.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx
import structlog
from bs4 import BeautifulSoup

from ..common.config import get_settings
from ..common.errors import BackendCallError

logger = structlog.get_logger("loaders.website")

USER_AGENT = "embedflow/0.1 (+https://pypi.org/project/embedflow/)"


@dataclass
class WebPage:
    """Text blocks extracted from one page."""
    url: str
    title: Optional[str] = None
    headers: List[str] = field(default_factory=list)
    paragraphs: List[str] = field(default_factory=list)
    codes: List[str] = field(default_factory=list)

    def blocks(self) -> Dict[str, List[str]]:
        """Block kind to non-empty texts, in page order."""
        return {
            "header": self.headers,
            "paragraph": self.paragraphs,
            "code": self.codes,
        }


def parse_html(url: str, html: str) -> WebPage:
    """Extract title, headers, paragraphs and code blocks from ``html``."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    title = soup.title.get_text(strip=True) if soup.title else None
    headers = [h.get_text(" ", strip=True) for h in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])]
    paragraphs = [p.get_text(" ", strip=True) for p in soup.find_all("p")]
    codes = [c.get_text() for c in soup.find_all("pre")]

    return WebPage(
        url=url,
        title=title,
        headers=[h for h in headers if h],
        paragraphs=[p for p in paragraphs if p],
        codes=[c for c in codes if c.strip()],
    )


class WebsiteProcessor:
    """Fetches pages over HTTP.

    Parameters
    - client: optional ``httpx.Client`` (tests inject a ``MockTransport``)
    - timeout: request timeout in seconds; defaults to settings
    """

    def __init__(self, client: Optional[httpx.Client] = None, timeout: Optional[float] = None):
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=timeout or get_settings().request_timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    def close(self) -> None:
        """Close the HTTP client if this processor created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def process_website(self, url: str) -> WebPage:
        """Download ``url`` and extract its text blocks."""
        try:
            response = self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Web page request rejected", url=url, status_code=e.response.status_code)
            raise BackendCallError(f"Fetching {url} failed with HTTP {e.response.status_code}",
                                   status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error("Web page request failed", url=url, error=str(e))
            raise BackendCallError(f"Fetching {url} failed: {e}") from e

        page = parse_html(url, response.text)
        logger.info(
            "Fetched web page",
            url=url,
            headers=len(page.headers),
            paragraphs=len(page.paragraphs),
            codes=len(page.codes),
        )
        return page
