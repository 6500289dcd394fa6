"""Page reading capability shared by the browser backend and static fixtures."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)


@dataclass
class NetworkResponse:
    """A network response captured while the page was loading."""

    url: str
    status: int = 200
    body: str = ""
    content_type: str = ""


ResponsePredicate = Callable[[str], bool]
ResponseHandler = Callable[[NetworkResponse], None]


class PageReader(ABC):
    """
    Read-only view of a loaded page.

    Backends only provide the raw document, in-page evaluation and the
    captured network responses. Selector queries run against a parsed copy of
    the document so extractors behave identically for a live browser page and
    a static HTML fixture.
    """

    def __init__(self, url: str = "", status: Optional[int] = None):
        self.url = url
        self.status = status
        self.responses: List[NetworkResponse] = []
        self._soup: Optional[BeautifulSoup] = None

    @abstractmethod
    async def content(self) -> str:
        """Return the current document HTML."""
        pass

    @abstractmethod
    async def evaluate(self, script: str) -> Any:
        """
        Evaluate a JavaScript expression in the page.

        Args:
            script: Expression or function source

        Returns:
            JSON-serializable result, or None when unsupported
        """
        pass

    def network_responses(
        self, predicate: Optional[ResponsePredicate] = None
    ) -> List[NetworkResponse]:
        """Return captured responses, optionally filtered by URL predicate."""
        if predicate is None:
            return list(self.responses)
        return [r for r in self.responses if predicate(r.url)]

    async def soup(self) -> BeautifulSoup:
        """Parsed document, cached until refresh() is called."""
        if self._soup is None:
            self._soup = BeautifulSoup(await self.content(), "html.parser")
        return self._soup

    def refresh(self) -> None:
        """Drop the parsed document so the next query re-reads the page."""
        self._soup = None

    async def select(self, selector: str) -> List[Tag]:
        soup = await self.soup()
        return soup.select(selector)

    async def select_one(self, selector: str) -> Optional[Tag]:
        soup = await self.soup()
        return soup.select_one(selector)

    async def exists(self, selector: str) -> bool:
        return await self.select_one(selector) is not None

    async def query_text(self, selector: str) -> Optional[str]:
        """Text of the first element matching selector, or None."""
        element = await self.select_one(selector)
        if element is None:
            return None
        return element.get_text(" ", strip=True)

    async def query_all_text(self, selector: str) -> List[str]:
        return [el.get_text(" ", strip=True) for el in await self.select(selector)]

    async def query_attribute(self, selector: str, attribute: str) -> Optional[str]:
        """Attribute value of the first element matching selector, or None."""
        element = await self.select_one(selector)
        if element is None:
            return None
        value = element.get(attribute)
        if isinstance(value, list):
            return " ".join(value)
        return value

    async def query_all_attributes(self, selector: str, attribute: str) -> List[str]:
        values = []
        for element in await self.select(selector):
            value = element.get(attribute)
            if value:
                values.append(" ".join(value) if isinstance(value, list) else value)
        return values


class HtmlPageReader(PageReader):
    """
    PageReader over static HTML, used for fixtures and offline re-parsing.

    Args:
        html: Document HTML
        url: URL the document was loaded from
        status: HTTP status to report
        responses: Network responses to expose to the coordinate resolver
        evaluations: Mapping of script source -> result returned by evaluate()
    """

    def __init__(
        self,
        html: str,
        url: str = "",
        status: Optional[int] = 200,
        responses: Optional[List[NetworkResponse]] = None,
        evaluations: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(url=url, status=status)
        self.html = html
        self.responses = list(responses or [])
        self.evaluations = evaluations or {}

    async def content(self) -> str:
        return self.html

    async def evaluate(self, script: str) -> Any:
        return self.evaluations.get(script)
