"""Result type and runner for field extractors."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from utils.errors import ParserError
from utils.page_reader import PageReader

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FieldResult(Generic[T]):
    """
    Outcome of one extractor.

    `value` always holds a usable value (the empty/zero value on failure);
    `error` carries the ParserError describing what was missing.
    """

    value: T
    error: Optional[ParserError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


Extractor = Callable[..., Awaitable[FieldResult]]


def missing(field_name: str, selector: str, empty: T, page_url: str = "") -> FieldResult[T]:
    """Build the empty result for an absent selector and log a warning."""
    logger.warning(f"{field_name}: nothing found for '{selector}' on {page_url or 'page'}")
    return FieldResult(
        value=empty,
        error=ParserError(
            f"No {field_name} found",
            selector=selector,
            context={"field": field_name, "url": page_url},
        ),
    )


async def run_extractors(
    page: PageReader,
    extractors: Dict[str, Tuple[Extractor, Any]],
    **kwargs,
) -> Tuple[Dict[str, Any], List[ParserError]]:
    """
    Run extractors one after another against the same page.

    Each extractor is isolated: an unexpected exception is converted into a
    ParserError and the field falls back to its empty value.

    Args:
        page: Loaded page
        extractors: Field name -> (extractor function, empty value)
        **kwargs: Passed to every extractor

    Returns:
        Tuple of (field values, errors)
    """
    values: Dict[str, Any] = {}
    errors: List[ParserError] = []

    for name, (extractor, empty) in extractors.items():
        try:
            result = await extractor(page, **kwargs)
        except Exception as e:
            logger.warning(f"Extractor {name} raised on {page.url}: {e}")
            values[name] = empty
            errors.append(
                ParserError(
                    f"Extractor {name} failed: {e}",
                    context={"field": name, "url": page.url},
                )
            )
            continue

        values[name] = result.value
        if result.error is not None:
            errors.append(result.error)

    return values, errors
