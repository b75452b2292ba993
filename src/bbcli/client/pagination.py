from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ValidationError

from bbcli.client.api import BitbucketClient
from bbcli.shared.exceptions import ResponseDecodeError


class PaginatedResponse(BaseModel):
    """
    Standard paginated envelope of the 2.0 API.
    See https://developer.atlassian.com/cloud/bitbucket/rest/intro/#pagination
    """

    size: int | None = None
    page: int | None = None
    pagelen: int | None = None
    next: str | None = None
    previous: str | None = None
    values: list[Any] = []


def _parse_page(url: str, content: bytes) -> PaginatedResponse:
    try:
        return PaginatedResponse.model_validate_json(content)
    except ValidationError as e:
        raise ResponseDecodeError(f"GET {url} did not return a paginated collection: {e}") from e


def iter_pages(client: BitbucketClient, path: str) -> Iterator[Any]:
    """Yield every value of a paginated collection, following `next` links."""
    page = _parse_page(path, client.get(path))
    yield from page.values
    while page.next:
        url = page.next
        page = _parse_page(url, client.get_raw(url))
        yield from page.values
