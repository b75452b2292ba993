import httpx
import pytest

from bbcli.client.api import BitbucketClient
from bbcli.client.pagination import iter_pages
from bbcli.shared.exceptions import ResponseDecodeError
from tests.conftest import API_URL, MockCredentialStore, MockTokenRefresher


def test_iter_pages_follows_next_links(oauth_credential):
    pages = {
        f"{API_URL}/repositories/acme": {
            "pagelen": 2,
            "page": 1,
            "values": [{"slug": "one"}, {"slug": "two"}],
            "next": f"{API_URL}/repositories/acme?page=2",
        },
        f"{API_URL}/repositories/acme?page=2": {
            "pagelen": 2,
            "page": 2,
            "values": [{"slug": "three"}],
        },
    }
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=pages[str(request.url)])

    client = BitbucketClient(
        oauth_credential,
        store=MockCredentialStore(oauth_credential),
        refresher=MockTokenRefresher(),
        transport=httpx.MockTransport(handler),
    )

    assert [repo["slug"] for repo in iter_pages(client, "/repositories/acme")] == ["one", "two", "three"]
    assert seen == list(pages)


def test_iter_pages_single_empty_page(oauth_credential):
    client = BitbucketClient(
        oauth_credential,
        store=MockCredentialStore(oauth_credential),
        refresher=MockTokenRefresher(),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"values": []})),
    )

    assert list(iter_pages(client, "/snippets")) == []


@pytest.mark.parametrize("content", [b"<html>rate limited</html>", b'{"values": "not a list"}'])
def test_iter_pages_invalid_page(oauth_credential, content):
    client = BitbucketClient(
        oauth_credential,
        store=MockCredentialStore(oauth_credential),
        refresher=MockTokenRefresher(),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=content)),
    )

    with pytest.raises(ResponseDecodeError, match="GET /repositories/acme"):
        list(iter_pages(client, "/repositories/acme"))
