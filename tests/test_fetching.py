import pytest
import requests

from newsreader import fetching
from newsreader.errors import FetchError


class FakeResponse:
    def __init__(self, content=b"", status_error=None, read_error=None):
        self._content = content
        self.status_error = status_error
        self.read_error = read_error
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False

    def raise_for_status(self):
        if self.status_error:
            raise self.status_error

    @property
    def content(self):
        if self.read_error:
            raise self.read_error
        return self._content

    @property
    def text(self):
        return self.content.decode("utf-8")


def _install(monkeypatch, response):
    calls = []

    def fake_get(url, **kwargs):
        calls.append((url, kwargs))
        return response

    monkeypatch.setattr(fetching.requests, "get", fake_get)
    return calls


def test_get_content_returns_body_and_releases_connection(monkeypatch):
    response = FakeResponse(b"<rss/>")
    calls = _install(monkeypatch, response)

    assert fetching.get_content("https://example.com/rss", timeout=2.0) == b"<rss/>"
    assert response.closed
    assert len(calls) == 1
    assert calls[0][1]["timeout"] == 2.0


def test_get_text_decodes_body(monkeypatch):
    _install(monkeypatch, FakeResponse("Größe".encode("utf-8")))

    assert fetching.get_text("https://example.com/story") == "Größe"


def test_non_success_status_raises_fetch_error(monkeypatch):
    response = FakeResponse(status_error=requests.HTTPError("404 Client Error"))
    _install(monkeypatch, response)

    with pytest.raises(FetchError) as excinfo:
        fetching.get_text("https://example.com/missing")

    assert "404" in str(excinfo.value)
    assert response.closed


def test_body_read_failure_still_releases_connection(monkeypatch):
    response = FakeResponse(read_error=requests.ConnectionError("reset by peer"))
    _install(monkeypatch, response)

    with pytest.raises(FetchError):
        fetching.get_content("https://example.com/rss")

    assert response.closed


def test_connection_error_raises_fetch_error(monkeypatch):
    def fake_get(url, **kwargs):
        raise requests.Timeout("timed out")

    monkeypatch.setattr(fetching.requests, "get", fake_get)

    with pytest.raises(FetchError) as excinfo:
        fetching.get_content("https://slow.example.com/rss")

    assert isinstance(excinfo.value.cause, requests.Timeout)


@pytest.mark.parametrize("get", [fetching.get_content, fetching.get_text])
def test_both_readers_issue_one_identical_request(monkeypatch, get):
    response = FakeResponse(read_error=requests.ConnectionError("reset by peer"))
    calls = _install(monkeypatch, response)

    with pytest.raises(FetchError):
        get("https://example.com/feed", timeout=3.0)

    assert response.closed
    assert calls == [
        (
            "https://example.com/feed",
            {
                "timeout": 3.0,
                "stream": True,
                "headers": {"User-Agent": fetching.USER_AGENT},
            },
        )
    ]
