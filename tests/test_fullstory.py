import pytest

from newsreader.errors import FetchError
from newsreader.fullstory import FullStoryHandle, FullStoryResolver


class CountingFetch:
    def __init__(self, body="<html>story</html>", error=None):
        self.body = body
        self.error = error
        self.calls = []

    def __call__(self, url, timeout):
        self.calls.append((url, timeout))
        if self.error:
            raise self.error
        return self.body


def test_constructing_handle_performs_no_fetch():
    fetch = CountingFetch()
    resolver = FullStoryResolver(timeout=5.0, fetch=fetch)

    handle = resolver.handle("https://example.com/story")

    assert isinstance(handle, FullStoryHandle)
    assert handle.remote_http_url == "https://example.com/story"
    assert fetch.calls == []


def test_each_resolve_fetches_once_without_caching():
    fetch = CountingFetch()
    handle = FullStoryResolver(timeout=5.0, fetch=fetch).handle("https://example.com/story")

    assert handle.resolve() == "<html>story</html>"
    assert handle.resolve() == "<html>story</html>"
    assert fetch.calls == [("https://example.com/story", 5.0)] * 2


def test_failed_resolve_raises_fetch_error():
    fetch = CountingFetch(error=FetchError("Failed to fetch https://example.com/gone"))
    handle = FullStoryResolver(fetch=fetch).handle("https://example.com/gone")

    with pytest.raises(FetchError):
        handle.resolve()
    assert len(fetch.calls) == 1


def test_handle_serializes_only_url():
    handle = FullStoryResolver(fetch=CountingFetch()).handle("https://example.com/story")

    assert handle.to_dict() == {"remote_http_url": "https://example.com/story"}
