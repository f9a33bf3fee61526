import httpx
import pytest

from markvault.services import metadata
from markvault.services.metadata import (
    MetadataFetchError,
    PageMetadata,
    extract_metadata,
    fetch_metadata,
)


def test_open_graph_title_wins_over_title_tag():
    html = """
<html><head>
  <title>Plain Title</title>
  <meta property="og:title" content="Open Graph Title">
</head><body></body></html>
"""

    assert extract_metadata(html).title == "Open Graph Title"


def test_content_before_property_is_recognised():
    html = """
<html><head>
  <meta content="https://cdn.example.com/cover.png" property="og:image">
  <meta content="Reversed description" property="og:description">
</head></html>
"""

    result = extract_metadata(html)

    assert result.image == "https://cdn.example.com/cover.png"
    assert result.description == "Reversed description"


def test_fallbacks_use_title_and_description_meta():
    html = """
<html><head>
  <title>  Fallback Title  </title>
  <meta name="description" content="Fallback description">
</head></html>
"""

    result = extract_metadata(html)

    assert result == PageMetadata(
        title="Fallback Title", description="Fallback description", image=None
    )


def test_empty_open_graph_content_falls_through():
    html = """
<html><head>
  <meta property="og:title" content="">
  <title>Real Title</title>
</head></html>
"""

    assert extract_metadata(html).title == "Real Title"


def test_page_without_metadata_returns_empty_result():
    assert extract_metadata("<html><body><p>hi</p></body></html>") == PageMetadata()


def test_payload_uses_endpoint_field_names():
    payload = PageMetadata(title="T", description="D", image="I").as_payload()

    assert payload == {"ogImage": "I", "ogTitle": "T", "ogDesc": "D"}


def test_fetch_failure_raises_distinct_error(monkeypatch):
    def _timeout(*_args, **_kwargs):
        raise httpx.ConnectTimeout("timed out")

    monkeypatch.setattr(metadata, "fetch_html", _timeout)

    with pytest.raises(MetadataFetchError, match="timed out"):
        fetch_metadata("https://slow.example", timeout=5, max_bytes=1000)


def test_fetch_metadata_extracts_from_fetched_html(monkeypatch):
    calls = []

    def _fetch(url, timeout, max_bytes):
        calls.append((url, timeout, max_bytes))
        return '<meta property="og:title" content="Fetched">'

    monkeypatch.setattr(metadata, "fetch_html", _fetch)

    result = fetch_metadata("https://example.com", timeout=5, max_bytes=1000)

    assert result.title == "Fetched"
    assert calls == [("https://example.com", 5, 1000)]
