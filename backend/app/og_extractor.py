"""
Open Graph / Twitter card metadata extraction from static HTML.
"""

from bs4 import BeautifulSoup

from app.url_utils import resolve_url


def _meta(soup: BeautifulSoup, key: str) -> str | None:
    """Content of the first meta tag with property=key, else name=key."""
    for attr in ("property", "name"):
        tag = soup.find("meta", attrs={attr: key})
        if tag is None:
            continue
        content = (tag.get("content") or "").strip()
        if content:
            return content
    return None


def _first(*values):
    for value in values:
        if value:
            return value
    return None


def extract_metadata(html: str, page_url: str | None = None) -> dict:
    """
    Pull social-preview fields out of rendered HTML.

    Each field walks a fallback chain and takes the first non-empty hit:
        title:       og:title, twitter:title, <title>
        description: og:description, description, twitter:description
        image:       og:image, twitter:image (resolved against page_url)
        url:         og:url, page_url
        siteName:    og:site_name
        type:        og:type
    """
    soup = BeautifulSoup(html or "", "html.parser")

    title_tag = soup.find("title")
    page_title = title_tag.get_text(strip=True) if title_tag else None

    image = None
    for key in ("og:image", "twitter:image"):
        raw = _meta(soup, key)
        if raw:
            image = resolve_url(page_url, raw) if page_url else raw
            break

    return {
        "title": _first(_meta(soup, "og:title"), _meta(soup, "twitter:title"), page_title),
        "description": _first(
            _meta(soup, "og:description"),
            _meta(soup, "description"),
            _meta(soup, "twitter:description"),
        ),
        "image": image,
        "url": _first(_meta(soup, "og:url"), page_url),
        "siteName": _meta(soup, "og:site_name"),
        "type": _meta(soup, "og:type"),
    }
