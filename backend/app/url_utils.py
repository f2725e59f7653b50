"""URL helpers: relative resolution and request validation."""
import re
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

# Reserved and unreserved RFC 3986 characters plus existing escapes stay as-is;
# spaces and non-ASCII text get percent-encoded like a browser would.
_SAFE_CHARS = ":/?#[]@!$&'()*+,;=%"

# Text with spaces only counts as a URL when it looks like a path or a file
# name ("my image.png", "/a b/c"). Free text such as "not a url!!" doesn't.
_PATH_LIKE = re.compile(r"/|\.[A-Za-z0-9]{1,5}(?:[?#]|$)")


def _encode_reference(candidate: str) -> str | None:
    text = candidate.strip()
    if not text or any(ord(c) < 32 or ord(c) == 127 for c in text):
        return None
    if any(c.isspace() for c in text) and not _PATH_LIKE.search(text):
        return None
    return quote(text, safe=_SAFE_CHARS)


def resolve_url(base_url: str, relative_url: str | None) -> str | None:
    """
    Resolve relative_url against base_url.

    Empty input is returned as-is. Input that can't be parsed as a URL is
    also returned unchanged instead of raising: metadata values are often
    sloppy and a best-effort answer beats dropping the field.
    """
    if not relative_url:
        return relative_url

    encoded = _encode_reference(relative_url)
    if encoded is None:
        return relative_url

    try:
        resolved = urljoin(base_url, encoded)
        parts = urlsplit(resolved)
    except ValueError:
        return relative_url

    if not parts.scheme or not parts.netloc:
        return relative_url

    return urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path or "/",
        parts.query,
        parts.fragment,
    ))


def is_valid_url(url: str | None) -> bool:
    """True for an absolute http(s) URL with a host."""
    if not url or any(c.isspace() for c in url):
        return False
    try:
        parts = urlsplit(url)
        # .port raises on junk like "http://host:abc"
        parts.port
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def normalize_url(raw: str | None) -> str | None:
    """Strip, default the scheme to https, and validate. None if unusable."""
    if raw is None:
        return None
    url = raw.strip()
    if not url:
        return None
    if "://" not in url:
        url = "https://" + url
    return url if is_valid_url(url) else None
