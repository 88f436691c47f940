"""URL canonicalization used for deduplication and link resolution."""

from typing import Any, List
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit, SplitResult

from ..foundation.errors import InvalidUrlError


DEFAULT_PORTS = {"http": 80, "https": 443}
HTTP_SCHEMES = frozenset(DEFAULT_PORTS)


def _split(url: Any) -> SplitResult:
    """Split ``url`` and check it has a scheme and a host.

    Raises:
        InvalidUrlError: If the URL cannot be parsed
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidUrlError(f"Invalid URL: {url!r}", url=url)

    try:
        parts = urlsplit(url.strip())
        # Accessing .port validates it
        parts.port
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL: {url} ({e})", url=url) from e

    if not parts.scheme or not parts.hostname:
        raise InvalidUrlError(f"Invalid URL: {url}", url=url)

    return parts


def _remove_dot_segments(path: str) -> str:
    """Collapse ``.`` and ``..`` segments (RFC 3986 section 5.2.4)."""
    if "." not in path:
        return path

    output: List[str] = []
    segments = path.split("/")
    for segment in segments:
        if segment == ".":
            continue
        if segment == "..":
            if len(output) > 1:
                output.pop()
            continue
        output.append(segment)

    result = "/".join(output)
    if segments[-1] in (".", ".."):
        result += "/"
    if path.startswith("/") and not result.startswith("/"):
        result = "/" + result
    return result


def _build_netloc(parts: SplitResult, scheme: str) -> str:
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"

    port = parts.port
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"

    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo += f":{parts.password}"
        host = f"{userinfo}@{host}"

    return host


def normalize_url(url: str) -> str:
    """Return the canonical form of ``url``.

    Scheme, host and path are lowercased, an empty path becomes ``/``,
    trailing slashes are removed (except for the root path), default
    ports are dropped, query parameters are sorted by key (stable for
    repeated keys) and the fragment is removed. The function is
    idempotent.

    Args:
        url: Absolute URL

    Returns:
        Normalized URL string

    Raises:
        InvalidUrlError: If the URL has no scheme or host, or a bad port
    """
    parts = _split(url)
    scheme = parts.scheme.lower()
    netloc = _build_netloc(parts, scheme)

    path = _remove_dot_segments(parts.path).lower()
    if path != "/":
        path = path.rstrip("/")
    if not path and scheme in HTTP_SCHEMES:
        path = "/"

    query = ""
    if parts.query:
        pairs = parse_qsl(parts.query, keep_blank_values=True)
        # sorted() is stable, so repeated keys keep their order
        query = urlencode(sorted(pairs, key=lambda pair: pair[0]))

    return urlunsplit((scheme, netloc, path, query, ""))


def resolve_url(base_url: str, relative_url: str) -> str:
    """Resolve ``relative_url`` against ``base_url`` and normalize it.

    Raises:
        InvalidUrlError: If either input is malformed
    """
    _split(base_url)
    if not isinstance(relative_url, str):
        raise InvalidUrlError(f"Invalid URL: {relative_url!r}", url=relative_url)

    try:
        resolved = urljoin(base_url.strip(), relative_url.strip())
    except ValueError as e:
        raise InvalidUrlError(
            f"Failed to resolve URL: {relative_url} against {base_url}", url=relative_url
        ) from e

    return normalize_url(resolved)


def is_http_url(url: str) -> bool:
    """True if ``url`` parses and uses the http or https scheme."""
    try:
        parts = _split(url)
    except InvalidUrlError:
        return False
    return parts.scheme.lower() in HTTP_SCHEMES


def get_domain(url: str) -> str:
    """Lowercased host of ``url``.

    Raises:
        InvalidUrlError: If the URL is malformed
    """
    return _split(url).hostname or ""


def is_same_domain(url1: str, url2: str) -> bool:
    """True if both URLs share a host; False if either is malformed."""
    try:
        return get_domain(url1) == get_domain(url2)
    except InvalidUrlError:
        return False


def get_origin(url: str) -> str:
    """``scheme://host[:port]`` for ``url``, without a default port.

    Raises:
        InvalidUrlError: If the URL is malformed
    """
    parts = _split(url)
    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"
    return f"{scheme}://{host}"
