"""Per-job crawl policy: limits, domain scoping and private-address exclusion."""

import ipaddress
from typing import Optional

from ..foundation.errors import InvalidUrlError
from ..models.crawl import CrawlOptions, CrawlStrategy
from .normalizer import get_domain


PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(net)
    for net in (
        "127.0.0.0/8",
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "169.254.0.0/16",
        "0.0.0.0/8",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
    )
)


def is_private_host(hostname: str) -> bool:
    """True for localhost names and literal private or loopback addresses.

    Only the literal host is inspected; names are not resolved.
    """
    host = hostname.lower().strip("[]").rstrip(".")
    if host == "localhost" or host.endswith(".localhost"):
        return True

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped

    return any(address in network for network in PRIVATE_NETWORKS if network.version == address.version)


class CrawlRules:
    """Decides whether a discovered URL may be crawled within one job."""

    def __init__(self, options: CrawlOptions):
        self.options = options
        # Raises InvalidUrlError for a malformed seed
        self.base_domain = get_domain(options.start_url)

    def should_crawl_depth(self, depth: int) -> bool:
        return depth < self.options.max_depth

    def has_reached_page_limit(self, pages_scraped: int) -> bool:
        return pages_scraped >= self.options.max_pages

    def is_allowed_domain(self, url: str) -> bool:
        if self.options.strategy == CrawlStrategy.ALL:
            return True
        try:
            return get_domain(url) == self.base_domain
        except InvalidUrlError:
            return False

    def is_private_url(self, url: str) -> bool:
        """True if the URL targets a private address; malformed URLs count as private."""
        try:
            hostname: Optional[str] = get_domain(url)
        except InvalidUrlError:
            return True
        return is_private_host(hostname or "")

    def should_crawl(self, url: str, depth: int, pages_scraped: int) -> bool:
        """Combined check applied to every dequeued URL."""
        if not self.should_crawl_depth(depth):
            return False
        if self.has_reached_page_limit(pages_scraped):
            return False
        if not self.is_allowed_domain(url):
            return False
        if self.is_private_url(url):
            return False
        return True
