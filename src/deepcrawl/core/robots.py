"""robots.txt fetching, caching and evaluation."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from ..foundation.errors import InvalidUrlError
from ..foundation.logging import get_logger
from .normalizer import get_origin


DEFAULT_CACHE_TTL = 3600  # seconds
DEFAULT_FETCH_TIMEOUT = 5.0  # seconds
DEFAULT_MAX_ENTRIES = 10000
MAX_ROBOTS_SIZE = 512 * 1024

logger = get_logger(__name__)


@dataclass
class RobotsRuleGroup:
    """Directives that apply to one or more user agents."""
    user_agents: List[str] = field(default_factory=list)
    allow: List[str] = field(default_factory=list)
    disallow: List[str] = field(default_factory=list)
    crawl_delay: Optional[float] = None  # milliseconds

    def matches_agent(self, user_agent: str) -> bool:
        return user_agent.lower() in (agent.lower() for agent in self.user_agents)


ALLOW_ALL = RobotsRuleGroup(user_agents=["*"], allow=["/"])


def parse_robots_txt(content: str) -> List[RobotsRuleGroup]:
    """Parse robots.txt text into rule groups.

    Consecutive ``User-agent`` lines form one group; any other directive
    closes the run so the next ``User-agent`` starts a new group.
    Directives before the first ``User-agent`` and lines with an empty
    value are ignored. ``Crawl-delay`` is converted to milliseconds.
    """
    groups: List[RobotsRuleGroup] = []
    current: Optional[RobotsRuleGroup] = None
    in_agent_run = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            if not value:
                continue
            if current is None or not in_agent_run:
                current = RobotsRuleGroup()
                groups.append(current)
            current.user_agents.append(value)
            in_agent_run = True
            continue

        in_agent_run = False
        if current is None or not value:
            continue

        if key == "disallow":
            current.disallow.append(value)
        elif key == "allow":
            current.allow.append(value)
        elif key == "crawl-delay":
            try:
                delay = float(value)
            except ValueError:
                continue
            if delay >= 0:
                current.crawl_delay = delay * 1000

    return groups


def select_group(groups: List[RobotsRuleGroup], user_agent: str) -> RobotsRuleGroup:
    """Pick the group for ``user_agent``.

    Exact agent match first, then a group whose agent token is contained
    in ``user_agent``, then the ``*`` group, else allow-all.
    """
    agent = user_agent.lower()

    for group in groups:
        if group.matches_agent(agent):
            return group

    for group in groups:
        for token in group.user_agents:
            if token != "*" and token.lower() in agent:
                return group

    for group in groups:
        if "*" in group.user_agents:
            return group

    return ALLOW_ALL


def _matches(path: str, pattern: str) -> bool:
    # Crawled paths are lowercased by normalize_url
    if pattern.endswith("*"):
        pattern = pattern[:-1]
    return path.lower().startswith(pattern.lower())


def is_path_allowed(path: str, group: RobotsRuleGroup) -> bool:
    """Any matching Allow wins, then any matching Disallow blocks."""
    if any(_matches(path, pattern) for pattern in group.allow):
        return True
    if any(_matches(path, pattern) for pattern in group.disallow):
        return False
    return True


class RobotsChecker:
    """Per-origin robots.txt cache.

    Every failure (unparsable URL, network error, non-2xx status) is
    treated as "no restrictions" and the allow-all answer is cached for
    the same TTL as a real file.

    Expired entries and their locks are pruned on every insert, and at
    most ``max_entries`` origins are kept (oldest evicted first).
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        user_agent: str = "DeepCrawler/1.0",
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cache_ttl = cache_ttl
        self.fetch_timeout = fetch_timeout
        self.user_agent = user_agent
        self.max_entries = max_entries
        self._clock = clock
        self._client = client
        self._owns_client = client is None
        self._cache: Dict[str, Tuple[List[RobotsRuleGroup], float]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self._client

    async def is_allowed(self, url: str, user_agent: Optional[str] = None) -> bool:
        """True unless robots.txt for the URL's origin disallows it."""
        try:
            origin = get_origin(url)
        except InvalidUrlError:
            logger.warning(f"Could not parse URL for robots.txt check, allowing: {url}")
            return True

        parts = urlsplit(url)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"

        groups = await self._get_rules(origin)
        group = select_group(groups, user_agent or self.user_agent)
        return is_path_allowed(path, group)

    async def get_crawl_delay(self, url: str, user_agent: Optional[str] = None) -> Optional[float]:
        """Crawl-delay in milliseconds for the URL's origin, if any."""
        try:
            origin = get_origin(url)
        except InvalidUrlError:
            return None

        groups = await self._get_rules(origin)
        return select_group(groups, user_agent or self.user_agent).crawl_delay

    async def _get_rules(self, origin: str) -> List[RobotsRuleGroup]:
        cached = self._cached(origin)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(origin, asyncio.Lock())
        async with lock:
            # Another task may have fetched while we waited
            cached = self._cached(origin)
            if cached is not None:
                return cached

            content = await self._fetch_robots_txt(origin)
            groups = parse_robots_txt(content) if content is not None else [ALLOW_ALL]
            now = self._clock()
            self._prune(now)
            self._cache[origin] = (groups, now)
            logger.debug(f"Cached robots.txt for {origin}: {len(groups)} groups")
            return groups

    def _cached(self, origin: str) -> Optional[List[RobotsRuleGroup]]:
        entry = self._cache.get(origin)
        if entry is None:
            return None
        groups, fetched_at = entry
        if self._clock() - fetched_at >= self.cache_ttl:
            del self._cache[origin]
            self._drop_lock(origin)
            return None
        return groups

    def _prune(self, now: float) -> None:
        expired = [
            origin for origin, (_, fetched_at) in self._cache.items()
            if now - fetched_at >= self.cache_ttl
        ]
        for origin in expired:
            del self._cache[origin]

        # Dicts keep insertion order, so the first keys are the oldest
        while self._cache and len(self._cache) >= self.max_entries:
            del self._cache[next(iter(self._cache))]

        for origin in [o for o in self._locks if o not in self._cache]:
            self._drop_lock(origin)

    def _drop_lock(self, origin: str) -> None:
        lock = self._locks.get(origin)
        if lock is not None and not lock.locked():
            del self._locks[origin]

    async def _fetch_robots_txt(self, origin: str) -> Optional[str]:
        robots_url = f"{origin}/robots.txt"
        try:
            response = await self._get_client().get(
                robots_url,
                timeout=self.fetch_timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Failed to fetch {robots_url}, allowing all: {e}")
            return None

        if response.status_code >= 400:
            logger.debug(f"No robots.txt for {origin} (status {response.status_code})")
            return None

        if len(response.content) > MAX_ROBOTS_SIZE:
            logger.warning(f"robots.txt for {origin} exceeds {MAX_ROBOTS_SIZE} bytes, ignoring it")
            return None

        return response.text

    def clear_cache(self) -> None:
        self._cache.clear()
        for origin in list(self._locks):
            self._drop_lock(origin)

    def cache_size(self) -> int:
        return len(self._cache)

    async def close(self) -> None:
        """Close the HTTP client if this checker created it."""
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        if self._owns_client:
            self._client = None
