"""Tests for robots.txt parsing and the caching checker."""

import httpx
import pytest

from deepcrawl.core.robots import (
    ALLOW_ALL, RobotsChecker, RobotsRuleGroup, is_path_allowed, parse_robots_txt, select_group
)


ROBOTS = """
# comment line
User-agent: *
Disallow: /private
Allow: /private/public

User-agent: BadBot
User-agent: WorseBot
Disallow: /

User-agent: DeepCrawler
Disallow: /no-deep  # trailing comment
Crawl-delay: 2
"""


class TestParseRobotsTxt:
    """Test suite for parse_robots_txt."""

    def test_groups(self):
        groups = parse_robots_txt(ROBOTS)

        assert len(groups) == 3
        assert groups[0].user_agents == ["*"]
        assert groups[0].disallow == ["/private"]
        assert groups[0].allow == ["/private/public"]
        assert groups[1].user_agents == ["BadBot", "WorseBot"]
        assert groups[2].disallow == ["/no-deep"]

    def test_crawl_delay_in_milliseconds(self):
        groups = parse_robots_txt("User-agent: *\nCrawl-delay: 1.5\n")
        assert groups[0].crawl_delay == 1500

    def test_invalid_crawl_delay_ignored(self):
        groups = parse_robots_txt("User-agent: *\nCrawl-delay: soon\nCrawl-delay: -1\n")
        assert groups[0].crawl_delay is None

    def test_rules_before_user_agent_and_empty_values_ignored(self):
        groups = parse_robots_txt("Disallow: /x\nUser-agent: *\nDisallow:\nAllow: \n")
        assert len(groups) == 1
        assert groups[0].disallow == []
        assert groups[0].allow == []

    def test_case_insensitive_keys(self):
        groups = parse_robots_txt("USER-AGENT: *\nDISALLOW: /tmp\n")
        assert groups[0].disallow == ["/tmp"]

    def test_empty_content(self):
        assert parse_robots_txt("") == []


class TestGroupSelection:
    """Test suite for select_group and is_path_allowed."""

    def test_exact_match_wins(self):
        groups = parse_robots_txt(ROBOTS)
        assert select_group(groups, "badbot") is groups[1]

    def test_substring_match(self):
        groups = parse_robots_txt(ROBOTS)
        assert select_group(groups, "DeepCrawler/1.0") is groups[2]

    def test_wildcard_fallback(self):
        groups = parse_robots_txt(ROBOTS)
        assert select_group(groups, "SomeOtherBot/3.0") is groups[0]

    def test_allow_all_when_nothing_matches(self):
        groups = parse_robots_txt("User-agent: BadBot\nDisallow: /\n")
        assert select_group(groups, "GoodBot") is ALLOW_ALL

    def test_allow_beats_disallow(self):
        group = parse_robots_txt("User-agent: *\nDisallow: /private\nAllow: /private/public\n")[0]

        assert not is_path_allowed("/private/secret", group)
        assert is_path_allowed("/private/public/x", group)
        assert is_path_allowed("/open", group)

    def test_trailing_wildcard_is_prefix(self):
        group = RobotsRuleGroup(user_agents=["*"], disallow=["/tmp*"])
        assert not is_path_allowed("/tmpfile", group)
        assert is_path_allowed("/other", group)

    def test_patterns_match_regardless_of_case(self):
        group = parse_robots_txt("User-agent: *\nDisallow: /Private\nAllow: /Private/Public\n")[0]

        assert not is_path_allowed("/private/secret", group)
        assert not is_path_allowed("/PRIVATE/secret", group)
        assert is_path_allowed("/private/public/x", group)


def robots_client(routes, calls=None) -> httpx.AsyncClient:
    """Client answering ``/robots.txt`` per host from ``routes``."""
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(str(request.url))
        body = routes.get(request.url.host)
        if body is None:
            return httpx.Response(404)
        if isinstance(body, Exception):
            raise body
        return httpx.Response(200, text=body, headers={"content-type": "text/plain"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestRobotsChecker:
    """Test suite for RobotsChecker."""

    async def test_blocks_and_allows(self):
        client = robots_client({"example.com": "User-agent: *\nDisallow: /private\nAllow: /private/public\n"})
        checker = RobotsChecker(client=client)

        assert not await checker.is_allowed("https://example.com/private/secret", "TestBot")
        assert await checker.is_allowed("https://example.com/private/public/x", "TestBot")
        assert await checker.is_allowed("https://example.com/", "TestBot")
        await client.aclose()

    async def test_query_is_part_of_checked_path(self):
        client = robots_client({"example.com": "User-agent: *\nDisallow: /search?q=\n"})
        checker = RobotsChecker(client=client)

        assert not await checker.is_allowed("https://example.com/search?q=test")
        assert await checker.is_allowed("https://example.com/search")
        await client.aclose()

    async def test_missing_robots_allows_everything(self):
        client = robots_client({})
        checker = RobotsChecker(client=client)

        assert await checker.is_allowed("https://example.com/anything")
        assert await checker.get_crawl_delay("https://example.com/") is None
        await client.aclose()

    async def test_network_failure_fails_open(self):
        client = robots_client({"example.com": httpx.ConnectError("refused")})
        checker = RobotsChecker(client=client)

        assert await checker.is_allowed("https://example.com/private")
        await client.aclose()

    async def test_invalid_url_fails_open(self):
        checker = RobotsChecker(client=robots_client({}))
        assert await checker.is_allowed("not a url")
        assert await checker.get_crawl_delay("not a url") is None

    async def test_crawl_delay(self):
        client = robots_client({"example.com": ROBOTS})
        checker = RobotsChecker(client=client, user_agent="DeepCrawler/1.0")

        assert await checker.get_crawl_delay("https://example.com/page") == 2000
        await client.aclose()

    async def test_rules_cached_per_origin(self):
        calls = []
        client = robots_client({"example.com": "User-agent: *\nDisallow: /x\n"}, calls)
        checker = RobotsChecker(client=client)

        await checker.is_allowed("https://example.com/a")
        await checker.is_allowed("https://example.com/b")
        await checker.get_crawl_delay("https://example.com/c")
        assert calls == ["https://example.com/robots.txt"]

        await checker.is_allowed("http://example.com:8080/a")
        assert calls[-1] == "http://example.com:8080/robots.txt"
        await client.aclose()

    async def test_cache_expires_after_ttl(self):
        now = [0.0]
        calls = []
        client = robots_client({"example.com": "User-agent: *\n"}, calls)
        checker = RobotsChecker(client=client, cache_ttl=10, clock=lambda: now[0])

        await checker.is_allowed("https://example.com/")
        now[0] = 5.0
        await checker.is_allowed("https://example.com/")
        assert len(calls) == 1

        now[0] = 11.0
        await checker.is_allowed("https://example.com/")
        assert len(calls) == 2
        await client.aclose()

    async def test_clear_cache(self):
        calls = []
        client = robots_client({"example.com": "User-agent: *\n"}, calls)
        checker = RobotsChecker(client=client)

        await checker.is_allowed("https://example.com/")
        checker.clear_cache()
        assert checker.cache_size() == 0
        assert not checker._locks

        await checker.is_allowed("https://example.com/")
        assert len(calls) == 2
        await client.aclose()

    async def test_mixed_case_disallow_blocks_normalized_url(self):
        client = robots_client({"example.com": "User-agent: *\nDisallow: /Private\n"})
        checker = RobotsChecker(client=client)

        assert not await checker.is_allowed("https://example.com/private/secret")
        assert await checker.is_allowed("https://example.com/public")
        await client.aclose()

    async def test_expired_origins_pruned_on_insert(self):
        now = [0.0]
        client = robots_client({})
        checker = RobotsChecker(client=client, cache_ttl=10, clock=lambda: now[0])

        for index in range(5):
            await checker.is_allowed(f"https://host{index}.example.com/")
        assert checker.cache_size() == 5
        assert len(checker._locks) == 5

        now[0] = 11.0
        await checker.is_allowed("https://fresh.example.com/")

        assert checker.cache_size() == 1
        assert list(checker._locks) == ["https://fresh.example.com"]
        await client.aclose()

    async def test_cache_capped_at_max_entries(self):
        calls = []
        client = robots_client({}, calls)
        checker = RobotsChecker(client=client, max_entries=3)

        for index in range(5):
            await checker.is_allowed(f"https://host{index}.example.com/")
        assert checker.cache_size() == 3
        assert len(checker._locks) <= 3

        await checker.is_allowed("https://host4.example.com/")
        assert len(calls) == 5

        await checker.is_allowed("https://host0.example.com/")
        assert calls[-1] == "https://host0.example.com/robots.txt"
        await client.aclose()
