"""Tests for the scrape, batch, crawl, serve and config commands."""

import json
import re
from unittest.mock import patch

import pytest
import yaml

from deepcrawl.cli.main import cli
from deepcrawl.core.fetcher import InMemoryFetcher
from deepcrawl.foundation.metrics import MetricsCollector
from deepcrawl.services.crawl import CrawlService


@pytest.fixture(autouse=True)
def quiet_cli_setup(temp_dir, monkeypatch):
    """Keep the user config and the root logger untouched by CLI runs."""
    monkeypatch.setenv("DEEPCRAWL_CONFIG_PATH", str(temp_dir / "user-config.yaml"))
    with patch("deepcrawl.cli.main.setup_cli_logging"):
        yield


@pytest.fixture
def cli_obj(test_config, site_pages):
    """Context object whose services crawl the in-memory site."""
    def factory():
        return CrawlService(
            config=test_config,
            fetcher=InMemoryFetcher(site_pages),
            metrics=MetricsCollector(),
        )
    return {"service_factory": factory}


class TestScrapeCommand:
    """Test the scrape command."""

    def test_scrape_json(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ['scrape', 'https://example.com/', '--format', 'json'], obj=cli_obj)

        assert result.exit_code == 0
        page = json.loads(result.stdout)
        assert page["title"] == "Home"
        assert page["depth"] == 0
        assert len(page["links"]) == 5

    def test_scrape_text(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ['scrape', 'https://example.com/'], obj=cli_obj)

        assert result.exit_code == 0
        assert "Scraped Page" in result.output
        assert "Welcome home" in result.output

    def test_scrape_quiet(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ['-q', 'scrape', 'https://example.com/a'], obj=cli_obj)

        assert result.exit_code == 0
        assert result.stdout == "Page A\n"

    def test_scrape_output_file(self, cli_runner, cli_obj, temp_dir):
        output = temp_dir / "out" / "page.json"

        result = cli_runner.invoke(cli, ['scrape', 'https://example.com/c', '-o', str(output)], obj=cli_obj)

        assert result.exit_code == 0
        assert json.loads(output.read_text())["title"] == "Page C"

    def test_scrape_failure(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ['scrape', 'https://example.com/missing'], obj=cli_obj)

        assert result.exit_code == 1
        assert "Scraping failed" in result.output

    def test_scrape_invalid_url(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ['scrape', 'example.com'], obj=cli_obj)

        assert result.exit_code == 1
        assert "Invalid URL" in result.output

    def test_scrape_timeout_out_of_range(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ['scrape', 'https://example.com/', '--timeout', '10'], obj=cli_obj)
        assert result.exit_code == 2


class TestBatchCommand:
    """Test the batch command."""

    def test_batch_arguments(self, cli_runner, cli_obj):
        result = cli_runner.invoke(
            cli, ['batch', 'https://example.com/a', 'https://example.com/missing'], obj=cli_obj
        )

        assert result.exit_code == 0
        assert "Batch Summary" in result.output
        assert "Errors" in result.output

    def test_batch_file_and_output(self, cli_runner, cli_obj, temp_dir):
        """Test URL files skip comments and duplicates."""
        url_file = temp_dir / "urls.txt"
        url_file.write_text(
            "# pages to fetch\nhttps://example.com/a\n\nhttps://example.com/b\nhttps://example.com/a\n"
        )
        output = temp_dir / "batch.json"

        result = cli_runner.invoke(
            cli, ['-q', 'batch', '--file', str(url_file), '--output', str(output), '--concurrency', '2'],
            obj=cli_obj,
        )

        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert data["stats"]["total"] == 2
        assert data["stats"]["success"] == 2

    def test_batch_json_file(self, cli_runner, cli_obj, temp_dir):
        url_file = temp_dir / "urls.json"
        url_file.write_text(json.dumps({"urls": ["https://example.com/c"]}))
        output = temp_dir / "batch.json"

        result = cli_runner.invoke(
            cli, ['batch', '-f', str(url_file), '-o', str(output)], obj=cli_obj
        )

        assert result.exit_code == 0
        assert json.loads(output.read_text())["results"][0]["title"] == "Page C"

    def test_batch_without_urls(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ['batch'], obj=cli_obj)

        assert result.exit_code == 2
        assert "No URLs provided" in result.output


class TestCrawlCommand:
    """Test the crawl command."""

    def test_crawl_quiet_prints_job_id(self, cli_runner, cli_obj):
        result = cli_runner.invoke(
            cli, ['-q', 'crawl', 'https://example.com/', '--max-depth', '2', '--max-pages', '5'], obj=cli_obj
        )

        assert result.exit_code == 0
        assert re.fullmatch(r"job_\d+_[0-9a-f]{12}\n", result.stdout)

    def test_crawl_output_file(self, cli_runner, cli_obj, temp_dir):
        output = temp_dir / "crawl.json"

        result = cli_runner.invoke(
            cli,
            ['crawl', 'https://example.com/', '--max-depth', '2', '--max-pages', '5', '-o', str(output)],
            obj=cli_obj,
        )

        assert result.exit_code == 0
        assert "Crawl started" in result.output
        assert "Crawl Summary" in result.output
        job = json.loads(output.read_text())
        assert job["status"] == "completed"
        assert job["result"]["pagesScraped"] == 5
        assert job["result"]["linksDiscovered"] == 8
        assert job["options"]["maxDepth"] == 2

    def test_crawl_with_monitor(self, cli_runner, cli_obj):
        result = cli_runner.invoke(
            cli, ['crawl', 'https://example.com/', '--strategy', 'all', '--monitor'], obj=cli_obj
        )

        assert result.exit_code == 0
        assert "Crawl Summary" in result.output

    def test_crawl_invalid_url(self, cli_runner, cli_obj):
        result = cli_runner.invoke(cli, ['crawl', 'not-a-url'], obj=cli_obj)

        assert result.exit_code == 1
        assert "Crawling failed" in result.output

    @pytest.mark.parametrize("option,value", [
        ('--max-depth', '0'),
        ('--max-depth', '11'),
        ('--max-pages', '1001'),
        ('--concurrency', '21'),
        ('--strategy', 'everything'),
    ])
    def test_crawl_option_bounds(self, cli_runner, cli_obj, option, value):
        result = cli_runner.invoke(cli, ['crawl', 'https://example.com/', option, value], obj=cli_obj)
        assert result.exit_code == 2


class TestServeCommand:
    """Test the serve command."""

    def test_serve_defaults_from_config(self, cli_runner):
        with patch("deepcrawl.cli.commands.serve.uvicorn.run") as mock_run, \
                patch("deepcrawl.cli.commands.serve.logger") as mock_logger:
            result = cli_runner.invoke(cli, ['serve'])

        assert result.exit_code == 0
        mock_run.assert_called_once()
        assert mock_run.call_args.kwargs["host"] == "127.0.0.1"
        assert mock_run.call_args.kwargs["port"] == 3000
        assert mock_run.call_args.kwargs["log_config"] is None
        mock_logger.info.assert_called_once_with("Starting API server on 127.0.0.1:3000")

    def test_serve_overrides(self, cli_runner):
        with patch("deepcrawl.cli.commands.serve.uvicorn.run") as mock_run:
            result = cli_runner.invoke(cli, ['serve', '--host', '0.0.0.0', '--port', '8080'])

        assert result.exit_code == 0
        assert mock_run.call_args.kwargs["host"] == "0.0.0.0"
        assert mock_run.call_args.kwargs["port"] == 8080

    def test_serve_invalid_port(self, cli_runner):
        result = cli_runner.invoke(cli, ['serve', '--port', '70000'])
        assert result.exit_code == 2


class TestConfigCommands:
    """Test the config command group."""

    def test_config_show_json(self, cli_runner):
        result = cli_runner.invoke(cli, ['config', 'show', '--format', 'json'])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["crawl"]["max_depth"] == 3
        assert data["api"]["port"] == 3000

    def test_config_show_yaml_section(self, cli_runner):
        result = cli_runner.invoke(cli, ['config', 'show', '--format', 'yaml', '--section', 'fetch'])

        assert result.exit_code == 0
        assert yaml.safe_load(result.stdout)["user_agent"] == "DeepCrawler/1.0"

    def test_config_show_table(self, cli_runner):
        result = cli_runner.invoke(cli, ['config', 'show', '--section', 'crawl'])

        assert result.exit_code == 0
        assert "max_depth" in result.output

    def test_config_show_tree(self, cli_runner):
        result = cli_runner.invoke(cli, ['config', 'show'])

        assert result.exit_code == 0
        assert "Configuration" in result.output
        assert "rate_limit" in result.output

    def test_config_show_unknown_section(self, cli_runner):
        result = cli_runner.invoke(cli, ['config', 'show', '--section', 'nope'])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_config_init(self, cli_runner, temp_dir):
        """Test init refuses to overwrite unless forced."""
        path = temp_dir / "conf" / "config.yaml"

        first = cli_runner.invoke(cli, ['-q', 'config', 'init', '--path', str(path)])
        assert first.exit_code == 0
        assert first.stdout.strip() == str(path)
        assert yaml.safe_load(path.read_text())["crawl"]["strategy"] == "domain"

        second = cli_runner.invoke(cli, ['config', 'init', '--path', str(path)])
        assert second.exit_code == 1
        assert "already exists" in second.output

        forced = cli_runner.invoke(cli, ['config', 'init', '--path', str(path), '--force'])
        assert forced.exit_code == 0

    def test_config_validate(self, cli_runner):
        result = cli_runner.invoke(cli, ['config', 'validate'])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_config_validate_invalid(self, cli_runner, temp_dir):
        config_file = temp_dir / "bad.yaml"
        config_file.write_text("crawl:\n  concurrency: 0\n")

        result = cli_runner.invoke(cli, ['-c', str(config_file), 'config', 'validate'])

        assert result.exit_code == 1
        assert "Configuration is invalid" in result.output
