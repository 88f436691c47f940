"""Tests for the CLI entry point."""

from unittest.mock import patch

import click
import pytest

from deepcrawl.cli.main import cli, handle_cli_error, main, setup_cli_logging
from deepcrawl.foundation.config import get_config_manager
from deepcrawl.foundation.errors import ValidationError
from deepcrawl.version import __version__


@pytest.fixture(autouse=True)
def no_user_config(temp_dir, monkeypatch):
    """Keep the real ~/.deepcrawl/config.yaml out of CLI runs."""
    monkeypatch.setenv("DEEPCRAWL_CONFIG_PATH", str(temp_dir / "user-config.yaml"))
    with patch("deepcrawl.cli.main.setup_cli_logging") as mock_setup:
        yield mock_setup


class TestCLIFramework:
    """Test CLI framework and main entry point."""

    def test_cli_help_display(self, cli_runner):
        """Test CLI help lists every command."""
        result = cli_runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert 'breadth-first web scraping and crawling' in result.output
        for command in ('scrape', 'batch', 'crawl', 'serve', 'config'):
            assert command in result.output

    def test_cli_version_display(self, cli_runner):
        result = cli_runner.invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_verbose_option(self, cli_runner, no_user_config):
        """Test that -vv is passed on to logging setup."""
        result = cli_runner.invoke(cli, ['-vv', 'config', 'validate'])

        assert result.exit_code == 0
        no_user_config.assert_called_once_with(2, use_colors=True)

    def test_quiet_overrides_verbose(self, cli_runner, no_user_config):
        result = cli_runner.invoke(cli, ['-v', '-q', '--no-color', 'config', 'validate'])

        assert result.exit_code == 0
        no_user_config.assert_called_once_with(0, use_colors=False)

    def test_config_file_option(self, cli_runner, temp_dir):
        """Test that --config is merged into the global configuration."""
        config_file = temp_dir / "custom.yaml"
        config_file.write_text("crawl:\n  max_depth: 4\n")

        result = cli_runner.invoke(cli, ['--config', str(config_file), 'config', 'validate'])

        assert result.exit_code == 0
        assert get_config_manager().get_setting("crawl.max_depth") == 4

    def test_missing_config_file(self, cli_runner, temp_dir):
        result = cli_runner.invoke(cli, ['--config', str(temp_dir / "missing.yaml"), 'config', 'show'])
        assert result.exit_code == 2

    def test_unknown_command(self, cli_runner):
        result = cli_runner.invoke(cli, ['status'])
        assert result.exit_code == 2


class TestMainFunction:
    """Test the console-script entry point."""

    def test_main_version(self):
        assert main(['--version'], standalone_mode=False) == 0

    def test_main_keyboard_interrupt(self):
        with patch("deepcrawl.cli.main.cli", side_effect=KeyboardInterrupt):
            assert main(['config', 'show']) == 130

    def test_main_unexpected_error(self):
        with patch("deepcrawl.cli.main.cli", side_effect=RuntimeError("boom")):
            assert main(['config', 'show']) == 1


class TestErrorHandling:
    """Test handle_cli_error."""

    def test_crawler_error(self, capsys):
        assert handle_cli_error(ValidationError("bad input", field="url")) == 1
        assert "bad input" in capsys.readouterr().out

    def test_click_exception(self):
        assert handle_cli_error(click.UsageError("wrong")) == 2

    def test_generic_error(self, capsys):
        assert handle_cli_error(RuntimeError("boom")) == 1
        assert "Unexpected error" in capsys.readouterr().out


def test_setup_cli_logging_levels():
    """Test the verbosity to level mapping."""
    with patch("deepcrawl.cli.main.setup_logging") as mock_setup:
        setup_cli_logging(0)
        setup_cli_logging(1)
        setup_cli_logging(2, use_colors=False)

    levels = [call.kwargs["level"] for call in mock_setup.call_args_list]
    assert levels == ["WARNING", "INFO", "DEBUG"]
    assert mock_setup.call_args_list[-1].kwargs["use_colors"] is False
