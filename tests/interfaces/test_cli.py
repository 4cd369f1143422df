"""Tests for the command-line interface."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

import config.pipeline_config as pipeline_config_module
import interfaces.cli as cli_module
from interfaces.cli import app

SHIPPED_TEMPLATES = str(Path(__file__).parents[2] / "config" / "templates.yaml")

runner = CliRunner()


@pytest.fixture(autouse=True)
def memory_backend(monkeypatch, tmp_path):
    monkeypatch.setattr(pipeline_config_module, "_config", None)
    monkeypatch.setenv("PIPELINE_CONFIG_PATH", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("PIPELINE_STORAGE_BACKEND", "memory")


@pytest.fixture
def book_file(tmp_path):
    def write(**overrides):
        data = {
            "@type": "o:Item",
            "o:resource_template": {"o:id": 1},
            "o:resource_class": {"o:id": 40},
            "o:media": [{"o:resource_template": {"o:id": 2}}],
            "dcterms:identifier": [{"type": "literal", "@value": "ABC-1234"}],
            "dcterms:subject": [{"type": "literal", "@value": "History; Maps"}],
        }
        data.update(overrides)
        path = tmp_path / "book.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)
    return write


class TestCli:

    def test_templates_for_kind(self):
        result = runner.invoke(app, ["templates", "--kind", "media", "--templates", SHIPPED_TEMPLATES])

        assert result.exit_code == 0
        assert "[2] Page scan" in result.output
        assert "Book" not in result.output

    def test_unknown_kind(self):
        result = runner.invoke(app, ["templates", "--kind", "o:Unknown", "--templates", SHIPPED_TEMPLATES])
        assert result.exit_code == 2

    def test_check_prints_enriched_resource(self, book_file):
        result = runner.invoke(app, ["check", "--resource", book_file(), "--templates", SHIPPED_TEMPLATES])

        assert result.exit_code == 0
        assert '"o:title": "ABC-1234"' in result.output
        assert '"@value": "Maps"' in result.output
        assert '"@value": "Text"' in result.output

    def test_check_reports_violations(self, book_file):
        path = book_file(**{"dcterms:identifier": [{"type": "literal", "@value": "abc-1"}]})

        result = runner.invoke(app, ["check", "--resource", path, "--templates", SHIPPED_TEMPLATES])

        assert result.exit_code == 1
        assert "Resource rejected" in result.output
        assert 'does not follow the input pattern' in result.output

    def test_check_unreadable_file(self, tmp_path):
        result = runner.invoke(app, ["check", "--resource", str(tmp_path / "nope.json")])
        assert result.exit_code == 2

    def test_display_uses_template_order(self, book_file):
        path = book_file(**{"dcterms:title": [{"type": "literal", "@value": "Atlas"}]})

        result = runner.invoke(app, ["display", "--resource", path, "--templates", SHIPPED_TEMPLATES])

        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert lines[0] == "dcterms:title: Atlas"
        assert "dcterms:description: [no description]" in lines

    @pytest.mark.parametrize("command", ["check", "templates", "display"])
    def test_storage_is_released_after_each_command(self, monkeypatch, book_file, command):
        shutdown = AsyncMock()
        monkeypatch.setattr(cli_module, "shutdown_write_pipeline", shutdown)
        args = [command, "--templates", SHIPPED_TEMPLATES]
        if command != "templates":
            args += ["--resource", book_file()]

        result = runner.invoke(app, args)

        assert result.exit_code == 0
        shutdown.assert_awaited_once()

    def test_storage_is_released_when_resource_is_rejected(self, monkeypatch, book_file):
        shutdown = AsyncMock()
        monkeypatch.setattr(cli_module, "shutdown_write_pipeline", shutdown)
        path = book_file(**{"dcterms:identifier": [{"type": "literal", "@value": "abc-1"}]})

        result = runner.invoke(app, ["check", "--resource", path, "--templates", SHIPPED_TEMPLATES])

        assert result.exit_code == 1
        shutdown.assert_awaited_once()
