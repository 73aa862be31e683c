"""
Tests for the action-kb command-line interface.
"""

import json

import pytest
from click.testing import CliRunner

from action_kb.tools.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def persist_dir(tmp_path):
    return str(tmp_path / "kb")


def _json(result):
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestIndexAndFind:
    """Mining a repository and searching the persisted knowledge base."""

    def test_index_then_find(self, runner, page_object_repo, persist_dir):
        stats = _json(runner.invoke(cli, [
            "index", str(page_object_repo), "--persist-dir", persist_dir, "--json-output",
        ]))
        assert stats["files_scanned"] == 2
        assert stats["actions_created"] == 4

        lookup = _json(runner.invoke(cli, [
            "find", "tap play", "--platform", "ctv", "--persist-dir", persist_dir, "--json-output",
        ]))
        assert lookup["found"] is True
        assert lookup["best_match"]["action"]["method_name"] == "clickPlayButton"

    def test_index_text_output(self, runner, page_object_repo):
        result = runner.invoke(cli, ["index", str(page_object_repo)])
        assert result.exit_code == 0
        assert "Actions created: 4" in result.output

    def test_find_on_empty_base(self, runner):
        result = runner.invoke(cli, ["find", "tap play"])
        assert result.exit_code == 0
        assert "NOT FOUND: tap play" in result.output

    def test_find_rejects_unknown_platform(self, runner):
        result = runner.invoke(cli, ["find", "tap play", "--platform", "tv"])
        assert result.exit_code == 2

    def test_persist_dir_from_environment(self, runner, page_object_repo, persist_dir, monkeypatch):
        monkeypatch.setenv("ACTION_KB_PERSIST_DIR", persist_dir)
        runner.invoke(cli, ["index", str(page_object_repo)])

        stats = _json(runner.invoke(cli, ["stats", "--json-output"]))
        assert stats["atomic_actions"] == 4


class TestTeachAndTranslate:
    def test_teach_then_translate(self, runner, persist_dir):
        taught = runner.invoke(cli, [
            "teach", "skip intro", "click_skip_button", "-s", "bypass intro",
            "--persist-dir", persist_dir,
        ])
        assert taught.exit_code == 0
        assert "term_skip_intro" in taught.output

        translated = runner.invoke(cli, ["translate", "bypass intro", "--persist-dir", persist_dir])
        assert translated.exit_code == 0
        assert "click_skip_button" in translated.output
        assert "learned_terminology" in translated.output

    def test_translate_unknown(self, runner):
        result = runner.invoke(cli, ["translate", "do the thing"])
        assert result.exit_code == 0
        assert "No translation" in result.output


class TestMaintenanceCommands:
    def test_stats_and_clear(self, runner, page_object_repo, persist_dir):
        runner.invoke(cli, ["index", str(page_object_repo), "--persist-dir", persist_dir])

        stats = _json(runner.invoke(cli, ["stats", "--persist-dir", persist_dir, "--json-output"]))
        assert stats["total"] == 4

        cleared = runner.invoke(cli, ["clear", "--yes", "--persist-dir", persist_dir])
        assert cleared.exit_code == 0
        assert "Knowledge base cleared" in cleared.output

        stats = _json(runner.invoke(cli, ["stats", "--persist-dir", persist_dir, "--json-output"]))
        assert stats["total"] == 0

    def test_clear_requires_confirmation(self, runner):
        result = runner.invoke(cli, ["clear"], input="n\n")
        assert result.exit_code != 0
        assert "Knowledge base cleared" not in result.output

    def test_expand_unknown_composite(self, runner):
        result = runner.invoke(cli, ["expand", "missing"])
        assert result.exit_code == 1
        assert "not found" in result.output
