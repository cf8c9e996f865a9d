"""Tests for the command-line entry point."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from conftest import PREMIUM_MINT
from solana_whale_tracker.__main__ import build_arg_parser, load_factory, main
from solana_whale_tracker.config import clear_settings_cache
from solana_whale_tracker.pipeline import Pipeline


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("PREMIUM_TOKEN_MINT", PREMIUM_MINT)
    clear_settings_cache()
    yield monkeypatch
    clear_settings_cache()


class TestLoadFactory:
    def test_resolves_callable(self) -> None:
        assert load_factory("json:dumps") is json.dumps

    @pytest.mark.parametrize("spec", ["json", ":dumps", "json:", "json:__doc__", "json:missing"])
    def test_rejects_bad_specs(self, spec: str) -> None:
        with pytest.raises(ValueError):
            load_factory(spec)

    def test_unknown_module(self) -> None:
        with pytest.raises(ImportError):
            load_factory("no_such_module_for_tests:build")


class TestArgParser:
    def test_run_requires_parser(self) -> None:
        with pytest.raises(SystemExit):
            build_arg_parser().parse_args(["run"])

    def test_run_arguments(self) -> None:
        args = build_arg_parser().parse_args(["run", "--parser", "a:b", "--dry-run"])

        assert args.command == "run"
        assert args.parser == "a:b"
        assert args.sink is None
        assert args.dry_run is True


class TestMain:
    def test_configuration_error(self, env, capsys) -> None:
        env.delenv("DATABASE_URL")

        assert main(["run", "--parser", "json:dumps"]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_no_feed_enabled(self, env) -> None:
        env.setenv("INGESTION_WHALE_FEED_ENABLED", "false")
        env.setenv("INGESTION_KOL_FEED_ENABLED", "false")

        assert main(["run", "--parser", "json:dumps"]) == 2

    def test_component_load_error(self, env) -> None:
        assert main(["run", "--parser", "no_such_module_for_tests:build"]) == 2

    def test_runs_pipeline(self, env) -> None:
        run = AsyncMock()
        with patch("solana_whale_tracker.__main__.run_pipeline", run):
            assert main(["run", "--parser", "unittest.mock:MagicMock", "--dry-run"]) == 0

        (pipeline,) = run.await_args.args
        assert isinstance(pipeline, Pipeline)
        assert pipeline.dry_run is True
