"""
CLI contract tests for the streamsync operator commands.

Commands run in-process against the per-test database installed by the
``session_factory`` fixture.
"""

import json

import pytest
from sqlalchemy import select
from typer.testing import CliRunner

from streamsync.adapters import registry
from streamsync.cli.main import app
from streamsync.domain.entities import Favorite, Provider, SyncJob
from streamsync.shared.types import ProviderType

runner = CliRunner()


def run_cli(*args):
    return runner.invoke(app, list(args))


def parse_json(result):
    """Decode the JSON document a command printed (log lines may precede it)."""
    text = result.stdout
    start = text.index("{\n") if "{\n" in text else text.index("{")
    payload, _ = json.JSONDecoder().raw_decode(text[start:])
    return payload


@pytest.fixture(autouse=True)
def _database(session_factory):
    return session_factory


class TestHelp:
    @pytest.mark.parametrize("group", ["provider", "sync", "jobs", "cleanup", "db"])
    def test_group_help(self, group):
        result = run_cli(group, "--help")
        assert result.exit_code == 0

    def test_provider_add_help(self):
        result = run_cli("provider", "add", "--help")
        assert result.exit_code == 0
        assert "--name" in result.stdout
        assert "--type" in result.stdout


class TestProviderCommands:
    def test_add_list_show(self):
        result = run_cli(
            "provider", "add",
            "--name", "Main",
            "--url", "http://iptv.example.test",
            "--username", "u",
            "--password", "p",
            "--json",
        )
        assert result.exit_code == 0, result.stdout
        created = parse_json(result)["provider"]
        assert created["provider_type"] == "xtream"
        assert created["sync_status"] == "idle"

        listed = parse_json(run_cli("provider", "list", "--json"))
        assert listed["total"] == 1
        assert listed["providers"][0]["name"] == "Main"

        shown = parse_json(run_cli("provider", "show", str(created["id"]), "--json"))
        assert shown["provider"]["counts"]["movies"] == 0

    def test_root_json_flag(self, xtream_provider):
        result = run_cli("--json", "provider", "list")
        assert result.exit_code == 0
        assert parse_json(result)["providers"][0]["id"] == xtream_provider

    def test_add_rejects_xtream_without_credentials(self):
        result = run_cli("provider", "add", "--name", "Bad", "--url", "http://x.test", "--json")
        assert result.exit_code == 1
        assert parse_json(result)["code"] == "validation"

    def test_show_unknown_provider(self):
        result = run_cli("provider", "show", "999", "--json")
        assert result.exit_code == 1
        payload = parse_json(result)
        assert payload["status"] == "error"
        assert payload["code"] == "not_found"

    def test_list_human_output(self):
        result = run_cli("provider", "list")
        assert result.exit_code == 0
        assert "No providers found" in result.stdout


class TestSyncCommands:
    def test_sync_provider_inline(self, xtream_provider, make_source, fetch):
        source = make_source(
            live=[{"stream_id": 1, "name": "News"}],
            movies=[{"stream_id": 10, "name": "Heat"}, {"stream_id": 11, "name": "Ronin"}],
        )
        registry.register_source(ProviderType.XTREAM, lambda: source)

        result = run_cli("sync", "provider", str(xtream_provider), "--json")

        assert result.exit_code == 0, result.stdout
        stats = parse_json(result)["sync"]
        assert stats["live_channels_count"] == 1
        assert stats["movies_count"] == 2
        [provider] = fetch(select(Provider))
        assert provider.sync_status == "completed"

    def test_sync_unknown_provider(self):
        result = run_cli("sync", "provider", "4040", "--json")
        assert result.exit_code == 1
        assert parse_json(result)["code"] == "not_found"

    def test_progress(self, xtream_provider):
        result = run_cli("sync", "progress", str(xtream_provider), "--json")
        assert result.exit_code == 0


class TestJobCommands:
    def test_enqueue_sync_and_list(self, xtream_provider):
        result = run_cli("jobs", "enqueue-sync", str(xtream_provider), "--json")
        assert result.exit_code == 0, result.stdout
        [job] = parse_json(result)["jobs"]
        assert job["worker"] == "sync_provider"
        assert job["args"] == {"provider_id": xtream_provider, "series_details": "skip"}

        listed = parse_json(run_cli("jobs", "list", "--state", "available", "--json"))
        assert listed["total"] == 1

    def test_enqueue_sync_requires_target(self):
        result = run_cli("jobs", "enqueue-sync", "--json")
        assert result.exit_code == 1
        assert parse_json(result)["code"] == "validation"

    def test_enqueue_unknown_worker(self):
        result = run_cli("jobs", "enqueue", "no_such_worker", "--json")
        assert result.exit_code == 1
        assert parse_json(result)["code"] == "job"

    def test_workers(self):
        names = parse_json(run_cli("jobs", "workers", "--json"))["workers"]
        assert "sync_provider" in names
        assert "cleanup_orphaned_data" in names

    def test_run_once_drains_queue(self, fetch):
        assert run_cli("jobs", "enqueue", "cleanup_orphaned_data").exit_code == 0

        result = run_cli("jobs", "run", "--once", "--json")

        assert result.exit_code == 0, result.stdout
        assert parse_json(result)["executed"] == 1
        assert [j.state for j in fetch(select(SyncJob))] == ["completed"]


def test_cleanup_orphans(session_factory, fetch):
    with session_factory() as s:
        s.add(Favorite(user_id=1, content_type="series", content_id=777))
        s.commit()

    result = run_cli("cleanup", "orphans", "--json")

    assert result.exit_code == 0
    assert parse_json(result)["deleted"]["favorites"] == 1
    assert fetch(select(Favorite)) == []


def test_db_init_is_idempotent():
    result = run_cli("db", "init", "--json")
    assert result.exit_code == 0
    assert {"providers", "sync_jobs"} <= set(parse_json(result)["tables"])


def test_router_groups_have_documentation():
    from streamsync.cli.main import router

    assert router.list_registered_groups() == ["provider", "sync", "jobs", "cleanup", "db"]
    assert all(router.validate_documentation_links().values())
