import json

import pytest

from places_sync.core.store import SyncRunInProgress
from places_sync.jobs import cli
from places_sync.models import MatchSummary


@pytest.fixture
def wired(monkeypatch, store):
    calls = {}

    def fake_match(limit=None, *, store):
        calls["match"] = limit
        return MatchSummary(matched=1)

    def fake_import(cities=None, *, store):
        calls["cities"] = cities
        raise SyncRunInProgress("Another places-sync run is in progress")

    monkeypatch.setattr(cli, "get_store", lambda: store)
    monkeypatch.setattr(cli, "match_and_enrich_places", fake_match)
    monkeypatch.setattr(cli, "import_from_google", fake_import)
    return calls


def test_build_parser_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_collects_repeated_cities():
    args = cli.build_parser().parse_args(["import-yelp", "--city", "Surrey", "--city", "Delta"])
    assert args.command == "import-yelp"
    assert args.cities == ["Surrey", "Delta"]


def test_match_prints_summary(wired, capsys):
    assert cli.main(["match", "--limit", "10"]) == 0

    assert wired["match"] == 10
    assert json.loads(capsys.readouterr().out)["matched"] == 1


def test_match_rejects_non_positive_limit(wired):
    with pytest.raises(SystemExit):
        cli.main(["match", "--limit", "0"])


def test_run_in_progress_exit_code(wired):
    assert cli.main(["import-google", "--city", "Surrey"]) == cli.EXIT_RUN_IN_PROGRESS
    assert wired["cities"] == ["Surrey"]


def test_stats_uses_store(monkeypatch, store, make_place, capsys):
    monkeypatch.setattr(cli, "get_store", lambda: store)
    store.upsert(make_place("Taj Restaurant"))

    assert cli.main(["stats"]) == 0

    assert json.loads(capsys.readouterr().out)["total"] == 1
