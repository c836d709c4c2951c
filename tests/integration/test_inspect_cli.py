"""
Integration tests for the lakeshare-inspect CLI against a local Delta table.
"""

import json

import pytest

from lakeshare.share_server.tools.inspect_cli import build_parser, main

from ..helpers import LocalTable, add_action, commit_info, metadata_action, remove_action


@pytest.fixture
def local_table(tmp_path):
    table = LocalTable(tmp_path / "orders")
    table.put_rows("part-0.json", [{"id": 1}, {"id": 2}])
    table.put_rows("part-1.json", [{"id": 3}])
    table.commit(
        0,
        metadata_action(),
        add_action("part-0.json", size=10, stats='{"numRecords": 2}'),
        commit_info(1000),
    )
    table.commit(1, add_action("part-1.json", size=5), commit_info(2000))
    table.commit(2, remove_action("part-0.json"), commit_info(3000))
    return table


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SIGNED_URL_TTL_SECONDS", raising=False)


def run(capsys, *argv):
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


def error_message(err):
    # Log records may precede the error document on stderr
    return json.loads(err.strip().splitlines()[-1])["error"]


class TestCommands:
    """Tests for each subcommand."""

    def test_version(self, capsys, local_table):
        code, out, _ = run(capsys, "version", local_table.location)

        assert code == 0
        assert json.loads(out) == {"version": 2}

    def test_version_as_of(self, capsys, local_table):
        code, out, _ = run(capsys, "version", local_table.location, "--version", "1")

        assert code == 0
        assert json.loads(out) == {"version": 1}

    def test_metadata(self, capsys, local_table):
        code, out, _ = run(capsys, "metadata", local_table.location)

        body = json.loads(out)
        assert code == 0
        assert body["id"] == "tbl-1"
        assert [c["name"] for c in body["columns"]] == ["id", "name"]

    def test_files(self, capsys, local_table):
        code, out, _ = run(
            capsys, "files", local_table.location, "--timestamp", "1970-01-01T00:00:02Z"
        )

        body = json.loads(out)
        assert code == 0
        assert body["version"] == 1
        assert [f["path"] for f in body["files"]] == ["part-0.json", "part-1.json"]
        assert body["stats"] == {"numRecords": 2, "numFiles": 2, "totalSize": 15}

    def test_changes(self, capsys, local_table):
        code, out, _ = run(
            capsys,
            "changes",
            local_table.location,
            "--starting-version",
            "1",
            "--ending-version",
            "2",
        )

        body = json.loads(out)
        assert code == 0
        assert (body["startVersion"], body["endVersion"]) == (1, 2)
        assert [(c["path"], c["changeType"]) for c in body["changes"]] == [
            ("part-1.json", "add"),
            ("part-0.json", "remove"),
        ]

    def test_query(self, capsys, local_table):
        code, out, _ = run(
            capsys, "query", local_table.location, "--version", "1", "--limit", "2", "--offset", "1"
        )

        body = json.loads(out)
        assert code == 0
        assert body["rows"] == [{"id": 2}, {"id": 3}]
        assert body["totalRows"] == 3
        assert body["hasMore"] is False

    def test_validate(self, capsys, local_table):
        code, out, _ = run(capsys, "validate", local_table.location)

        assert code == 0
        assert json.loads(out)["valid"] is True


class TestFailures:
    """Tests for error exit codes."""

    def test_missing_table(self, capsys, tmp_path):
        code, _, err = run(capsys, "version", str(tmp_path / "nothing"))

        assert code == 1
        assert "No Delta log files" in error_message(err)

    def test_validate_invalid(self, capsys, tmp_path):
        code, out, _ = run(capsys, "validate", str(tmp_path / "nothing"))

        assert code == 1
        assert json.loads(out)["valid"] is False

    def test_bad_timestamp(self, capsys, local_table):
        code, _, err = run(capsys, "version", local_table.location, "--timestamp", "nope")

        assert code == 1
        assert "timestamp" in error_message(err)

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
