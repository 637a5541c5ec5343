import asyncio
import json

import pytest
from typer.testing import CliRunner

from webdaw.cli import ExitCode, app
from webdaw.config import get_settings
from webdaw.storage import AUTOSAVE_KEY, Partition, SqlStore, dumps, encode, export_project

runner = CliRunner()


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path}/cli.db"
    monkeypatch.setenv("WEBDAW_DATABASE_URL", url)
    monkeypatch.setenv("WEBDAW_LOG_LEVEL", "WARNING")
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def _seed(url, partition, key, payload):
    async def _write():
        async with SqlStore(url) as store:
            await store.write(partition, key, payload)

    asyncio.run(_write())


def test_list_empty_store(database_url):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert result.output == ""


def test_import_show_export_delete(database_url, project, tmp_path):
    source = export_project(project, tmp_path / "demo")

    result = runner.invoke(app, ["import", str(source)])
    assert result.exit_code == 0, result.output
    assert "as Demo Song" in result.output

    result = runner.invoke(app, ["list"])
    assert result.output.splitlines() == ["Demo Song"]

    result = runner.invoke(app, ["show", "Demo Song"])
    assert result.exit_code == 0
    assert "Patterns:      2" in result.output
    assert "Channels:      2" in result.output
    assert "Clips:         2" in result.output

    result = runner.invoke(app, ["export", "Demo Song", str(tmp_path / "out")])
    assert result.exit_code == 0
    assert (tmp_path / "out.webdaw").exists()

    result = runner.invoke(app, ["delete", "Demo Song"])
    assert result.exit_code == 0
    assert runner.invoke(app, ["list"]).output == ""


def test_import_under_another_name(database_url, project, tmp_path):
    source = export_project(project, tmp_path / "demo")
    result = runner.invoke(app, ["import", str(source), "--name", "Copy"])

    assert result.exit_code == 0
    assert runner.invoke(app, ["list"]).output.splitlines() == ["Copy"]


def test_import_rejects_broken_file(database_url, tmp_path):
    broken = tmp_path / "broken.webdaw"
    broken.write_text("{}", encoding="utf-8")

    result = runner.invoke(app, ["import", str(broken)])
    assert result.exit_code == ExitCode.USER_ERROR
    assert "import failed" in result.output


def test_check_reports_problems(database_url, project):
    _seed(database_url, Partition.PROJECTS, "Good", dumps(encode(project)))
    bad = encode(project).to_dict()
    bad["arrangement"]["tracks"] = []
    _seed(database_url, Partition.PROJECTS, "Bad", json.dumps(bad).encode("utf-8"))

    result = runner.invoke(app, ["check", "Good"])
    assert result.exit_code == 0
    assert "Good: OK" in result.output

    result = runner.invoke(app, ["check", "Bad"])
    assert result.exit_code == ExitCode.USER_ERROR
    assert "unknown track" in result.output
    assert "Bad: 2 problem(s)" in result.output


def test_show_autosave_slot(database_url, project):
    _seed(database_url, Partition.AUTOSAVE, AUTOSAVE_KEY, dumps(encode(project)))

    result = runner.invoke(app, ["show", "autosave"])
    assert result.exit_code == 0
    assert "Name:          Demo Song" in result.output


def test_missing_project(database_url):
    result = runner.invoke(app, ["show", "Nope"])
    assert result.exit_code == ExitCode.USER_ERROR
    assert "No record 'Nope'" in result.output
