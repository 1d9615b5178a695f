import json

import pytest
from click.testing import CliRunner
from loguru import logger

from csv2ndjson.cli import main
from csv2ndjson.convert import collection_path, ndjson_path


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger.remove()


@pytest.fixture
def runner():
    return CliRunner()


def test_missing_path_does_no_io(runner, tmp_path):
    with runner.isolated_filesystem(temp_dir=tmp_path) as cwd:
        result = runner.invoke(main, [])
        assert result.exit_code == 2
        assert list(tmp_path.joinpath(cwd).iterdir()) == []


def test_unreadable_path_creates_no_output(runner, tmp_path):
    source = tmp_path / "nope.csv"
    result = runner.invoke(main, [str(source)])
    assert result.exit_code == 1
    assert not ndjson_path(source).exists()


def test_converts_file(runner, write_csv):
    source = write_csv("Name,Amount\nAlice,10\nBob,\n")
    result = runner.invoke(main, [str(source)])
    assert result.exit_code == 0

    lines = ndjson_path(source).read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["name"] for line in lines] == ["Alice", "Bob"]


def test_append_then_truncate(runner, write_csv):
    source = write_csv("a\n1\n2\n")
    runner.invoke(main, [str(source)])
    runner.invoke(main, [str(source)])
    assert len(ndjson_path(source).read_text(encoding="utf-8").splitlines()) == 4

    result = runner.invoke(main, [str(source), "--truncate"])
    assert result.exit_code == 0
    assert len(ndjson_path(source).read_text(encoding="utf-8").splitlines()) == 2


def test_strict_overflow_exits_nonzero(runner, write_csv):
    source = write_csv("a\n1\n2,3\n")
    result = runner.invoke(main, [str(source), "--overflow", "strict"])
    assert result.exit_code == 1
    assert len(ndjson_path(source).read_text(encoding="utf-8").splitlines()) == 1


def test_collect_flag(runner, write_csv):
    source = write_csv("a\n1\n")
    result = runner.invoke(main, [str(source), "--collect"])
    assert result.exit_code == 0
    assert json.loads(collection_path(source).read_text(encoding="utf-8"))[0]["a"] == "1"


def test_write_failure_exits_nonzero(runner, write_csv, disk_full_on_second_write):
    source = write_csv("a\n1\n2\n3\n")
    result = runner.invoke(main, [str(source)])
    assert result.exit_code == 1
    assert len(ndjson_path(source).read_text(encoding="utf-8").splitlines()) == 1
