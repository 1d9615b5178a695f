import pytest


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def write_csv(tmp_path):
    """Write ``text`` to a CSV file under tmp_path and return its path."""
    def _write(text: str, name: str = "input.csv", newline: str = ""):
        path = tmp_path / name
        with open(path, "w", encoding="utf-8", newline=newline) as fh:
            fh.write(text)
        return path

    return _write


@pytest.fixture
def disk_full_on_second_write(monkeypatch):
    """Make the NDJSON file sink raise OSError on its second record."""
    from csv2ndjson.convert import NdjsonFileSink

    original = NdjsonFileSink._write
    calls = []

    def _write(self, line):
        calls.append(line)
        if len(calls) == 2:
            raise OSError(28, "No space left on device")
        original(self, line)

    monkeypatch.setattr(NdjsonFileSink, "_write", _write)
    return calls
