"""
Core conversion logic lives here.

Responsibilities:
- header normalization into key names
- sparse record building, one record per data row
- content digest used as the record identifier
- ordered NDJSON output, one awaited append per record
- over-long row policy + reporting
"""

from __future__ import annotations

import asyncio
import hashlib
import io
import json
import re
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Union

from charset_normalizer import from_bytes
from loguru import logger

from .models import ConvertOptions, ConvertReport, OverflowPolicy, ReportItem, ReportSummary
from .rules import COLLECTION_SUFFIX, DELIMITER, IDENTIFIER_FIELD, OUTPUT_SUFFIX

PathLike = Union[str, Path]

_WHITESPACE_RUN = re.compile(r"\s+")


class ConversionError(Exception):
    """Base class for conversion failures."""


class RowTooLongError(ConversionError):
    """A data row carries a non-empty value beyond the last header column."""

    def __init__(self, value: int, expected: int, column: int, row: Optional[int] = None):
        self.value = value
        self.expected = expected
        self.column = column
        self.row = row
        super().__init__(value, expected, column, row)

    def __str__(self) -> str:
        where = f"line {self.row}" if self.row is not None else "row"
        return f"{where} has {self.value} fields, header defines {self.expected}"


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def normalize_key(label: str) -> str:
    """
    Normalize one header label into a key name.

    "Order Total (USD)" -> "order-total-usd"
    """
    key = _WHITESPACE_RUN.sub("-", label.strip())
    for char in '()"':
        key = key.replace(char, "")
    return key.lower()


def parse_header(line: str) -> List[str]:
    return [normalize_key(label) for label in line.split(DELIMITER)]


def build_record(
    line: str,
    key_names: List[str],
    overflow: OverflowPolicy = OverflowPolicy.strict,
) -> Dict[str, str]:
    """
    Build a sparse record from one data row.

    Every field loses its double quotes and surrounding whitespace; empty
    fields are left out. A non-empty field past the last key raises
    RowTooLongError unless ``overflow`` is ``ignore``, in which case it is
    dropped. Empty trailing fields never count as overflow.
    """
    fields = line.split(DELIMITER)
    record: Dict[str, str] = {}

    for index, element in enumerate(fields):
        cleaned = element.replace('"', "").strip()
        if cleaned == "":
            continue
        if index >= len(key_names):
            if overflow is OverflowPolicy.ignore:
                continue
            raise RowTooLongError(value=len(fields), expected=len(key_names), column=index + 1)
        record[key_names[index]] = cleaned

    return record


def checksum(values: Iterable[str]) -> str:
    """
    SHA-256 hex digest of the values rendered as one comma-joined string.

    The values are not individually delimited, so ["1,2"] and ["1", "2"]
    share a digest.
    """
    return _sha256_hex(DELIMITER.join(values).encode("utf-8"))


def serialize_record(record: Dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n"


def ndjson_path(source: PathLike) -> Path:
    return Path(f"{source}{OUTPUT_SUFFIX}")


def collection_path(source: PathLike) -> Path:
    return Path(f"{source}{COLLECTION_SUFFIX}")


# --- Line sources ---

async def read_lines(fh: io.TextIOBase) -> AsyncIterator[str]:
    """Yield lines from an open text file without their terminators."""
    while True:
        line = await asyncio.to_thread(fh.readline)
        if not line:
            break
        yield line[:-1] if line.endswith("\n") else line


async def iter_text_lines(text: str) -> AsyncIterator[str]:
    # newline=None: LF, CRLF and bare CR all end a line
    for line in io.StringIO(text, newline=None):
        yield line[:-1] if line.endswith("\n") else line


# --- Sinks ---

class NdjsonFileSink:
    """
    Append-only NDJSON file.

    The file is opened once per run in append mode, or truncated first when
    ``truncate`` is set. Every write is flushed before it returns, so a
    failure leaves a prefix of whole lines on disk.
    """

    def __init__(self, path: PathLike, truncate: bool = False):
        self.path = Path(path)
        self.truncate = truncate
        self._fh = None

    async def __aenter__(self) -> "NdjsonFileSink":
        mode = "w" if self.truncate else "a"
        self._fh = await asyncio.to_thread(open, self.path, mode, encoding="utf-8", newline="\n")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await asyncio.to_thread(self._fh.close)
        self._fh = None

    async def write(self, line: str) -> None:
        await asyncio.to_thread(self._write, line)

    def _write(self, line: str) -> None:
        self._fh.write(line)
        self._fh.flush()


class BufferSink:
    """In-memory NDJSON sink."""

    def __init__(self):
        self.lines: List[str] = []

    async def __aenter__(self) -> "BufferSink":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def write(self, line: str) -> None:
        self.lines.append(line)

    def getvalue(self) -> str:
        return "".join(self.lines)


# --- Pipeline ---

class ConversionRun:
    """
    State of a single conversion: key names, line counter, report items and,
    when ``collect`` is set, every record produced. Build one per input.
    """

    def __init__(self, options: Optional[ConvertOptions] = None):
        self.options = options or ConvertOptions()
        self.key_names: Optional[List[str]] = None
        self.line_number = 0
        self.written = 0
        self.records: List[Dict[str, str]] = []
        self.warnings: List[ReportItem] = []
        self.errors: List[ReportItem] = []

    async def run(self, lines: AsyncIterator[str], sink) -> ConvertReport:
        async for line in lines:
            self.line_number += 1

            if self.key_names is None:
                self.key_names = parse_header(line)
                logger.info(f"Key names: {','.join(self.key_names)}")
                continue

            record = self.process_line(line)
            if record is None:
                continue

            await sink.write(serialize_record(record))
            self.written += 1

            if self.options.collect:
                self.records.append(record)

        return self.report()

    def process_line(self, line: str) -> Optional[Dict[str, str]]:
        """Build one record with its identifier, or None if the row is rejected."""
        try:
            record = build_record(line, self.key_names)
        except RowTooLongError as exc:
            exc.row = self.line_number
            policy = self.options.overflow

            if policy is OverflowPolicy.strict:
                raise

            item = ReportItem(
                row=exc.row,
                column=str(exc.column),
                issue="row_too_long",
                value=str(exc.value),
                action="skipped" if policy is OverflowPolicy.skip else "dropped_extra_fields",
            )
            if policy is OverflowPolicy.skip:
                logger.warning(f"Skipping {exc}")
                self.errors.append(item)
                return None

            logger.warning(f"Dropping extra fields: {exc}")
            self.warnings.append(item)
            record = build_record(line, self.key_names, OverflowPolicy.ignore)

        record[IDENTIFIER_FIELD] = checksum(record.values())
        return record

    def report(self) -> ConvertReport:
        key_names = self.key_names or []
        return ConvertReport(
            summary=ReportSummary(
                rows=max(self.line_number - 1, 0),
                columns=len(key_names),
                records=self.written,
                warnings=len(self.warnings),
                errors=len(self.errors),
            ),
            key_names=key_names,
            warnings=self.warnings,
            errors=self.errors,
        )


async def write_collection(path: PathLike, records: List[Dict[str, str]]) -> None:
    """Write every record of a run to one JSON array file (overwrites)."""
    text = json.dumps(records, ensure_ascii=False, indent=2)
    await asyncio.to_thread(Path(path).write_text, text, encoding="utf-8")
    logger.info(f"Wrote {len(records)} records to {path}")


async def convert_file(source: PathLike, options: Optional[ConvertOptions] = None) -> ConvertReport:
    """
    Convert ``source`` into ``<source>.ndjson``.

    Undecodable bytes become U+FFFD. The input is opened before the
    destination, so an unreadable input leaves no output behind. OS errors
    propagate unchanged.
    """
    options = options or ConvertOptions()
    destination = ndjson_path(source)

    fh = await asyncio.to_thread(open, source, "r", encoding=options.encoding, errors="replace")
    try:
        run = ConversionRun(options)
        async with NdjsonFileSink(destination, truncate=options.truncate) as sink:
            report = await run.run(read_lines(fh), sink)
    finally:
        fh.close()

    report.destination = str(destination)

    if options.collect:
        await write_collection(collection_path(source), run.records)

    return report


def decode_upload(raw: bytes) -> tuple[str, str]:
    """
    Decode uploaded bytes to text.

    Rules:
    - Detect encoding best-effort via charset-normalizer.
    - UTF-8 input with a BOM is decoded as utf-8-sig.
    - If decode fails, fall back to UTF-8 with replacement characters.
    """
    match = from_bytes(raw).best()
    decode_used = match.encoding if match is not None else "utf-8"

    if raw.startswith(b"\xef\xbb\xbf") and (decode_used.lower().replace("-", "_") in ("utf_8", "utf8")):
        decode_used = "utf-8-sig"

    try:
        text = raw.decode(decode_used)
    except (UnicodeDecodeError, LookupError):
        decode_used = "utf-8"
        text = raw.decode(decode_used, errors="replace")

    return text, decode_used


async def convert_bytes(raw: bytes, options: Optional[ConvertOptions] = None) -> Dict[str, Any]:
    """
    Convert an uploaded CSV held in memory.
    Returns a dict matching the API's response envelope.
    """
    options = options or ConvertOptions()
    text, decode_used = decode_upload(raw)
    logger.debug(f"Decoded upload as {decode_used}")

    run = ConversionRun(options)
    sink = BufferSink()
    report = await run.run(iter_text_lines(text), sink)
    content = sink.getvalue()

    return {
        "ndjson": {
            "sha256": _sha256_hex(content.encode("utf-8")),
            "encoding": "utf-8",
            "records": report.summary.records,
            "content": content,
        },
        "report": report.model_dump(),
        "collection": run.records if options.collect else None,
    }
