"""Feed payload decoders.

Every parser turns the decoded response body into a list of loosely typed
records (``dict[str, Any]``) in source order. JSON and XML are all-or-nothing:
a malformed document raises ``FeedParseError``. CSV and text are best-effort:
a line that cannot be read is dropped and parsing carries on.
"""

import csv
import json
import xml.etree.ElementTree as ET
from typing import Any

from ..utils.logging import get_logger
from .errors import FeedParseError

logger = get_logger("intel.parsers")

Record = dict[str, Any]


def parse_json(raw: str) -> list[Record]:
    """A single object is a one-record feed; an array yields one record per object."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FeedParseError(f"Invalid JSON payload: {exc}") from exc

    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        records = [item for item in data if isinstance(item, dict)]
        skipped = len(data) - len(records)
        if skipped:
            logger.debug("json_non_object_items_skipped", count=skipped)
        return records
    raise FeedParseError("JSON payload must be an object or an array of objects")


def _read_csv_line(line: str) -> list[str] | None:
    try:
        return [value.strip() for value in next(csv.reader([line]))]
    except (csv.Error, StopIteration):
        return None


def parse_csv(raw: str) -> list[Record]:
    """First non-empty line is the header row; later rows are zipped against it."""
    lines = [line for line in raw.splitlines() if line.strip()]
    if not lines:
        return []

    headers = _read_csv_line(lines[0].lstrip("\ufeff"))
    if not headers:
        logger.warning("csv_header_unreadable")
        return []

    records: list[Record] = []
    for line_no, line in enumerate(lines[1:], start=2):
        values = _read_csv_line(line)
        if values is None:
            logger.debug("csv_line_skipped", line=line_no)
            continue
        # Ragged rows: missing trailing fields become "", extras are dropped.
        records.append(
            {header: values[i] if i < len(values) else "" for i, header in enumerate(headers)}
        )
    return records


def parse_text(raw: str) -> list[Record]:
    """One indicator per line; blank lines and ``#`` comments are ignored."""
    records: list[Record] = []
    for line in raw.splitlines():
        value = line.strip()
        if not value or value.startswith("#"):
            continue
        records.append({"indicator": value})
    return records


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_xml(raw: str) -> list[Record]:
    """Each child of the document root is a record.

    A record's fields are the element's attributes plus the text of each
    direct child element. A leaf element with only text becomes
    ``{tag: text}``.
    """
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as exc:
        raise FeedParseError(f"Invalid XML payload: {exc}") from exc

    records: list[Record] = []
    for element in root:
        record: Record = {_local_name(k): v for k, v in element.attrib.items()}
        children = list(element)
        if children:
            for child in children:
                record[_local_name(child.tag)] = (child.text or "").strip()
        elif element.text and element.text.strip():
            record[_local_name(element.tag)] = element.text.strip()
        if record:
            records.append(record)
    return records


_PARSERS = {
    "json": parse_json,
    "csv": parse_csv,
    "txt": parse_text,
    "xml": parse_xml,
}


def parse_feed(raw: str, feed_type: str) -> list[Record]:
    """Decode ``raw`` with the parser selected by the feed's declared type."""
    parser = _PARSERS.get(feed_type)
    if parser is None:
        raise FeedParseError(f"Unsupported feed type: {feed_type}")
    return parser(raw)
