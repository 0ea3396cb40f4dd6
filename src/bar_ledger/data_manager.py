"""Local persistence and configuration for the bar ledger.

This module owns everything that touches the local disk:

1. Configuration handling: finding and parsing ``config.ini``.
2. Cache workbook lifecycle: creating, opening, and saving the
   ``offline_cache.xlsx`` file through ``openpyxl``.
3. The offline cache surface: a synchronous key/value API used by the sync
   layer and the persistence mirror, with a workbook-backed and an in-memory
   implementation.
"""


from __future__ import annotations

import configparser
import json
import zipfile
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook

from . import log
from .records import TargetConfiguration, parse_decimal


CONFIG_FILE_NAME = "config.ini"
CACHE_SHEET = "Cache"
CACHE_COLUMNS = ("Key", "UpdatedAt", "Value")
VALUE_COLUMN = 3
# Excel caps a cell at 32,767 characters; longer values spill into the
# following columns of the same row.
CELL_CHUNK_SIZE = 32_000
DEFAULT_REMOTE_TABLE = "sales"
DEFAULT_REMOTE_TIMEOUT = 10.0


@dataclass(frozen=True)
class RemoteSettings:
    """Connection details for the remote ledger's REST surface."""

    url: str
    api_key: str
    table: str = DEFAULT_REMOTE_TABLE
    timeout: float = DEFAULT_REMOTE_TIMEOUT


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    cache_file: Optional[Path]
    store_name: str
    remote: Optional[RemoteSettings] = None
    targets: TargetConfiguration = TargetConfiguration()
    default_updated_by: Optional[str] = None


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls the session.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the current
            directory or any of its parents.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def _parse_remote(parser: configparser.ConfigParser) -> Optional[RemoteSettings]:
    if not parser.has_section("Remote"):
        return None
    try:
        url = parser.get("Remote", "Url")
        api_key = parser.get("Remote", "ApiKey")
    except configparser.NoOptionError as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc
    try:
        timeout = parser.getfloat("Remote", "Timeout", fallback=DEFAULT_REMOTE_TIMEOUT)
    except ValueError as exc:
        raise KeyError(f"Invalid Remote.Timeout value: {exc}") from exc
    return RemoteSettings(
        url=url.rstrip("/"),
        api_key=api_key,
        table=parser.get("Remote", "Table", fallback=DEFAULT_REMOTE_TABLE),
        timeout=timeout,
    )


def _parse_targets(parser: configparser.ConfigParser) -> TargetConfiguration:
    values: Dict[str, Decimal] = {}
    for option in ("Daily", "Weekly", "Monthly"):
        raw = parser.get("Targets", option, fallback=None)
        parsed = parse_decimal(raw)
        values[option.lower()] = parsed if parsed is not None and parsed > 0 else Decimal("0")
    return TargetConfiguration(**values)


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System] StoreName`` is mandatory. ``[System] CacheFile`` is optional; a
    relative path is anchored to ``base_path`` (or the current working
    directory) and resolved. ``[Remote]``, ``[Targets]`` and ``[Defaults]``
    are all optional sections.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor a relative
            ``CacheFile``. Defaults to :func:`Path.cwd` when omitted.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing, or a numeric
            option cannot be parsed.
    """

    try:
        store_name = parser.get("System", "StoreName")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    cache_file: Optional[Path] = None
    cache_raw = parser.get("System", "CacheFile", fallback="").strip()
    if cache_raw:
        cache_file = Path(cache_raw).expanduser()
        if not cache_file.is_absolute():
            if base_path is None:
                base_path = Path.cwd()
            cache_file = (base_path / cache_file).resolve()

    updated_by = parser.get("Defaults", "UpdatedBy", fallback="").strip() or None

    return ConfigSettings(
        cache_file=cache_file,
        store_name=store_name,
        remote=_parse_remote(parser),
        targets=_parse_targets(parser),
        default_updated_by=updated_by,
    )


def create_cache_workbook(destination: Path, *, overwrite: bool = False) -> Path:
    """Create an empty offline cache workbook at ``destination``.

    Args:
        destination (Path): Target file path; parent folders are created.
        overwrite (bool): Replace an existing file instead of refusing.

    Returns:
        Path: The resolved path of the created workbook.

    Raises:
        FileExistsError: If the file exists and ``overwrite`` is ``False``.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing cache workbook: {destination}"
        )

    workbook = openpyxl.Workbook()
    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    sheet = workbook.create_sheet(title=CACHE_SHEET)
    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(CACHE_COLUMNS, start=1):
        cell = sheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font

    save_workbook(workbook, destination)
    return destination


def open_workbook(data_file: Path) -> Workbook:
    """Open a workbook from disk.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title of the column holding the lookup key.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_col_index - 1] == key_value:
            return row_idx

    return None


class OfflineCache(Protocol):
    """Synchronous key/value store that survives process restarts."""

    def read(self, key: str) -> Any:
        """Return the stored JSON-compatible value, or ``None`` if absent."""

    def write(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""


class MemoryCache:
    """Dict-backed :class:`OfflineCache` for tests and cache-less setups."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.write(key, value)

    def read(self, key: str) -> Any:
        raw = self._values.get(str(key))
        return json.loads(raw) if raw is not None else None

    def write(self, key: str, value: Any) -> None:
        # Round-trip through JSON so callers never share mutable state.
        self._values[str(key)] = json.dumps(value, ensure_ascii=False)


def _split_chunks(text: str, size: int = CELL_CHUNK_SIZE) -> list[str]:
    return [text[start:start + size] for start in range(0, len(text), size)] or [""]


class WorkbookCache:
    """:class:`OfflineCache` stored on the ``Cache`` sheet of an xlsx file.

    Each key occupies one row holding the UTC time of the last write and the
    JSON-encoded value, split over as many cells as the value needs. The
    workbook is loaded lazily and saved after every write; a missing file
    behaves like an empty cache and is created on the first write.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser().resolve()
        self._workbook: Optional[Workbook] = None

    def _load(self, *, create: bool) -> Optional[Workbook]:
        if self._workbook is not None:
            return self._workbook
        if not self.path.exists():
            if not create:
                return None
            create_cache_workbook(self.path)
            log.info("Created offline cache workbook '%s'", self.path)
        try:
            workbook = open_workbook(self.path)
        except (zipfile.BadZipFile, InvalidFileException) as exc:
            raise OSError(f"Cache workbook is not a readable xlsx file: {self.path}") from exc
        if CACHE_SHEET not in workbook.sheetnames:
            sheet = workbook.create_sheet(title=CACHE_SHEET)
            sheet.append(list(CACHE_COLUMNS))
        self._workbook = workbook
        return workbook

    def read(self, key: str) -> Any:
        workbook = self._load(create=False)
        if workbook is None:
            return None
        row_index = locate_row(workbook, CACHE_SHEET, "Key", str(key))
        if row_index is None:
            return None
        sheet = workbook[CACHE_SHEET]
        chunks = []
        for (cell_value,) in sheet.iter_cols(
            min_row=row_index, max_row=row_index, min_col=VALUE_COLUMN, values_only=True
        ):
            if cell_value is None:
                break
            chunks.append(str(cell_value))
        if not chunks:
            return None
        try:
            return json.loads("".join(chunks))
        except ValueError:
            log.warning("Discarding unreadable cache entry '%s' in '%s'", key, self.path)
            return None

    def write(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, ensure_ascii=False)
        workbook = self._load(create=True)
        sheet = workbook[CACHE_SHEET]
        stamp = datetime.now(UTC).isoformat()
        row_index = locate_row(workbook, CACHE_SHEET, "Key", str(key))
        if row_index is None:
            row_index = sheet.max_row + 1
            sheet.cell(row=row_index, column=1, value=str(key))
        chunks = _split_chunks(encoded)
        sheet.cell(row=row_index, column=2, value=stamp)
        for offset, chunk in enumerate(chunks):
            sheet.cell(row=row_index, column=VALUE_COLUMN + offset, value=chunk)
        # clear spill-over left behind by a previously longer value
        for column in range(VALUE_COLUMN + len(chunks), sheet.max_column + 1):
            sheet.cell(row=row_index, column=column, value=None)
        save_workbook(workbook, self.path)
        log.debug("Wrote cache entry '%s' (%d chars, %d cells)", key, len(encoded), len(chunks))


__all__ = [
    "CONFIG_FILE_NAME",
    "CACHE_SHEET",
    "CACHE_COLUMNS",
    "RemoteSettings",
    "ConfigSettings",
    "find_config_file",
    "read_config",
    "parse_settings",
    "create_cache_workbook",
    "open_workbook",
    "save_workbook",
    "locate_row",
    "OfflineCache",
    "MemoryCache",
    "WorkbookCache",
]
