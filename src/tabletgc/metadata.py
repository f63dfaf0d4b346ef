"""
Metadata table entries consumed by the collector.

Each tablet of a table owns one metadata row. Its files appear in the
``file`` (and, while a scan holds them, ``scan``) column families with the
file path as qualifier; its directory is the value of ``srv:dir``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .errors import MalformedPathError

# Row layout: "<tableId>;<endRow>", or "<tableId><" for the last tablet
END_ROW_SEPARATOR = ";"
DEFAULT_TABLET_MARKER = "<"

# Qualifier suffix separating a file path from a disambiguator
DISAMBIGUATOR_SEPARATOR = "|"


class ColumnFamily(Enum):
    """Column families holding references to files and directories"""

    DATA_FILE = "file"
    SCAN_FILE = "scan"
    SERVER = "srv"


DIRECTORY_QUALIFIER = "dir"

FILE_FAMILIES = frozenset({ColumnFamily.DATA_FILE.value, ColumnFamily.SCAN_FILE.value})


@dataclass(frozen=True)
class MetadataEntry:
    """One cell of the metadata table"""

    row: str
    family: str
    qualifier: str
    value: str = ""

    @property
    def table_id(self) -> str:
        return table_of_row(self.row)

    @property
    def is_file_reference(self) -> bool:
        return self.family in FILE_FAMILIES

    @property
    def is_directory_reference(self) -> bool:
        return self.family == ColumnFamily.SERVER.value and self.qualifier == DIRECTORY_QUALIFIER

    @property
    def file_path(self) -> str:
        """File qualifier with any ``|`` disambiguator removed."""
        return self.qualifier.split(DISAMBIGUATOR_SEPARATOR, 1)[0]

    def to_record(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "family": self.family,
            "qualifier": self.qualifier,
            "value": self.value,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "MetadataEntry":
        return cls(
            row=record["row"],
            family=record["family"],
            qualifier=record["qualifier"],
            value=record.get("value") or "",
        )


def metadata_row(table_id: str, end_row: Optional[str] = None) -> str:
    """Encode the metadata row of the tablet ending at ``end_row``."""
    if end_row is None:
        return f"{table_id}{DEFAULT_TABLET_MARKER}"
    return f"{table_id}{END_ROW_SEPARATOR}{end_row}"


def table_of_row(row: str) -> str:
    """Extract the table id from a metadata row.

    Raises:
        MalformedPathError: If the row has neither separator
    """
    for index, char in enumerate(row):
        if char in (END_ROW_SEPARATOR, DEFAULT_TABLET_MARKER):
            if index == 0:
                break
            return row[:index]
    raise MalformedPathError(row, "metadata row has no table id")


def file_reference(
    table_id: str,
    end_row: Optional[str],
    path: str,
    size: int = 0,
    entries: int = 0,
    family: ColumnFamily = ColumnFamily.DATA_FILE,
) -> MetadataEntry:
    """Build the entry recording that a tablet uses ``path``."""
    return MetadataEntry(
        row=metadata_row(table_id, end_row),
        family=family.value,
        qualifier=path,
        value=f"{size},{entries}",
    )


def directory_reference(table_id: str, end_row: Optional[str], directory: str) -> MetadataEntry:
    """Build the entry recording a tablet's directory."""
    return MetadataEntry(
        row=metadata_row(table_id, end_row),
        family=ColumnFamily.SERVER.value,
        qualifier=DIRECTORY_QUALIFIER,
        value=directory,
    )
