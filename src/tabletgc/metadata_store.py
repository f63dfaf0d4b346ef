"""
Read side of the metadata the collector checks candidates against.

The tablet servers' metadata is exported to the volume as

    metadata/references.avro   one record per file or directory reference
    metadata/tables.json       {"table_ids": [...]} for every existing table
"""

from io import BytesIO
from typing import Any, Iterable, Iterator, Set

import fastavro

from .avro_schemas import METADATA_ENTRY_SCHEMA
from .logging_config import get_logger
from .metadata import MetadataEntry
from .storage_backend import StorageBackend

logger = get_logger(__name__)


class MetadataStore:
    """Reference and table-id snapshots stored in a backend"""

    def __init__(self, storage: StorageBackend, metadata_path: str = "metadata"):
        self.storage = storage
        self.metadata_path = metadata_path.strip("/")
        self.references_path = f"{self.metadata_path}/references.avro"
        self.tables_path = f"{self.metadata_path}/tables.json"

    def iter_references(self) -> Iterator[MetadataEntry]:
        """Stream the reference dump, one entry at a time.

        A volume without a dump has no references.
        """
        if not self.storage.exists(self.references_path):
            logger.info(f"No reference dump at {self.references_path}")
            return

        with self.storage.open_file(self.references_path) as stream:
            reader: Any = fastavro.reader(stream)
            for record in reader:
                yield MetadataEntry.from_record(record)

    def write_references(self, entries: Iterable[MetadataEntry]) -> int:
        """Replace the reference dump. Returns the number of entries written."""
        records = [entry.to_record() for entry in entries]

        bytes_io = BytesIO()
        fastavro.writer(bytes_io, METADATA_ENTRY_SCHEMA, records)
        self.storage.write_file(self.references_path, bytes_io.getvalue())

        logger.info(f"Wrote {len(records)} references to {self.references_path}")
        return len(records)

    def table_ids(self) -> Set[str]:
        if not self.storage.exists(self.tables_path):
            return set()
        data = self.storage.read_json(self.tables_path)
        return {str(table_id) for table_id in data.get("table_ids", [])}

    def write_table_ids(self, table_ids: Iterable[str]) -> None:
        self.storage.write_json(self.tables_path, {"table_ids": sorted(table_ids)})
