# Avro schema for metadata table dumps

METADATA_ENTRY_SCHEMA = {
    "type": "record",
    "name": "metadata_entry",
    "fields": [
        # "<tableId>;<endRow>" or "<tableId><"
        {"name": "row", "type": "string"},
        {"name": "family", "type": "string"},
        {"name": "qualifier", "type": "string"},
        {"name": "value", "type": ["null", "string"], "default": None},
    ]
}
