"""
JSON mapping for entityjson: wire records, importer and exporter.
"""

from entityjson.mapping.records import EntityRecord, parse_document
from entityjson.mapping.importer import ImportResult, JSONImporter
from entityjson.mapping.exporter import JSONExporter

__all__ = [
    "EntityRecord",
    "parse_document",
    "ImportResult",
    "JSONImporter",
    "JSONExporter",
]
