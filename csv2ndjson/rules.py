"""
Deterministic conversion rules.

This file exists to make the input/output contract explicit and enforceable.
"""

DELIMITER = ","
SOURCE_ENCODING = "utf-8-sig"  # UTF-8, leading BOM dropped
OUTPUT_SUFFIX = ".ndjson"
COLLECTION_SUFFIX = ".json"
IDENTIFIER_FIELD = "uuid"
