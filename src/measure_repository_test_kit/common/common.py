"""
Shared lightweight types and constants used across the test kit.
"""

from enum import StrEnum
from typing import Any, TypeAlias

# Raw response and request bodies, kept as text so JSON validity can be
# asserted separately from parsing.
json_str: TypeAlias = str

# Parsed FHIR resources are handled as plain JSON dictionaries.
FhirResource: TypeAlias = dict[str, Any]

FHIR_JSON = "application/fhir+json"

# Id used by negative tests; no conformant server should have a resource with it.
INVALID_ID = "INVALID_ID"


class MatchKind(StrEnum):
    """How a root resource is identified within a returned Bundle."""

    ID = "id"
    URL = "url"
    IDENTIFIER = "identifier"
