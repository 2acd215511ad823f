"""FHIR RelatedArtifact type."""

from typing import NotRequired, TypedDict


class RelatedArtifact(TypedDict):
    # depends-on | composed-of | derived-from | ...
    type: str
    resource: NotRequired[str]
    display: NotRequired[str]
