"""FHIR Bundle resource."""

from typing import Any, NotRequired, TypedDict


class BundleEntry(TypedDict):
    fullUrl: NotRequired[str]
    resource: dict[str, Any]


class Bundle(TypedDict):
    resourceType: str
    id: NotRequired[str]
    type: NotRequired[str]
    total: NotRequired[int]
    entry: NotRequired[list[BundleEntry]]
