"""FHIR data types and resources used by the Measure Repository test kit."""

from fhir.bundle import Bundle, BundleEntry
from fhir.coding import CodeableConcept, Coding
from fhir.identifier import Identifier
from fhir.library import CodeFilter, DataRequirement, Library
from fhir.measure import Measure
from fhir.operation_outcome import OperationOutcome, OperationOutcomeIssue
from fhir.parameters import Parameter, Parameters
from fhir.related_artifact import RelatedArtifact

__all__ = [
    "Bundle",
    "BundleEntry",
    "CodeFilter",
    "CodeableConcept",
    "Coding",
    "DataRequirement",
    "Identifier",
    "Library",
    "Measure",
    "OperationOutcome",
    "OperationOutcomeIssue",
    "Parameter",
    "Parameters",
    "RelatedArtifact",
]
