"""Conformance test kit for FHIR Measure Repository Services."""
