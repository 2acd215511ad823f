"""
The Measure Repository Service test suite.

Groups run in the order listed; the ``$package`` groups store their first
response so the related-artifact tests can inspect it without re-requesting.
"""

from measure_repository_test_kit.groups.capability_statement import (
    build_capability_statement_group,
)
from measure_repository_test_kit.groups.data_requirements import (
    build_data_requirements_group,
)
from measure_repository_test_kit.groups.package import (
    LIBRARY,
    MEASURE,
    build_package_group,
)
from measure_repository_test_kit.groups.read import build_read_group
from measure_repository_test_kit.runner import Input, TestSuite

SUITE_ID = "measure_repository_service_test_suite"


def build_suite() -> TestSuite:
    """Build a fresh suite; nothing is shared between suites built this way."""
    return TestSuite(
        id=SUITE_ID,
        title="Measure Repository Service Test Suite",
        description="A set of tests for Measure Repository Service's operations "
        "and resources",
        groups=(
            build_capability_statement_group(),
            build_read_group("Measure"),
            build_read_group("Library"),
            build_package_group(MEASURE),
            build_package_group(LIBRARY),
            build_package_group(MEASURE, include_terminology=True),
            build_package_group(LIBRARY, include_terminology=True),
            build_data_requirements_group("Measure"),
            build_data_requirements_group("Library"),
        ),
        inputs=(
            Input("url", "FHIR Server Base Url"),
            Input("bearer_token", "OAuth access token", optional=True),
        ),
    )
