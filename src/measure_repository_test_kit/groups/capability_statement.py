"""Checks that the server publishes a CapabilityStatement."""

from measure_repository_test_kit.assertions import assert_success
from measure_repository_test_kit.runner import TestCase, TestContext, TestGroup


def read_capability_statement(context: TestContext) -> None:
    response = context.fhir_get_capability_statement()
    assert_success(response, "CapabilityStatement", 200)


def build_capability_statement_group() -> TestGroup:
    return TestGroup(
        id="capability_statement",
        title="Capability Statement",
        description="Verify that the server has a CapabilityStatement",
        tests=(
            TestCase(
                id="capability_statement_read",
                title="Read CapabilityStatement",
                description="Read CapabilityStatement from /metadata endpoint",
                run=read_capability_statement,
            ),
        ),
    )
