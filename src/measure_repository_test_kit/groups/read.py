"""Read-by-id tests for the Measure and Library endpoints."""

from measure_repository_test_kit.assertions import assert_, assert_error, assert_success
from measure_repository_test_kit.common.common import INVALID_ID
from measure_repository_test_kit.runner import Input, TestCase, TestContext, TestGroup


def build_read_group(resource_type: str) -> TestGroup:
    kind = resource_type.lower()
    id_input = Input(f"{kind}_id", f"{resource_type} id")

    def read_by_id(context: TestContext) -> None:
        resource_id = context.inputs[id_input.name]
        response = context.fhir_read(resource_type, resource_id)
        assert_success(response, resource_type, 200)
        received = (response.resource or {}).get("id")
        assert_(
            received == resource_id,
            f"Requested resource with id {resource_id}, "
            f"received resource with id {received}",
        )

    def read_unknown_id(context: TestContext) -> None:
        response = context.fhir_read(resource_type, INVALID_ID)
        assert_error(response, 404)

    return TestGroup(
        id=f"{kind}_group",
        title=f"Measure Repository Service {resource_type} Group",
        description=f"Ensure measure repository service can retrieve {resource_type} "
        "resources by the server-defined id",
        tests=(
            TestCase(
                id=f"read-by-id-{kind}-01",
                title=f"Server returns 200 response status and correct {resource_type} "
                "resource from the read interaction",
                description=f"This test verifies that the {resource_type} resource can "
                "be read from the server.",
                run=read_by_id,
                inputs=(id_input,),
            ),
            TestCase(
                id=f"read-by-id-{kind}-02",
                title="Server returns 404 response status when the resource is not "
                "available on the server",
                description="This test verifies that the server appropriately returns "
                "404 response status for a resource whose id cannot be found in the "
                "server's database.",
                run=read_unknown_id,
            ),
        ),
    )
