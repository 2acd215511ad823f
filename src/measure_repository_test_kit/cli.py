"""
Command line entry point: run the suite, a group or a single test against a
Measure Repository Service and print one line per test.

    measure-repository-test-kit --url https://example.org/fhir \\
        --input measure_id=example --input library_id=example-lib

Exit status is 0 when every required test passed or was skipped, else 1.
"""

import argparse
import json
import logging
import sys
from collections.abc import Sequence

from measure_repository_test_kit.config import Settings, load_settings
from measure_repository_test_kit.runner import (
    CheckOptions,
    Result,
    TestCase,
    TestGroup,
    TestRunner,
    TestSuite,
    run_passed,
)
from measure_repository_test_kit.suite import build_suite
from measure_repository_test_kit.utils.general_utils import IdentifierMatch
from measure_repository_test_kit.utils.package_utils import ReferenceDetection


def _parse_input(value: str) -> tuple[str, str]:
    name, sep, input_value = value.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected name=value, got {value!r}")
    return name, input_value


def get_arguments(args: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Run conformance tests against a FHIR Measure Repository Service."
        )
    )
    parser.add_argument(
        "--url",
        help="FHIR base URL of the server under test "
        "(default: $MEASURE_REPOSITORY_URL)",
    )
    parser.add_argument(
        "--token",
        help="OAuth2 bearer token (default: $MEASURE_REPOSITORY_TOKEN)",
    )
    parser.add_argument("--timeout", type=int, help="HTTP timeout in seconds")
    parser.add_argument(
        "--input",
        dest="inputs",
        action="append",
        type=_parse_input,
        default=[],
        metavar="NAME=VALUE",
        help="Test input, e.g. measure_id=example. May be repeated.",
    )
    parser.add_argument(
        "--inputs-file",
        help="JSON file holding an object of test inputs",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--group", help="Only run the group with this id")
    target.add_argument("--test", help="Only run the test with this id")
    parser.add_argument(
        "--strict-identifiers",
        action="store_true",
        help="Require identifier system and value to match on the same Identifier",
    )
    parser.add_argument(
        "--strict-references",
        action="store_true",
        help="Detect Library/ValueSet dependencies by parsing the reference "
        "instead of by substring",
    )
    parser.add_argument(
        "--list", action="store_true", help="List groups, tests and inputs and exit"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(args)


def collect_inputs(
    arguments: argparse.Namespace, settings: Settings
) -> dict[str, str]:
    inputs: dict[str, str] = {}

    if arguments.inputs_file:
        with open(arguments.inputs_file) as f:
            file_inputs = json.load(f)
        if not isinstance(file_inputs, dict):
            raise ValueError(f"{arguments.inputs_file} must hold a JSON object")
        inputs.update({str(k): str(v) for k, v in file_inputs.items()})

    inputs.update(dict(arguments.inputs))

    url = arguments.url or inputs.get("url") or settings.url
    token = arguments.token or inputs.get("bearer_token") or settings.bearer_token
    if url:
        inputs["url"] = url
    if token:
        inputs["bearer_token"] = token
    return inputs


def select_runnable(
    suite: TestSuite, arguments: argparse.Namespace
) -> TestSuite | TestGroup | TestCase:
    if arguments.group:
        group = suite.find_group(arguments.group)
        if group is None:
            raise ValueError(f"No group with id {arguments.group}")
        return group
    if arguments.test:
        found = suite.find_test(arguments.test)
        if found is None:
            raise ValueError(f"No test with id {arguments.test}")
        return found[1]
    return suite


def print_results(results: list[Result]) -> None:
    for result in results:
        optional = " (optional)" if result.optional else ""
        line = f"{result.result.upper():5} {result.test_id}{optional}: {result.title}"
        print(line)
        if result.message:
            print(f"      {result.message}")

    counts: dict[str, int] = {}
    for result in results:
        counts[result.result] = counts.get(result.result, 0) + 1
    print(", ".join(f"{count} {outcome}" for outcome, count in sorted(counts.items())))


def print_listing(suite: TestSuite) -> None:
    for group in suite.groups:
        print(f"{group.id}: {group.title}")
        for test in group.tests:
            print(f"  {test.id}: {test.title}")
    print("inputs:")
    for item in suite.all_inputs:
        optional = " (optional)" if item.optional else ""
        print(f"  {item.name}{optional}: {item.title}")


def main(args: Sequence[str] | None = None) -> int:
    arguments = get_arguments(args)
    try:
        settings = load_settings()
    except ValueError as err:
        print(f"Error: {err}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if arguments.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    suite = build_suite()
    if arguments.list:
        print_listing(suite)
        return 0

    try:
        runnable = select_runnable(suite, arguments)
        inputs = collect_inputs(arguments, settings)
    except (OSError, ValueError) as err:
        print(f"Error: {err}", file=sys.stderr)
        return 2

    if "url" not in inputs:
        print(
            "Error: no server url given (--url or MEASURE_REPOSITORY_URL)",
            file=sys.stderr,
        )
        return 2

    options = CheckOptions(
        identifier_match=IdentifierMatch.STRICT
        if arguments.strict_identifiers
        else IdentifierMatch.LOOSE,
        reference_detection=ReferenceDetection.STRUCTURED
        if arguments.strict_references
        else ReferenceDetection.SUBSTRING,
    )
    runner = TestRunner(
        inputs,
        options=options,
        timeout=arguments.timeout or settings.timeout,
    )

    # Single tests still run inside their group so the group's headers apply.
    if isinstance(runnable, TestCase):
        group, _ = suite.find_test(runnable.id) or (None, None)
        results = [runner.run_test(runnable, group)]
    else:
        results = runner.run(runnable)

    print_results(results)
    return 0 if run_passed(results) else 1


if __name__ == "__main__":
    sys.exit(main())
