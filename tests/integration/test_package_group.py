"""Integration tests for the $package groups, run against the in-memory stub."""

from collections.abc import Callable
from typing import TypeAlias

from stubs.stub_measure_repository import MeasureRepositoryStub

from measure_repository_test_kit.groups.package import (
    LIBRARY,
    MEASURE,
    build_package_group,
)
from measure_repository_test_kit.runner import Outcome, Result, TestRunner, run_passed

RunnerFactory: TypeAlias = Callable[..., TestRunner]


def outcomes(results: list[Result]) -> dict[str, Outcome]:
    return {r.test_id: r.result for r in results}


def messages(results: list[Result]) -> dict[str, str]:
    return {r.test_id: r.message for r in results}


def test_measure_package_passes(make_runner: RunnerFactory) -> None:
    results = make_runner().run(build_package_group(MEASURE))

    assert outcomes(results) == {
        f"measure-package-0{n}": Outcome.PASS for n in range(1, 9)
    }


def test_library_package_passes(make_runner: RunnerFactory) -> None:
    results = make_runner().run(build_package_group(LIBRARY))

    assert all(r.result == Outcome.PASS for r in results), messages(results)
    assert len(results) == 8


def test_include_terminology_groups_pass(make_runner: RunnerFactory) -> None:
    runner = make_runner()

    for target in (MEASURE, LIBRARY):
        group = build_package_group(target, include_terminology=True)
        results = runner.run(group)

        assert len(results) == 7
        assert all(r.optional for r in results)
        assert all(r.result == Outcome.PASS for r in results), messages(results)
        assert f"{target.kind}_package_include_terminology" in runner.requests


def test_missing_library_dependency_fails_closure_check(
    stub: MeasureRepositoryStub, make_runner: RunnerFactory
) -> None:
    stub.omit_from_package.add(stub.HELPER_LIBRARY_URL)

    results = make_runner().run(build_package_group(MEASURE))

    assert outcomes(results)["measure-package-01"] == Outcome.PASS
    assert outcomes(results)["measure-package-05"] == Outcome.FAIL
    assert stub.HELPER_LIBRARY_URL in messages(results)["measure-package-05"]


def test_dependency_with_other_version_is_missing(
    stub: MeasureRepositoryStub, make_runner: RunnerFactory
) -> None:
    stub.upsert_resource(
        {
            "resourceType": "Library",
            "id": "helper-library",
            "url": stub.HELPER_LIBRARY_URL,
            "version": "2.0.0",
        }
    )

    results = make_runner().run(build_package_group(LIBRARY))

    assert outcomes(results)["library-package-05"] == Outcome.FAIL
    assert (
        f"{stub.HELPER_LIBRARY_URL}|{stub.VERSION}"
        in messages(results)["library-package-05"]
    )


def test_missing_valueset_only_fails_terminology_checks(
    stub: MeasureRepositoryStub, make_runner: RunnerFactory
) -> None:
    stub.omit_from_package.add(stub.CONDITION_VALUESET_URL)
    runner = make_runner()

    plain = outcomes(runner.run(build_package_group(MEASURE)))
    terminology = outcomes(
        runner.run(build_package_group(MEASURE, include_terminology=True))
    )

    assert plain["measure-package-05"] == Outcome.PASS
    assert plain["measure-package-08"] == Outcome.FAIL
    assert terminology["measure-include-terminology-05"] == Outcome.FAIL


def test_optional_failures_do_not_fail_the_run(
    stub: MeasureRepositoryStub, make_runner: RunnerFactory
) -> None:
    stub.omit_from_package.add(stub.ENCOUNTER_VALUESET_URL)

    results = make_runner().run(build_package_group(LIBRARY))

    assert outcomes(results)["library-package-08"] == Outcome.FAIL
    assert run_passed(results)


def test_wrong_version_input_fails(make_runner: RunnerFactory) -> None:
    results = make_runner(measure_version="9.9.9").run(build_package_group(MEASURE))

    assert outcomes(results)["measure-package-04"] == Outcome.FAIL


def test_missing_id_input_skips_dependent_tests(make_runner: RunnerFactory) -> None:
    results = make_runner(measure_id=None).run(build_package_group(MEASURE))

    assert outcomes(results) == {
        "measure-package-01": Outcome.SKIP,
        "measure-package-02": Outcome.PASS,
        "measure-package-03": Outcome.PASS,
        "measure-package-04": Outcome.SKIP,
        "measure-package-05": Outcome.SKIP,
        "measure-package-06": Outcome.PASS,
        "measure-package-07": Outcome.PASS,
        "measure-package-08": Outcome.SKIP,
    }


def test_library_group_sends_content_type(
    stub: MeasureRepositoryStub, make_runner: RunnerFactory
) -> None:
    seen: list[dict[str, str]] = []
    original_post = stub.post

    def _capturing_post(url, headers=None, params=None, data=None, timeout=None):
        seen.append(dict(headers or {}))
        return original_post(url, headers, params, data, timeout)

    stub.post = _capturing_post  # type: ignore[method-assign]

    make_runner().run(build_package_group(LIBRARY))

    assert seen
    assert all(h.get("content-type") == "application/fhir+json" for h in seen)
