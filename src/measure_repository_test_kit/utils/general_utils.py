"""
Identifier helpers shared by all test groups.

Identifier tokens arrive as test inputs in the FHIR token search form
``[system]|[value]``. Either side may be left empty, in which case that
component places no constraint on the match.
"""

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, cast

from fhir.identifier import Identifier


class IdentifierMatch(StrEnum):
    """
    How a parsed identifier token is compared against ``resource.identifier``.

    ``LOOSE`` checks the system and value components independently, so they may
    be satisfied by different Identifier entries on the same resource.
    ``STRICT`` requires a single Identifier entry to satisfy both.
    """

    LOOSE = "loose"
    STRICT = "strict"


def split_identifier(identifier: str) -> tuple[str | None, str | None]:
    """
    Split an identifier token into its ``(system, value)`` components.

    * ``"value"`` -> ``(None, "value")``
    * ``"|value"`` -> ``(None, "value")``
    * ``"system|"`` -> ``("system", None)``
    * ``"system|value"`` -> ``("system", "value")``, split on the first ``|`` only

    Every string is accepted; there is no rejection path.

    :param identifier: Identifier token as supplied to the test.
    :returns: ``(system, value)`` where ``None`` marks an unconstrained component.
    """
    if "|" not in identifier:
        return None, identifier

    if identifier.startswith("|"):
        return None, identifier[1:] or None

    if identifier.endswith("|"):
        return identifier[:-1], None

    system, value = identifier.split("|", 1)
    return system, value


def resource_has_matching_identifier(
    resource: Mapping[str, Any],
    identifier: str,
    mode: IdentifierMatch = IdentifierMatch.LOOSE,
) -> bool:
    """
    Check whether ``resource`` carries an Identifier matching ``identifier``.

    :param resource: FHIR resource JSON (Measure, Library, ...).
    :param identifier: Identifier token, see :func:`split_identifier`.
    :param mode: Matching mode, see :class:`IdentifierMatch`.
    :returns: ``True`` if the resource matches the token.
    """
    system, value = split_identifier(identifier)
    identifiers = cast("list[Identifier]", resource.get("identifier") or [])

    if mode is IdentifierMatch.STRICT:
        return any(
            (value is None or iden.get("value") == value)
            and (system is None or iden.get("system") == system)
            for iden in identifiers
        )

    if not identifiers:
        return False

    value_ok = value is None or any(iden.get("value") == value for iden in identifiers)
    system_ok = system is None or any(
        iden.get("system") == system for iden in identifiers
    )
    return value_ok and system_ok
