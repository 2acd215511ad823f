"""
Helpers for comparing ``$data-requirements`` results.

Each DataRequirement is rendered to a short string such as
``Condition.code(http://snomed.info/sct|44054006)`` so lists from a server
response and from test input can be compared as sets.
"""

from fhir.library import CodeFilter, DataRequirement


def get_filter_str(code_filter: CodeFilter | None) -> str:
    """Render the first code, or the value set, of a DataRequirement codeFilter."""
    if not code_filter:
        return "(no code filter)"

    codes = code_filter.get("code") or []
    if codes:
        code = codes[0]
        return f"({code.get('system')}|{code.get('code')})"

    value_set = code_filter.get("valueSet")
    if value_set:
        return f"({value_set})"

    return "(no code filter)"


def get_dr_comparison_list(
    data_requirements: list[DataRequirement],
) -> list[str]:
    comparison: list[str] = []
    for dr in data_requirements:
        code_filters = dr.get("codeFilter") or []
        cf = code_filters[0] if code_filters else None
        path = f".{cf['path']}" if cf and cf.get("path") else ""
        comparison.append(f"{dr.get('type')}{path}{get_filter_str(cf)}")
    return comparison
