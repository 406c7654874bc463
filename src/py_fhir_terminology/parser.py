# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Adapts FHIR JSON resources to the concept model.

Both the DSTU2 layout, where a ValueSet declares its own codes under
`codeSystem`, and the later standalone CodeSystem resource are understood.
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import (
    RESOURCE_TYPES,
    CodeSystem,
    Coding,
    Concept,
    ConceptReference,
    ExpansionContains,
    Resource,
    ValidationResult,
    ValueSet,
    ValueSetComposeInclude,
)


def _require(resource: Dict[str, Any], key: str, context: str) -> Any:
    if key not in resource or resource[key] in (None, ""):
        raise ValueError(f"{context} is missing required element '{key}'.")
    return resource[key]


def parse_concept(element: Dict[str, Any]) -> Concept:
    """Parses a concept definition and, recursively, its nested concepts."""
    return Concept(
        code=_require(element, "code", "Concept definition"),
        display=element.get("display"),
        children=[parse_concept(child) for child in element.get("concept", [])],
    )


def parse_code_system(resource: Dict[str, Any]) -> CodeSystem:
    """
    Parses either a CodeSystem resource or the inline `codeSystem` element
    of a DSTU2 ValueSet. The former names its URI `url`, the latter `system`.
    """
    system = resource.get("url") or resource.get("system")
    if not system:
        raise ValueError("Code system is missing both 'url' and 'system'.")
    return CodeSystem(
        system=system,
        concepts=[parse_concept(element) for element in resource.get("concept", [])],
    )


def parse_compose_include(element: Dict[str, Any]) -> ValueSetComposeInclude:
    return ValueSetComposeInclude(
        system=element.get("system"),
        concepts=[
            ConceptReference(code=_require(ref, "code", "Compose include concept"), display=ref.get("display"))
            for ref in element.get("concept", [])
        ],
    )


def parse_value_set(resource: Dict[str, Any]) -> ValueSet:
    inline = resource.get("codeSystem")
    compose = resource.get("compose") or {}
    return ValueSet(
        url=resource.get("url"),
        name=resource.get("name"),
        identified_code_system=parse_code_system(inline) if inline else None,
        compose_includes=[parse_compose_include(include) for include in compose.get("include", [])],
    )


def parse_resource(resource: Dict[str, Any]) -> Resource:
    """Dispatches on `resourceType`."""
    resource_type = resource.get("resourceType")
    if resource_type == "CodeSystem":
        return parse_code_system(resource)
    if resource_type == "ValueSet":
        return parse_value_set(resource)
    raise ValueError(f"Unsupported resource type: {resource_type!r}")


def parse_bundle_resources(bundle: Dict[str, Any]) -> List[Resource]:
    """Parses the supported resources out of a searchset Bundle, skipping others."""
    resources = []
    for entry in bundle.get("entry", []):
        resource = entry.get("resource") or {}
        if resource.get("resourceType") in RESOURCE_TYPES:
            resources.append(parse_resource(resource))
    return resources


def parse_expansion_contains(resource: Dict[str, Any]) -> List[ExpansionContains]:
    """
    Flattens `expansion.contains` of an expanded ValueSet, pre-order.
    Abstract grouping entries without a code are skipped but their children kept.
    """
    result = []
    stack = list(reversed((resource.get("expansion") or {}).get("contains", [])))
    while stack:
        entry = stack.pop()
        if entry.get("code"):
            result.append(ExpansionContains(system=entry.get("system"), code=entry["code"], display=entry.get("display")))
        stack.extend(reversed(entry.get("contains", [])))
    return result


def parse_validate_code_parameters(parameters: Dict[str, Any], code: str) -> ValidationResult:
    """Reads the `Parameters` answer of a `$validate-code` operation."""
    values = {}
    for parameter in parameters.get("parameter", []):
        name = parameter.get("name")
        for key, value in parameter.items():
            if key.startswith("value"):
                values[name] = value
    if "result" not in values:
        raise ValueError("$validate-code response has no 'result' parameter.")
    if values["result"]:
        return ValidationResult.ok(Concept(code=code, display=values.get("display")))
    return ValidationResult.error(values.get("message") or f"Code[{code}] is not valid")


def operation_outcome_message(resource: Dict[str, Any]) -> Optional[str]:
    """Joins the diagnostics of an OperationOutcome, if that is what `resource` is."""
    if resource.get("resourceType") != "OperationOutcome":
        return None
    messages = [
        issue.get("diagnostics") or (issue.get("details") or {}).get("text")
        for issue in resource.get("issue", [])
    ]
    return "; ".join(message for message in messages if message) or None


def parse_coding_string(value: str) -> Coding:
    """
    Parses the command line form `system|code|display`. The system and the
    display may be left empty; a bare value is treated as a code.
    """
    parts = value.split("|")
    if len(parts) == 1:
        return Coding(code=parts[0])
    if len(parts) > 3 or not parts[1]:
        raise ValueError(f"Expected 'system|code|display', got {value!r}")
    display = parts[2] if len(parts) == 3 and parts[2] else None
    return Coding(system=parts[0] or None, code=parts[1], display=display)


def load_resource_file(path: Path) -> Resource:
    """Loads a CodeSystem or ValueSet from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a FHIR resource.")
    return parse_resource(data)
