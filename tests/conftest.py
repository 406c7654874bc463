# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
import json
from pathlib import Path
from typing import Dict, Optional

import pytest

from py_fhir_terminology.models import (
    CodeSystem,
    Concept,
    ConceptReference,
    ExpansionContains,
    ExpansionOutcome,
    ValidationResult,
    ValueSet,
    ValueSetComposeInclude,
)

INLINE_SYSTEM = "http://example.org/fhir/CodeSystem/inline"
S1 = "http://example.org/fhir/CodeSystem/s1"
S2 = "http://example.org/fhir/CodeSystem/s2"
SNOMED = "http://snomed.info/sct"


class StubBackend:
    """
    A configurable terminology backend for tests. Records every include it is
    asked to expand. Values given as exception instances are raised.
    """

    def __init__(self, code_systems=None, expansions=None, direct=None, resources=None):
        self.code_systems: Dict[str, object] = code_systems or {}
        self.expansions: Dict[Optional[str], object] = expansions or {}
        self.direct: Dict[tuple, object] = direct or {}
        self.resources: Dict[tuple, object] = resources or {}
        self.expanded = []

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    def fetch_code_system(self, system):
        return self._answer(self.code_systems.get(system))

    def fetch_resource(self, resource_type, uri):
        return self._answer(self.resources.get((resource_type, uri)))

    def is_system_supported(self, system):
        return system in self.code_systems

    def validate_code_directly(self, system, code, display):
        return self._answer(self.direct.get((system, code)))

    def expand_include(self, include):
        self.expanded.append(include.system)
        if include.system not in self.expansions:
            return ExpansionOutcome.failure(f"Unable to find code system[{include.system}]")
        return self._answer(self.expansions[include.system])


@pytest.fixture
def stub_backend():
    return StubBackend


@pytest.fixture
def concept_tree() -> Concept:
    """A -> [B -> [B1 -> [B1a]], C]"""
    return Concept(code="A", display="Alpha", children=[
        Concept(code="B", display="Bravo", children=[
            Concept(code="B1", display="Bravo one", children=[
                Concept(code="B1a", display="Bravo one a"),
            ]),
        ]),
        Concept(code="C", display="Charlie"),
    ])


@pytest.fixture
def inline_code_system(concept_tree) -> CodeSystem:
    return CodeSystem(system=INLINE_SYSTEM, concepts=[concept_tree, Concept(code="X", display="X-ray")])


@pytest.fixture
def value_set(inline_code_system) -> ValueSet:
    """
    Inline code system holding A..C and X; one include of S2 holding Y and Z.
    """
    return ValueSet(
        url="http://example.org/fhir/ValueSet/test",
        name="TestValueSet",
        identified_code_system=inline_code_system,
        compose_includes=[
            ValueSetComposeInclude(system=S2, concepts=[
                ConceptReference(code="Y", display="Yankee"),
                ConceptReference(code="Z", display="Zulu"),
            ]),
        ],
    )


@pytest.fixture
def snomed_expansion() -> ExpansionOutcome:
    return ExpansionOutcome.success([
        ExpansionContains(system=SNOMED, code="22298006", display="Myocardial infarction"),
        ExpansionContains(system=SNOMED, code="38341003", display="Hypertensive disorder"),
    ])


@pytest.fixture
def direct_ok() -> ValidationResult:
    return ValidationResult.ok(Concept(code="22298006", display="Myocardial infarction"))


# --- FHIR JSON fixtures ---

CODE_SYSTEM_JSON = {
    "resourceType": "CodeSystem",
    "url": S1,
    "concept": [
        {"code": "P", "display": "Parent", "concept": [
            {"code": "P1", "display": "Child one"},
            {"code": "P2", "display": "Child two", "concept": [{"code": "P2a", "display": "Grandchild"}]},
        ]},
        {"code": "Q", "display": "Quebec"},
    ],
}

VALUE_SET_JSON = {
    "resourceType": "ValueSet",
    "url": "http://example.org/fhir/ValueSet/dstu2",
    "name": "Dstu2ValueSet",
    "codeSystem": {
        "system": INLINE_SYSTEM,
        "concept": [{"code": "A", "display": "Alpha", "concept": [{"code": "B", "display": "Bravo"}]}],
    },
    "compose": {
        "include": [
            {"system": S2, "concept": [{"code": "Y", "display": "Yankee"}]},
            {"system": S1},
        ]
    },
}


def _write_json(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def bundle_dir(tmp_path: Path) -> Path:
    """A directory holding one CodeSystem and one DSTU2-style ValueSet."""
    directory = tmp_path / "bundle"
    _write_json(directory / "codesystem-s1.json", CODE_SYSTEM_JSON)
    _write_json(directory / "valueset-dstu2.json", VALUE_SET_JSON)
    return directory
