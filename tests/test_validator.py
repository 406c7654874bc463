# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Tests for the CodeValidator: the recursive concept search, the ordered
value set rules, and CodeableConcept handling.
"""
import threading

import pytest

from py_fhir_terminology.backend import NullTerminologyBackend
from py_fhir_terminology.exceptions import OperationCancelledError, TerminologyBackendError
from py_fhir_terminology.models import (
    CodeableConcept,
    CodeSystem,
    Coding,
    Concept,
    ConceptReference,
    IssueSeverity,
    ValidationResult,
    ValidationStatus,
    ValueSet,
    ValueSetComposeInclude,
    iter_concepts,
)
from py_fhir_terminology.validator import CodeValidator, validate_code_system

from .conftest import INLINE_SYSTEM, S1, S2


@pytest.fixture
def validator():
    return CodeValidator(NullTerminologyBackend())


# --- validate_code_system ---

def test_every_code_in_tree_is_found_with_its_exact_node(concept_tree):
    for node in iter_concepts([concept_tree]):
        result = validate_code_system(node.code, concept_tree)
        assert result is not None and result.is_ok
        assert result.concept == node


def test_absent_code_is_no_match_not_error(concept_tree):
    """The recursive search reports absence with None, and does so repeatably."""
    assert validate_code_system("missing", concept_tree) is None
    assert validate_code_system("missing", concept_tree) is None


@pytest.mark.parametrize("code", ["B1a ", "b1a", "B1", "B"])
def test_matching_is_exact_and_case_sensitive(code):
    tree = Concept(code="B1a")
    assert validate_code_system(code, tree) is None


# --- validate_code_against_value_set ---

def test_value_set_rules(validator, value_set):
    """
    Inline codes match with no system or with the inline system; include codes
    match only when the system is given and equal.
    """
    assert validator.validate_code_against_value_set(None, "X", None, value_set).is_ok
    assert validator.validate_code_against_value_set(INLINE_SYSTEM, "B1a", None, value_set).is_ok
    assert validator.validate_code_against_value_set(S2, "Y", None, value_set).is_ok

    # System mismatch skips the inline tree
    mismatch = validator.validate_code_against_value_set(S2, "X", None, value_set)
    assert mismatch.status is ValidationStatus.ERROR

    # Compose includes require a matching system, even for a null query system
    no_system = validator.validate_code_against_value_set(None, "Y", None, value_set)
    assert no_system.status is ValidationStatus.ERROR


def test_unknown_code_message_names_code_and_system(validator, value_set):
    result = validator.validate_code_against_value_set(S2, "nope", None, value_set)
    assert result.severity is IssueSeverity.ERROR
    assert result.message == f"Unknown code[nope] in system[{S2}]"


def test_display_is_not_compared(validator, value_set):
    result = validator.validate_code_against_value_set(S2, "Y", "Completely different display", value_set)
    assert result.is_ok
    assert result.concept.display == "Yankee"


def test_first_matching_rule_wins(validator):
    """A code present in both the inline tree and an include returns the inline node."""
    value_set = ValueSet(
        identified_code_system=CodeSystem(system=S1, concepts=[Concept(code="A", display="Inline")]),
        compose_includes=[ValueSetComposeInclude(system=S1, concepts=[ConceptReference(code="A", display="Include")])],
    )
    result = validator.validate_code_against_value_set(S1, "A", None, value_set)
    assert result.concept.display == "Inline"


def test_includes_are_checked_in_declaration_order(validator):
    value_set = ValueSet(compose_includes=[
        ValueSetComposeInclude(system=S1, concepts=[ConceptReference(code="A", display="first")]),
        ValueSetComposeInclude(system=S1, concepts=[ConceptReference(code="A", display="second")]),
    ])
    assert validator.validate_code_against_value_set(S1, "A", None, value_set).concept.display == "first"


def test_null_system_include_is_not_matched_by_a_concrete_system(validator):
    value_set = ValueSet(compose_includes=[
        ValueSetComposeInclude(system=None, concepts=[ConceptReference(code="A")]),
    ])
    assert not validator.validate_code_against_value_set(S1, "A", None, value_set).is_ok
    assert validator.validate_code_against_value_set(None, "A", None, value_set).is_ok


def test_include_without_concepts_searches_fetched_code_system(stub_backend, concept_tree):
    backend = stub_backend(code_systems={S1: CodeSystem(system=S1, concepts=[concept_tree])})
    validator = CodeValidator(backend)
    value_set = ValueSet(compose_includes=[ValueSetComposeInclude(system=S1)])

    assert validator.validate_code_against_value_set(S1, "B1a", None, value_set).is_ok
    assert not validator.validate_code_against_value_set(S1, "missing", None, value_set).is_ok


def test_backend_failure_in_one_rule_moves_on_to_the_next(stub_backend):
    """A failing fetch for the first include is treated as no match; the second include still matches."""
    backend = stub_backend(code_systems={S1: RuntimeError("connection reset")})
    validator = CodeValidator(backend)
    value_set = ValueSet(compose_includes=[
        ValueSetComposeInclude(system=S1),
        ValueSetComposeInclude(system=S1, concepts=[ConceptReference(code="A")]),
    ])

    assert validator.validate_code_against_value_set(S1, "A", None, value_set).is_ok
    assert validator.validate_code_against_value_set(S1, "B", None, value_set).status is ValidationStatus.ERROR


def test_empty_value_set_rejects_everything(validator):
    result = validator.validate_code_against_value_set(S1, "A", None, ValueSet())
    assert result.status is ValidationStatus.ERROR


# --- validate_code (no value set) ---

def test_bare_validation_uses_backend_answer(stub_backend, direct_ok):
    backend = stub_backend(direct={(S1, "22298006"): direct_ok})
    assert CodeValidator(backend).validate_code(S1, "22298006") == direct_ok


def test_bare_validation_without_backend_answer_is_error(validator):
    result = validator.validate_code(S1, "A", "Alpha")
    assert result.status is ValidationStatus.ERROR
    assert S1 in result.message


def test_bare_validation_wraps_backend_failure(stub_backend):
    backend = stub_backend(direct={(S1, "A"): RuntimeError("service down")})
    with pytest.raises(TerminologyBackendError):
        CodeValidator(backend).validate_code(S1, "A")


# --- validate_coding / validate_codeable_concept ---

def test_validate_coding_unpacks_the_coding(validator, value_set):
    assert validator.validate_coding(Coding(system=S2, code="Z"), value_set).is_ok
    assert not validator.validate_coding(Coding(system=S1, code="Z"), value_set).is_ok


def test_codeable_concept_returns_first_ok_coding(validator, value_set):
    concept = CodeableConcept(codings=[
        Coding(system=S1, code="bad"),
        Coding(system=S2, code="Z", display="Zulu"),
        Coding(system=S2, code="Y"),
    ])
    result = validator.validate_codeable_concept(concept, value_set)
    assert result.is_ok
    assert result.concept.code == "Z"


def test_codeable_concept_with_no_matching_coding_is_unknown(validator, value_set):
    concept = CodeableConcept(codings=[Coding(system=S1, code="bad"), Coding(system=S2, code="worse")])
    result = validator.validate_codeable_concept(concept, value_set)
    assert result == ValidationResult.unknown()
    assert result.concept is None and result.message is None


def test_empty_codeable_concept_is_unknown(validator, value_set):
    assert validator.validate_codeable_concept(CodeableConcept(), value_set).status is ValidationStatus.UNKNOWN


def test_cancelled_validation_stops_before_fetching(stub_backend):
    backend = stub_backend(code_systems={S1: CodeSystem(system=S1, concepts=[Concept(code="A")])})
    value_set = ValueSet(compose_includes=[ValueSetComposeInclude(system=S1)])
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(OperationCancelledError):
        CodeValidator(backend).validate_code_against_value_set(S1, "A", None, value_set, cancel_event=cancel_event)
    with pytest.raises(OperationCancelledError):
        CodeValidator(backend).validate_code(S1, "A", cancel_event=cancel_event)
