# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Validation of codes against code systems and value sets.

Rules are evaluated in a fixed order and the first match wins:
1. The value set's inline code system, when the system is unspecified or matches.
2. Each compose include whose system matches exactly, in declaration order.
3. Otherwise the code is unknown.
"""
import threading
from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape

from .backend import TerminologyBackend
from .exceptions import OperationCancelledError, TerminologyBackendError
from .models import (
    CodeableConcept,
    Coding,
    Concept,
    ValidationResult,
    ValueSet,
    ValueSetComposeInclude,
    iter_concepts,
)

console = Console()


def validate_code_system(code: str, concept: Concept) -> Optional[ValidationResult]:
    """
    Searches `concept` and all of its descendants, pre-order, for `code`.
    Returns an OK result carrying the exact matching node, or None when the
    subtree does not contain the code. Comparison is exact string equality.
    """
    for candidate in iter_concepts([concept]):
        if candidate.code == code:
            return ValidationResult.ok(candidate)
    return None


def _search_forest(code: str, concepts: Iterable[Concept]) -> Optional[ValidationResult]:
    for concept in concepts:
        result = validate_code_system(code, concept)
        if result is not None and result.is_ok:
            return result
    return None


def _raise_if_cancelled(cancel_event: Optional[threading.Event], code: str):
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(f"Validation of code[{code}] was cancelled")


class CodeValidator:
    """Decides whether codes are members of code systems and value sets."""

    def __init__(self, backend: TerminologyBackend):
        self.backend = backend

    def validate_code(
        self,
        system: Optional[str],
        code: str,
        display: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ValidationResult:
        """
        Validates a code with no value set context by asking the backend.
        """
        _raise_if_cancelled(cancel_event, code)
        try:
            result = self.backend.validate_code_directly(system, code, display)
        except Exception as e:
            raise TerminologyBackendError(f"Backend failed to validate code[{code}] in system[{system}]: {e}") from e
        if result is None:
            return ValidationResult.error(
                f"Code system[{system}] not found; cannot validate code[{code}] without a value set context"
            )
        return result

    def validate_code_against_value_set(
        self,
        system: Optional[str],
        code: str,
        display: Optional[str],
        value_set: ValueSet,
        cancel_event: Optional[threading.Event] = None,
    ) -> ValidationResult:
        """
        Validates a code against a value set. The display is informational
        only and is never compared. Once `cancel_event` is set, the next
        backend call is replaced by OperationCancelledError.
        """
        _raise_if_cancelled(cancel_event, code)
        # Rule 1: the value set's own inline code system
        inline = value_set.identified_code_system
        if inline is not None and (system is None or system == inline.system):
            result = _search_forest(code, inline.concepts)
            if result is not None:
                return result

        # Rule 2: compose includes bound to the same system
        for include in value_set.compose_includes:
            if include.system != system:
                continue
            result = self._validate_against_include(code, include, cancel_event)
            if result is not None:
                return result

        return ValidationResult.error(f"Unknown code[{code}] in system[{system}]")

    def _validate_against_include(
        self, code: str, include: ValueSetComposeInclude, cancel_event: Optional[threading.Event] = None
    ) -> Optional[ValidationResult]:
        if include.concepts:
            for reference in include.concepts:
                result = validate_code_system(code, Concept(code=reference.code, display=reference.display))
                if result is not None:
                    return result
            return None

        # An include without explicit concepts takes in its whole code system.
        if include.system is None:
            return None
        _raise_if_cancelled(cancel_event, code)
        try:
            code_system = self.backend.fetch_code_system(include.system)
        except Exception as e:
            console.log(
                f"[yellow]Backend failed to fetch code system {escape(include.system)}: {escape(str(e))}. "
                f"Skipping this include.[/yellow]"
            )
            return None
        if code_system is None:
            return None
        return _search_forest(code, code_system.concepts)

    def validate_coding(
        self, coding: Coding, value_set: ValueSet, cancel_event: Optional[threading.Event] = None
    ) -> ValidationResult:
        return self.validate_code_against_value_set(coding.system, coding.code, coding.display, value_set, cancel_event)

    def validate_codeable_concept(
        self, concept: CodeableConcept, value_set: ValueSet, cancel_event: Optional[threading.Event] = None
    ) -> ValidationResult:
        """
        Returns the first OK result among the concept's codings. When no
        coding matches, the result is UNKNOWN rather than ERROR: the caller
        decides how to treat a concept none of whose codings is recognised.
        """
        for coding in concept.codings:
            result = self.validate_coding(coding, value_set, cancel_event)
            if result.is_ok:
                return result
        return ValidationResult.unknown()
