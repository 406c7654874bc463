# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
The single entry point callers use for terminology work.

The worker context composes the code validator, the value set expander and
the terminology backend. Each capability has one of three postures:

- implemented: validation and expansion, delegated to the engine;
- delegated with graceful null: fetching and system support, answered by the
  backend, or "not found" / False when no backend is configured;
- explicitly unsupported: parsers, narrative generation, validator instances
  and the like, which raise UnsupportedOperationError.
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, List, Optional, Protocol, TypeVar

from .backend import NullTerminologyBackend, TerminologyBackend
from .config import settings
from .exceptions import TerminologyTimeoutError, UnsupportedOperationError
from .expander import ValueSetExpander
from .models import (
    RESOURCE_TYPES,
    CodeableConcept,
    CodeSystem,
    Coding,
    ExpansionOutcome,
    Resource,
    ValidationResult,
    ValueSet,
    ValueSetComposeInclude,
)
from .validator import CodeValidator

T = TypeVar("T")


class TerminologyFetching(Protocol):
    def fetch_code_system(self, system: str) -> Optional[CodeSystem]:
        ...

    def fetch_resource(self, resource_type: str, uri: str) -> Optional[Resource]:
        ...

    def supports_system(self, system: str) -> bool:
        ...


class CodeValidation(Protocol):
    def validate_code(
        self, system: Optional[str], code: str, display: Optional[str] = None, timeout: Optional[float] = None
    ) -> ValidationResult:
        ...

    def validate_code_against_value_set(
        self,
        system: Optional[str],
        code: str,
        display: Optional[str],
        value_set: ValueSet,
        timeout: Optional[float] = None,
    ) -> ValidationResult:
        ...

    def validate_coding(self, coding: Coding, value_set: ValueSet, timeout: Optional[float] = None) -> ValidationResult:
        ...

    def validate_codeable_concept(
        self, concept: CodeableConcept, value_set: ValueSet, timeout: Optional[float] = None
    ) -> ValidationResult:
        ...


class ValueSetExpansion(Protocol):
    def expand(self, value_set: ValueSet, timeout: Optional[float] = None) -> ExpansionOutcome:
        ...


class WorkerContext:
    """
    Facade over the terminology engine. Stateless apart from the backend,
    which is fixed at construction.
    """

    def __init__(self, backend: Optional[TerminologyBackend] = None, default_timeout: Optional[float] = None):
        # The absent backend is resolved once, here, rather than on every call.
        self._backend: TerminologyBackend = backend if backend is not None else NullTerminologyBackend()
        self._default_timeout = default_timeout
        self._validator = CodeValidator(self._backend)
        self._expander = ValueSetExpander(self._backend, max_workers=settings.max_parallel_includes)

    @property
    def backend(self) -> TerminologyBackend:
        return self._backend

    def _run(self, operation: str, timeout: Optional[float], func: Callable[..., T], *args: Any) -> T:
        """
        Runs `func`, bounded by a timeout when one applies. A call that does
        not finish in time is cancelled through the event handed to it, so it
        makes no further backend calls, and TerminologyTimeoutError is raised.
        A backend call already in flight runs to its own transport timeout.
        """
        if timeout is None:
            timeout = self._default_timeout if self._default_timeout is not None else settings.operation_timeout
        if timeout is None:
            return func(*args)

        cancel_event = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="terminology")
        future = executor.submit(func, *args, cancel_event=cancel_event)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError as e:
            cancel_event.set()
            future.cancel()
            raise TerminologyTimeoutError(operation, timeout) from e
        finally:
            executor.shutdown(wait=False)

    # --- Implemented ---

    def validate_code(
        self, system: Optional[str], code: str, display: Optional[str] = None, timeout: Optional[float] = None
    ) -> ValidationResult:
        return self._run("validate_code", timeout, self._validator.validate_code, system, code, display)

    def validate_code_against_value_set(
        self,
        system: Optional[str],
        code: str,
        display: Optional[str],
        value_set: ValueSet,
        timeout: Optional[float] = None,
    ) -> ValidationResult:
        return self._run(
            "validate_code_against_value_set",
            timeout,
            self._validator.validate_code_against_value_set,
            system,
            code,
            display,
            value_set,
        )

    def validate_coding(self, coding: Coding, value_set: ValueSet, timeout: Optional[float] = None) -> ValidationResult:
        return self._run("validate_coding", timeout, self._validator.validate_coding, coding, value_set)

    def validate_codeable_concept(
        self, concept: CodeableConcept, value_set: ValueSet, timeout: Optional[float] = None
    ) -> ValidationResult:
        return self._run(
            "validate_codeable_concept", timeout, self._validator.validate_codeable_concept, concept, value_set
        )

    def expand(self, value_set: ValueSet, timeout: Optional[float] = None) -> ExpansionOutcome:
        return self._run("expand", timeout, self._expander.expand, value_set)

    def expand_include(self, include: ValueSetComposeInclude) -> ExpansionOutcome:
        """Expands a single include rule straight through the backend."""
        return self._backend.expand_include(include)

    def get_resource_names(self) -> List[str]:
        return sorted(RESOURCE_TYPES)

    # --- Delegated with graceful null ---

    def fetch_code_system(self, system: str) -> Optional[CodeSystem]:
        return self._backend.fetch_code_system(system)

    def fetch_resource(self, resource_type: str, uri: str) -> Optional[Resource]:
        return self._backend.fetch_resource(resource_type, uri)

    def supports_system(self, system: str) -> bool:
        return self._backend.is_system_supported(system)

    # --- Explicitly unsupported ---

    def get_narrative_generator(self, prefix: str, base_path: str):
        raise UnsupportedOperationError("get_narrative_generator")

    def get_parser(self, parser_type: str):
        raise UnsupportedOperationError("get_parser")

    def new_json_parser(self):
        raise UnsupportedOperationError("new_json_parser")

    def new_xml_parser(self):
        raise UnsupportedOperationError("new_xml_parser")

    def new_validator(self):
        raise UnsupportedOperationError("new_validator")

    def has_resource(self, resource_type: str, uri: str) -> bool:
        raise UnsupportedOperationError("has_resource")

    def validate_code_against_include(
        self, system: Optional[str], code: str, display: Optional[str], include: ValueSetComposeInclude
    ) -> ValidationResult:
        raise UnsupportedOperationError("validate_code_against_include")

    def expand_value_set_cached(self, value_set: ValueSet, cache_ok: bool) -> ExpansionOutcome:
        raise UnsupportedOperationError("expand_value_set_cached")

    def find_maps_for_source(self, url: str):
        raise UnsupportedOperationError("find_maps_for_source")

    def get_abbreviation(self, name: str) -> str:
        raise UnsupportedOperationError("get_abbreviation")
