# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
The port through which the engine reaches its environment.

Each capability is its own Protocol so that collaborators can depend on the
one they need. Every method may answer "absent" (None, False, or a failed
ExpansionOutcome); the engine treats absence as "no information available".
"""
from typing import Optional, Protocol, runtime_checkable

from .models import (
    CodeSystem,
    ExpansionContains,
    ExpansionOutcome,
    Resource,
    ValidationResult,
    ValueSetComposeInclude,
    iter_concepts,
)


@runtime_checkable
class CodeSystemFetcher(Protocol):
    def fetch_code_system(self, system: str) -> Optional[CodeSystem]:
        ...


@runtime_checkable
class ResourceFetcher(Protocol):
    def fetch_resource(self, resource_type: str, uri: str) -> Optional[Resource]:
        ...


@runtime_checkable
class SystemSupport(Protocol):
    def is_system_supported(self, system: str) -> bool:
        ...


@runtime_checkable
class DirectCodeValidator(Protocol):
    def validate_code_directly(
        self, system: Optional[str], code: str, display: Optional[str]
    ) -> Optional[ValidationResult]:
        ...


@runtime_checkable
class IncludeExpander(Protocol):
    def expand_include(self, include: ValueSetComposeInclude) -> ExpansionOutcome:
        ...


@runtime_checkable
class TerminologyBackend(
    CodeSystemFetcher, ResourceFetcher, SystemSupport, DirectCodeValidator, IncludeExpander, Protocol
):
    """Everything the engine may ask of its environment."""


class NullTerminologyBackend:
    """
    Stands in for a missing backend. Every capability answers "not supported".
    """

    def fetch_code_system(self, system: str) -> Optional[CodeSystem]:
        return None

    def fetch_resource(self, resource_type: str, uri: str) -> Optional[Resource]:
        return None

    def is_system_supported(self, system: str) -> bool:
        return False

    def validate_code_directly(
        self, system: Optional[str], code: str, display: Optional[str]
    ) -> Optional[ValidationResult]:
        return None

    def expand_include(self, include: ValueSetComposeInclude) -> ExpansionOutcome:
        return ExpansionOutcome.failure(
            f"No terminology backend is configured to expand the include for system[{include.system}]"
        )


class CodeSystemBackedSupport:
    """
    Mixin implementing the query capabilities of the port on top of
    `fetch_code_system`, for backends able to materialize whole code systems.
    """

    def fetch_code_system(self, system: str) -> Optional[CodeSystem]:
        raise NotImplementedError

    def is_system_supported(self, system: str) -> bool:
        return self.fetch_code_system(system) is not None

    def validate_code_directly(
        self, system: Optional[str], code: str, display: Optional[str]
    ) -> Optional[ValidationResult]:
        if system is None:
            return None
        code_system = self.fetch_code_system(system)
        if code_system is None:
            return None
        for concept in iter_concepts(code_system.concepts):
            if concept.code == code:
                return ValidationResult.ok(concept)
        return ValidationResult.error(f"Unknown code[{code}] in system[{system}]")

    def expand_include(self, include: ValueSetComposeInclude) -> ExpansionOutcome:
        if include.concepts:
            return ExpansionOutcome.success(
                ExpansionContains(system=include.system, code=ref.code, display=ref.display)
                for ref in include.concepts
            )
        if include.system is None:
            return ExpansionOutcome.failure("Cannot expand an include that names no system and no concepts")
        code_system = self.fetch_code_system(include.system)
        if code_system is None:
            return ExpansionOutcome.failure(f"Unable to find code system[{include.system}]")
        return ExpansionOutcome.success(
            ExpansionContains(system=code_system.system, code=concept.code, display=concept.display)
            for concept in iter_concepts(code_system.concepts)
        )
