# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from enum import Enum
from typing import ClassVar, Iterable, Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Concept(BaseModel):
    """
    A single concept definition inside a code system.
    Concepts form trees: `children` holds the sub-concepts in declaration order.
    """
    model_config = ConfigDict(frozen=True)

    code: str
    display: Optional[str] = None
    children: List["Concept"] = Field(default_factory=list)


class CodeSystem(BaseModel):
    """
    A code system identified by its URI, owning a forest of top-level concepts.
    """
    model_config = ConfigDict(frozen=True)
    resource_type: ClassVar[str] = "CodeSystem"

    system: str
    concepts: List[Concept] = Field(default_factory=list)


class ConceptReference(BaseModel):
    """An explicitly enumerated code inside a compose include."""
    model_config = ConfigDict(frozen=True)

    code: str
    display: Optional[str] = None


class ValueSetComposeInclude(BaseModel):
    """
    One include rule of a value set compose.
    A None system means the rule is not bound to a specific code system.
    """
    model_config = ConfigDict(frozen=True)

    system: Optional[str] = None
    concepts: List[ConceptReference] = Field(default_factory=list)


class ValueSet(BaseModel):
    """
    A value set, defined by an optional inline code system and an ordered
    list of compose include rules.
    """
    model_config = ConfigDict(frozen=True)
    resource_type: ClassVar[str] = "ValueSet"

    url: Optional[str] = None
    name: Optional[str] = None
    identified_code_system: Optional[CodeSystem] = None
    compose_includes: List[ValueSetComposeInclude] = Field(default_factory=list)


Resource = Union[CodeSystem, ValueSet]

# Resource types the engine knows how to fetch and reason about.
RESOURCE_TYPES = {
    CodeSystem.resource_type: CodeSystem,
    ValueSet.resource_type: ValueSet,
}


class Coding(BaseModel):
    model_config = ConfigDict(frozen=True)

    system: Optional[str] = None
    code: str
    display: Optional[str] = None


class CodeableConcept(BaseModel):
    """A set of alternative codings representing the same concept."""
    model_config = ConfigDict(frozen=True)

    codings: List[Coding] = Field(default_factory=list)
    text: Optional[str] = None


class IssueSeverity(str, Enum):
    INFORMATION = "information"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class ValidationStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    UNKNOWN = "unknown"


class ValidationResult(BaseModel):
    """
    Outcome of validating a code.

    OK results carry the matched concept, ERROR results carry a severity and
    a message, and UNKNOWN results carry neither. Use the `ok`, `error` and
    `unknown` constructors rather than building instances by hand.
    """
    model_config = ConfigDict(frozen=True)

    status: ValidationStatus
    severity: Optional[IssueSeverity] = None
    message: Optional[str] = None
    concept: Optional[Concept] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "ValidationResult":
        if self.status is ValidationStatus.OK:
            if self.concept is None or self.message is not None or self.severity is not None:
                raise ValueError("An OK result must carry a concept and nothing else.")
        elif self.status is ValidationStatus.ERROR:
            if self.concept is not None or self.message is None or self.severity is None:
                raise ValueError("An ERROR result must carry a severity and a message but no concept.")
        elif any(value is not None for value in (self.concept, self.message, self.severity)):
            raise ValueError("An UNKNOWN result carries neither a concept nor a message.")
        return self

    @classmethod
    def ok(cls, concept: Concept) -> "ValidationResult":
        return cls(status=ValidationStatus.OK, concept=concept)

    @classmethod
    def error(cls, message: str, severity: IssueSeverity = IssueSeverity.ERROR) -> "ValidationResult":
        return cls(status=ValidationStatus.ERROR, severity=severity, message=message)

    @classmethod
    def unknown(cls) -> "ValidationResult":
        return cls(status=ValidationStatus.UNKNOWN)

    @property
    def is_ok(self) -> bool:
        return self.status is ValidationStatus.OK


class ExpansionContains(BaseModel):
    """A single entry of an expanded value set."""
    model_config = ConfigDict(frozen=True)

    system: Optional[str] = None
    code: str
    display: Optional[str] = None


class ExpansionOutcome(BaseModel):
    """
    Result of an expansion: either a flat list of concepts or an error.
    The two are mutually exclusive.
    """
    model_config = ConfigDict(frozen=True)

    contains: List[ExpansionContains] = Field(default_factory=list)
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_exclusive(self) -> "ExpansionOutcome":
        if self.error is not None and self.contains:
            raise ValueError("A failed expansion must not carry a partial concept list.")
        return self

    @classmethod
    def success(cls, contains: Iterable[ExpansionContains]) -> "ExpansionOutcome":
        return cls(contains=list(contains))

    @classmethod
    def failure(cls, error: str) -> "ExpansionOutcome":
        return cls(error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None


def iter_concepts(concepts: Iterable[Concept]) -> Iterator[Concept]:
    """
    Yields every concept of a forest in depth-first pre-order.
    Uses an explicit stack so deep hierarchies do not grow the call stack.
    """
    stack = list(reversed(list(concepts)))
    while stack:
        concept = stack.pop()
        yield concept
        stack.extend(reversed(concept.children))
