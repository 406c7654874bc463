# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Exceptions raised by the terminology engine.

Ordinary mismatches are never exceptions; they come back as ERROR
ValidationResults or failed ExpansionOutcomes. The classes here are reserved
for conditions a caller cannot treat as a normal answer.
"""


class TerminologyError(Exception):
    """Base class for all terminology engine errors."""


class UnsupportedOperationError(TerminologyError, NotImplementedError):
    """Raised by capabilities the worker context deliberately does not provide."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation '{operation}' is not supported by this worker context.")


class TerminologyBackendError(TerminologyError):
    """Wraps an unexpected failure raised inside a terminology backend."""


class TerminologyTimeoutError(TerminologyError):
    """Raised when a validation or expansion does not finish within its timeout."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"Operation '{operation}' did not complete within {timeout} seconds.")


class OperationCancelledError(TerminologyError):
    """Raised inside an abandoned operation to stop it before its next backend call."""
