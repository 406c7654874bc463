# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

from rich.console import Console
from rich.markup import escape

from .backend import TerminologyBackend
from .models import (
    ExpansionContains,
    ExpansionOutcome,
    ValueSet,
    ValueSetComposeInclude,
    iter_concepts,
)

console = Console()


class ValueSetExpander:
    """
    Expands a value set into a flat, deduplicated list of concepts.

    Expansion is all-or-nothing: if the backend fails on any include, the
    whole expansion fails and no partial list is returned.
    """

    def __init__(self, backend: TerminologyBackend, max_workers: Optional[int] = None):
        self.backend = backend
        self.max_workers = max_workers or 1

    def _expand_include(
        self, include: ValueSetComposeInclude, cancel_event: Optional[threading.Event] = None
    ) -> ExpansionOutcome:
        """
        Resolves one include through the backend. Exceptions and absent answers
        become failures, and nothing is asked once `cancel_event` is set.
        """
        if cancel_event is not None and cancel_event.is_set():
            return ExpansionOutcome.failure(f"Expansion cancelled before resolving system[{include.system}]")
        try:
            outcome = self.backend.expand_include(include)
        except Exception as e:
            return ExpansionOutcome.failure(f"Error expanding include for system[{include.system}]: {e}")
        if outcome is None:
            return ExpansionOutcome.failure(f"No expansion available for system[{include.system}]")
        return outcome

    def _resolve_includes(
        self, includes: List[ValueSetComposeInclude], cancel_event: Optional[threading.Event] = None
    ) -> List[ExpansionOutcome]:
        """
        Resolves the given includes through the backend. Results always come
        back in declaration order, whether or not they are resolved in parallel.
        """
        if self.max_workers <= 1 or len(includes) <= 1:
            outcomes = []
            for include in includes:
                outcome = self._expand_include(include, cancel_event)
                outcomes.append(outcome)
                # Sequential resolution can stop at the first failure.
                if outcome.is_error:
                    break
            return outcomes

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._expand_include, include, cancel_event) for include in includes]
            return [future.result() for future in futures]

    def expand(self, value_set: ValueSet, cancel_event: Optional[threading.Event] = None) -> ExpansionOutcome:
        """
        Expands `value_set`. Setting `cancel_event` from another thread stops
        the expansion before its next backend call, failing it as a whole.
        """
        entries: List[ExpansionContains] = []

        # Step 1: The inline code system, every concept of the tree
        inline = value_set.identified_code_system
        if inline is not None:
            entries.extend(
                ExpansionContains(system=inline.system, code=concept.code, display=concept.display)
                for concept in iter_concepts(inline.concepts)
            )

        # Step 2: Includes, either enumerated or resolved by the backend
        unresolved = [include for include in value_set.compose_includes if not include.concepts]
        outcomes = self._resolve_includes(unresolved, cancel_event)
        for outcome in outcomes:
            if outcome.is_error:
                console.log(f"[red]Expansion of value set {escape(str(value_set.url))} failed: {escape(outcome.error)}[/red]")
                return ExpansionOutcome.failure(outcome.error)

        resolved = iter(outcomes)
        for include in value_set.compose_includes:
            if include.concepts:
                entries.extend(
                    ExpansionContains(system=include.system, code=ref.code, display=ref.display)
                    for ref in include.concepts
                )
            else:
                entries.extend(next(resolved).contains)

        # Step 3: Deduplicate by (system, code), first occurrence wins
        seen = set()
        unique: List[ExpansionContains] = []
        for entry in entries:
            key: Tuple[Optional[str], str] = (entry.system, entry.code)
            if key in seen:
                continue
            seen.add(key)
            unique.append(entry)

        return ExpansionOutcome.success(unique)
