# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from pathlib import Path
from typing import Dict, Iterable, Optional

from rich.console import Console
from rich.markup import escape

from .backend import CodeSystemBackedSupport
from .models import CodeSystem, Resource, ValueSet
from .parser import load_resource_file

console = Console()


class BundledTerminologyBackend(CodeSystemBackedSupport):
    """
    Serves a fixed set of code systems and value sets held in memory.
    The contents are loaded once and never change afterwards, so concurrent
    reads are safe.
    """

    def __init__(self, code_systems: Iterable[CodeSystem] = (), value_sets: Iterable[ValueSet] = ()):
        self._code_systems: Dict[str, CodeSystem] = {}
        self._value_sets: Dict[str, ValueSet] = {}
        for code_system in code_systems:
            self._code_systems[code_system.system] = code_system
        for value_set in value_sets:
            if value_set.url:
                self._value_sets[value_set.url] = value_set
            # A value set declaring its own codes also publishes that code system.
            inline = value_set.identified_code_system
            if inline is not None and inline.system not in self._code_systems:
                self._code_systems[inline.system] = inline

    @classmethod
    def from_directory(cls, directory: Path) -> "BundledTerminologyBackend":
        """Loads every `*.json` CodeSystem and ValueSet resource found in `directory`."""
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"Bundle directory not found at {directory}")

        console.log(f"Loading bundled terminology from {escape(str(directory))}...")
        code_systems, value_sets = [], []
        for path in sorted(directory.glob("*.json")):
            resource = load_resource_file(path)
            if isinstance(resource, CodeSystem):
                code_systems.append(resource)
            else:
                value_sets.append(resource)
        console.log(f"Loaded {len(code_systems)} code systems and {len(value_sets)} value sets.")
        return cls(code_systems, value_sets)

    def fetch_code_system(self, system: str) -> Optional[CodeSystem]:
        return self._code_systems.get(system)

    def fetch_resource(self, resource_type: str, uri: str) -> Optional[Resource]:
        if resource_type == CodeSystem.resource_type:
            return self._code_systems.get(uri)
        if resource_type == ValueSet.resource_type:
            return self._value_sets.get(uri)
        return None
