# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from typing import Any, Dict, Optional

import requests
from rich.console import Console
from rich.markup import escape

from .config import settings
from .models import RESOURCE_TYPES, CodeSystem, ExpansionOutcome, Resource, ValidationResult, ValueSetComposeInclude
from .parser import (
    operation_outcome_message,
    parse_bundle_resources,
    parse_expansion_contains,
    parse_validate_code_parameters,
)

console = Console()

FHIR_JSON = "application/fhir+json"


class RemoteTerminologyBackend:
    """
    Answers terminology questions by calling a FHIR terminology server.

    A 404 from the server means "absent". Other HTTP failures are raised from
    fetches and validation, and reported as failed outcomes from expansion.
    Retries are left to the session's transport adapters.
    """

    def __init__(self, base_url: str, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": FHIR_JSON})

    def _get(self, path: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """GETs a JSON document, returning None when the server answers 404."""
        response = self.session.get(f"{self.base_url}/{path}", params=params, timeout=self.timeout)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def _search_first(self, resource_type: str, uri: str) -> Optional[Resource]:
        if resource_type not in RESOURCE_TYPES:
            return None
        bundle = self._get(resource_type, {"url": uri})
        if not bundle:
            return None
        for resource in parse_bundle_resources(bundle):
            if resource.resource_type == resource_type:
                return resource
        return None

    def fetch_code_system(self, system: str) -> Optional[CodeSystem]:
        return self._search_first(CodeSystem.resource_type, system)

    def fetch_resource(self, resource_type: str, uri: str) -> Optional[Resource]:
        return self._search_first(resource_type, uri)

    def is_system_supported(self, system: str) -> bool:
        bundle = self._get(CodeSystem.resource_type, {"url": system, "_summary": "count"})
        return bool(bundle) and bundle.get("total", 0) > 0

    def validate_code_directly(
        self, system: Optional[str], code: str, display: Optional[str]
    ) -> Optional[ValidationResult]:
        if system is None:
            return None
        params = {"url": system, "code": code}
        if display is not None:
            params["display"] = display
        parameters = self._get("CodeSystem/$validate-code", params)
        if parameters is None:
            return None
        return parse_validate_code_parameters(parameters, code)

    def expand_include(self, include: ValueSetComposeInclude) -> ExpansionOutcome:
        include_json: Dict[str, Any] = {}
        if include.system is not None:
            include_json["system"] = include.system
        if include.concepts:
            include_json["concept"] = [
                {k: v for k, v in (("code", ref.code), ("display", ref.display)) if v is not None}
                for ref in include.concepts
            ]
        body = {
            "resourceType": "Parameters",
            "parameter": [{
                "name": "valueSet",
                "resource": {"resourceType": "ValueSet", "status": "active", "compose": {"include": [include_json]}},
            }],
        }

        console.log(f"Expanding include for system {escape(str(include.system))} via {escape(self.base_url)}...")
        response = self.session.post(
            f"{self.base_url}/ValueSet/$expand",
            json=body,
            headers={"Content-Type": FHIR_JSON},
            timeout=self.timeout,
        )
        if not response.ok:
            try:
                message = operation_outcome_message(response.json())
            except ValueError:
                message = None
            return ExpansionOutcome.failure(
                message or f"Terminology server returned HTTP {response.status_code} expanding system[{include.system}]"
            )
        return ExpansionOutcome.success(parse_expansion_contains(response.json()))
