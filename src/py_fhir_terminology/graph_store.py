# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
"""
Persists code systems in Neo4j and serves them back as a terminology backend.

Graph layout:
    (:CodeSystem {url})-[:HAS_CONCEPT]->(:TermConcept {system, ordinal, code, display})
    (:TermConcept)-[:HAS_CHILD]->(:TermConcept)

`ordinal` is the pre-order position of the concept within its code system. It
identifies the node and restores sibling order when the tree is read back.
"""
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from neo4j import Driver
from rich.console import Console
from rich.markup import escape

from .backend import CodeSystemBackedSupport
from .config import settings
from .models import CodeSystem, Concept, Resource

console = Console()

FETCH_CODE_SYSTEM_QUERY = """
MATCH (cs:CodeSystem {url: $url})
OPTIONAL MATCH (cs)-[:HAS_CONCEPT]->(c:TermConcept)
OPTIONAL MATCH (p:TermConcept)-[:HAS_CHILD]->(c)
RETURN c.ordinal AS ordinal, c.code AS code, c.display AS display, p.ordinal AS parent
ORDER BY ordinal
"""


def _flatten_for_storage(code_system: CodeSystem) -> Tuple[List[Dict[str, Any]], List[Dict[str, int]]]:
    """Numbers concepts in pre-order and collects the parent/child links."""
    rows, links = [], []
    stack: List[Tuple[Concept, Optional[int]]] = [(c, None) for c in reversed(code_system.concepts)]
    while stack:
        concept, parent = stack.pop()
        ordinal = len(rows)
        rows.append({"ordinal": ordinal, "code": concept.code, "display": concept.display})
        if parent is not None:
            links.append({"parent": parent, "child": ordinal})
        stack.extend((child, ordinal) for child in reversed(concept.children))
    return rows, links


class Neo4jTerminologyStore(CodeSystemBackedSupport):
    """
    Stores code system hierarchies in Neo4j and reads them back for the engine.
    Reads are independent auto-commit queries, so concurrent use is safe as long
    as the driver is shared the way the Neo4j driver documents.
    """

    def __init__(self, driver: Driver, database: Optional[str] = None):
        self.driver = driver
        self.database = database or settings.neo4j_database

    def _run_query(self, query: str, params: dict = None):
        """Helper to run a query against the configured database."""
        return self.driver.execute_query(query, parameters_=params, database_=self.database)

    def ensure_constraints(self):
        """Creates unique constraints for CodeSystem and TermConcept nodes."""
        console.log("Ensuring database constraints exist...")
        self._run_query("CREATE CONSTRAINT IF NOT EXISTS FOR (cs:CodeSystem) REQUIRE cs.url IS UNIQUE")
        self._run_query(
            "CREATE CONSTRAINT IF NOT EXISTS FOR (c:TermConcept) REQUIRE (c.system, c.ordinal) IS UNIQUE"
        )
        console.log("[green]Constraints are in place.[/green]")

    def store_code_system(self, code_system: CodeSystem):
        """
        Writes a code system, replacing any concepts previously stored under
        the same URI.
        """
        url = code_system.system
        rows, links = _flatten_for_storage(code_system)
        console.log(f"Storing code system {escape(url)} with {len(rows)} concepts...")

        self._run_query(
            """
            MERGE (cs:CodeSystem {url: $url})
            WITH cs
            OPTIONAL MATCH (cs)-[:HAS_CONCEPT]->(old:TermConcept)
            DETACH DELETE old
            """,
            params={"url": url},
        )
        if rows:
            self._run_query(
                """
                MATCH (cs:CodeSystem {url: $url})
                UNWIND $rows AS row
                CREATE (c:TermConcept {system: $url, ordinal: row.ordinal, code: row.code, display: row.display})
                CREATE (cs)-[:HAS_CONCEPT]->(c)
                """,
                params={"url": url, "rows": rows},
            )
        if links:
            self._run_query(
                """
                UNWIND $links AS link
                MATCH (p:TermConcept {system: $url, ordinal: link.parent})
                MATCH (c:TermConcept {system: $url, ordinal: link.child})
                CREATE (p)-[:HAS_CHILD]->(c)
                """,
                params={"url": url, "links": links},
            )
        console.log(f"[green]Stored code system {escape(url)}.[/green]")

    def fetch_code_system(self, system: str) -> Optional[CodeSystem]:
        records, _, _ = self._run_query(FETCH_CODE_SYSTEM_QUERY, params={"url": system})
        if not records:
            return None

        # Pre-order numbering puts every child after its parent, so walking the
        # rows backwards builds each subtree before the concept that owns it.
        children_of = defaultdict(list)
        for record in sorted((r for r in records if r["ordinal"] is not None), key=lambda r: r["ordinal"], reverse=True):
            children = list(reversed(children_of.pop(record["ordinal"], [])))
            concept = Concept(code=record["code"], display=record["display"], children=children)
            children_of[record["parent"]].append(concept)

        return CodeSystem(system=system, concepts=list(reversed(children_of.get(None, []))))

    def fetch_resource(self, resource_type: str, uri: str) -> Optional[Resource]:
        if resource_type == CodeSystem.resource_type:
            return self.fetch_code_system(uri)
        return None
