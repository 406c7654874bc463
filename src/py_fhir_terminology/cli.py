# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

# We wrap the settings import in a try-except block to provide a nicer
# error message if the environment holds invalid values.
try:
    from .config import settings
except Exception as e:
    console = Console()
    console.print(Panel(
        f"[bold red]Configuration Error:[/bold red]\n{escape(str(e))}\n\nPlease check your .env file and the [bold cyan]PYFHIRTERMINOLOGY_*[/bold cyan] environment variables.",
        title="[bold red]Initialization Failed[/bold red]",
        border_style="red"
    ))
    exit(1)

from neo4j import GraphDatabase

from .bundle import BundledTerminologyBackend
from .graph_store import Neo4jTerminologyStore
from .models import CodeableConcept, CodeSystem, ValidationResult, ValidationStatus, ValueSet
from .parser import load_resource_file, parse_coding_string
from .remote import RemoteTerminologyBackend
from .worker_context import WorkerContext


app = typer.Typer(
    name="py-fhir-terminology",
    help="Validate codes against FHIR code systems and value sets, and expand value sets."
)
console = Console()


@contextmanager
def open_worker_context() -> Iterator[WorkerContext]:
    """
    Builds a WorkerContext around the backend selected in the settings and
    releases any connection it holds afterwards.
    """
    driver = None
    try:
        if settings.backend == "bundle":
            if not settings.bundle_dir:
                raise ValueError("PYFHIRTERMINOLOGY_BUNDLE_DIR must be set to use the bundle backend.")
            backend = BundledTerminologyBackend.from_directory(Path(settings.bundle_dir))
        elif settings.backend == "remote":
            if not settings.terminology_server_url:
                raise ValueError("PYFHIRTERMINOLOGY_TERMINOLOGY_SERVER_URL must be set to use the remote backend.")
            backend = RemoteTerminologyBackend(settings.terminology_server_url)
        elif settings.backend == "neo4j":
            driver = GraphDatabase.driver(settings.neo4j_uri, auth=(settings.neo4j_user, settings.neo4j_password))
            backend = Neo4jTerminologyStore(driver)
        else:
            backend = None
        yield WorkerContext(backend)
    finally:
        if driver:
            driver.close()


def _resolve_value_set(reference: str, context: WorkerContext) -> ValueSet:
    """Reads a value set from a JSON file, or fetches it by canonical URL."""
    path = Path(reference)
    if path.exists():
        resource = load_resource_file(path)
    else:
        resource = context.fetch_resource(ValueSet.resource_type, reference)
        if resource is None:
            raise ValueError(f"Value set '{reference}' is neither a file nor known to the terminology backend.")
    if not isinstance(resource, ValueSet):
        raise ValueError(f"'{reference}' is a {resource.resource_type}, not a ValueSet.")
    return resource


def _print_result(result: ValidationResult):
    if result.status is ValidationStatus.OK:
        display = f" ({escape(result.concept.display)})" if result.concept.display else ""
        console.print(Panel(
            f"[bold green]Valid code: {escape(result.concept.code)}{display}[/bold green]",
            title="[bold green]OK[/bold green]"
        ))
    elif result.status is ValidationStatus.ERROR:
        console.print(Panel(
            f"[bold red]{escape(result.message)}[/bold red]",
            title=f"[bold red]{result.severity.value.upper()}[/bold red]"
        ))
    else:
        console.print(Panel(
            "[bold yellow]None of the codings matched the value set.[/bold yellow]",
            title="[bold yellow]UNKNOWN[/bold yellow]"
        ))


def _fail(message: str):
    console.print(Panel(f"[bold red]{escape(message)}", title="[bold red]Error[/bold red]"))
    raise typer.Exit(code=1)


@app.command(name="validate-code", help="Validate a single code, optionally against a value set.")
def validate_code(
    system: Optional[str] = typer.Option(None, "--system", "-s", help="Code system URI of the code."),
    code: str = typer.Option(..., "--code", "-c", help="The code to validate."),
    display: Optional[str] = typer.Option(None, "--display", "-d", help="Display text; informational only."),
    value_set: Optional[str] = typer.Option(
        None,
        "--value-set",
        "-V",
        help="Path to a ValueSet JSON file, or the canonical URL of a value set known to the backend."
    )
):
    """
    Without a value set the code is checked directly by the terminology
    backend; with one, it is checked against the value set's rules.
    """
    try:
        with open_worker_context() as context:
            if value_set is None:
                result = context.validate_code(system, code, display)
            else:
                vs = _resolve_value_set(value_set, context)
                result = context.validate_code_against_value_set(system, code, display, vs)
    except Exception as e:
        console.print_exception()
        _fail(f"Validation could not be performed: {e}")

    _print_result(result)
    if not result.is_ok:
        raise typer.Exit(code=1)


@app.command(name="validate-concept", help="Validate a CodeableConcept made of one or more codings.")
def validate_concept(
    value_set: str = typer.Option(..., "--value-set", "-V", help="ValueSet JSON file or canonical URL."),
    codings: List[str] = typer.Option(
        ...,
        "--coding",
        help="A coding as 'system|code|display'. Repeat the option for each coding."
    )
):
    try:
        concept = CodeableConcept(codings=[parse_coding_string(value) for value in codings])
        with open_worker_context() as context:
            vs = _resolve_value_set(value_set, context)
            result = context.validate_codeable_concept(concept, vs)
    except Exception as e:
        console.print_exception()
        _fail(f"Validation could not be performed: {e}")

    _print_result(result)
    if not result.is_ok:
        raise typer.Exit(code=1)


@app.command(name="expand", help="Expand a value set into its flat list of concepts.")
def expand(
    value_set: str = typer.Option(..., "--value-set", "-V", help="ValueSet JSON file or canonical URL."),
    as_json: bool = typer.Option(False, "--json", help="Print the expansion as JSON instead of a table.")
):
    try:
        with open_worker_context() as context:
            vs = _resolve_value_set(value_set, context)
            outcome = context.expand(vs)
    except Exception as e:
        console.print_exception()
        _fail(f"Expansion could not be performed: {e}")

    if outcome.is_error:
        _fail(f"Expansion failed: {outcome.error}")

    if as_json:
        console.print_json(data=[entry.model_dump() for entry in outcome.contains])
        return

    table = Table(title=f"Expansion of {escape(vs.url or vs.name or value_set)}")
    table.add_column("System", style="cyan")
    table.add_column("Code", style="bold")
    table.add_column("Display")
    for entry in outcome.contains:
        table.add_row(escape(entry.system or ""), escape(entry.code), escape(entry.display or ""))
    console.print(table)
    console.print(f"[green]{len(outcome.contains)} concepts.[/green]")


@app.command(name="store-code-system", help="Load a CodeSystem JSON file into the Neo4j graph store.")
def store_code_system(
    path: Path = typer.Option(..., "--file", "-f", exists=True, dir_okay=False, help="CodeSystem JSON file.")
):
    """
    Writes the code system into Neo4j so the `neo4j` backend can serve it,
    replacing any earlier copy stored under the same URI.
    """
    driver = None
    try:
        resource = load_resource_file(path)
        if not isinstance(resource, CodeSystem):
            raise ValueError(f"{path} holds a {resource.resource_type}, not a CodeSystem.")
        driver = GraphDatabase.driver(settings.neo4j_uri, auth=(settings.neo4j_user, settings.neo4j_password))
        store = Neo4jTerminologyStore(driver)
        store.ensure_constraints()
        store.store_code_system(resource)
    except Exception as e:
        console.print_exception()
        _fail(f"Failed to store code system: {e}")
    finally:
        if driver:
            driver.close()

    console.print(Panel(
        f"[bold green]Stored code system {escape(resource.system)}.[/bold green]",
        title="[bold green]Code System Stored[/bold green]"
    ))


if __name__ == "__main__":
    app()
