# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Optional

class Settings(BaseSettings):
    """
    Manages the application's configuration settings.
    Utilizes Pydantic's BaseSettings to allow for environment variable overrides.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="PYFHIRTERMINOLOGY_",
        extra="ignore"
    )

    # --- Backend Selection ---
    backend: Literal["none", "bundle", "remote", "neo4j"] = Field(
        default="none",
        description="Which terminology backend the CLI wires into the worker context."
    )

    # --- Bundled Code Systems ---
    bundle_dir: Optional[str] = Field(
        default=None,
        description="Directory of FHIR JSON CodeSystem/ValueSet resources served by the bundle backend."
    )

    # --- Remote Terminology Server ---
    terminology_server_url: Optional[str] = Field(
        default=None,
        description="Base URL of a FHIR terminology server, e.g. 'https://tx.fhir.org/r4'."
    )
    request_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for each HTTP request sent to the terminology server."
    )

    # --- Engine Behavior ---
    operation_timeout: Optional[float] = Field(
        default=None,
        description="Default timeout in seconds for a whole validation or expansion. None waits indefinitely."
    )
    max_parallel_includes: int = Field(
        default=1,
        ge=1,
        description="Maximum number of compose includes resolved concurrently through the backend."
    )

    # --- Neo4j Database ---
    neo4j_uri: str = Field("neo4j://localhost:7687", description="Neo4j instance URI.")
    neo4j_user: str = Field("neo4j", description="Neo4j username.")
    neo4j_password: str = Field("password", description="Neo4j password.")
    neo4j_database: str = Field("neo4j", description="Neo4j target database name.")


# Instantiate a global settings object to be used throughout the application
settings = Settings()
