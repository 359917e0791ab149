from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    """
    Centralized application settings. Pydantic's BaseSettings will automatically
    load these from environment variables or a .env file.
    """
    # --- LLM Models ---
    GENERATION_MODEL: str = Field("gemini-2.5-flash", description="The model used for entity and relationship extraction.")
    FAST_MODEL: str = Field("gemini-2.5-flash-lite", description="The model for fast tasks like query concept extraction.")
    GOOGLE_API_KEY: str = Field("", description="API key for the Gemini models.")

    # --- Graph Storage ---
    GRAPH_BACKEND: Literal["neo4j", "memory"] = Field("neo4j", description="Which graph backend to use.")
    NEO4J_URI: str = Field("", description="Bolt URI of the Neo4j server.")
    NEO4J_USERNAME: str = Field("", description="Username for Neo4j.")
    NEO4J_PASSWORD: str = Field("", description="Password for Neo4j.")
    NEO4J_DATABASE: str = Field("neo4j", description="Name of the Neo4j database.")

    # --- Identity Provider ---
    SUPABASE_URL: str = Field("", description="Base URL of the identity provider used to validate bearer tokens.")
    SUPABASE_ANON_KEY: str = Field("", description="Public API key sent along with user lookups.")
    AUTH_TIMEOUT_SECONDS: float = Field(10.0, description="Timeout for the user lookup request.")

    # --- System Parameters ---
    EXTRACTION_TIMEOUT_SECONDS: float = Field(30.0, description="Deadline for the entity extraction LLM call.")
    GRAPHRAG_CONCEPT_TIMEOUT_SECONDS: float = Field(8.0, description="Deadline for the concept extraction LLM call on the chat path.")
    GRAPHRAG_MAX_HOPS: int = Field(2, ge=0, description="Traversal depth used by GraphRAG queries.")
    ALLOW_SELF_LOOPS: bool = Field(True, description="Whether a relationship may point from an entity to itself.")

    CORS_ORIGINS: List[str] = Field(["http://localhost", "http://localhost:3000"], description="Origins allowed by the API.")
    LOG_LEVEL: str = Field("INFO", description="Level for the structured JSON logs.")

    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

settings = Settings()
