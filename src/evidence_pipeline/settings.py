"""Application settings via Pydantic BaseSettings.

All configuration uses the EP_ environment variable prefix.
Centralized here to prevent hardcoded key names and defaults across the
codebase.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

from evidence_pipeline.domain.models import Verdict


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = {"env_prefix": "EP_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None

    # Document key prefixes
    evidence_key_prefix: str = "ev:"
    entity_key_prefix: str = "ent:"

    # RediSearch index name
    evidence_index: str = "idx:evidence"

    # Ingestion stream: one entry per newly captured record
    ingest_stream: str = "evidence:ingested"

    # Downstream processing queues (streams)
    translation_stream: str = "queue:translation"
    aggregation_stream: str = "queue:aggregation"
    ocr_stream: str = "queue:ocr"
    intelligence_stream: str = "queue:intelligence"

    # Consumer group reading the ingestion stream
    group_dispatch: str = "dispatch"

    # Consumer identity within the group; unique per worker process
    dispatch_consumer_name: str = "dispatch-1"

    # Consumer group block timeout (ms)
    block_timeout_ms: int = 5000

    # Approximate max length of each queue stream (XADD MAXLEN ~)
    queue_maxlen: int = 1_000_000


class FilterSettings(BaseSettings):
    """Criteria compilation defaults."""

    model_config = {"env_prefix": "EP_FILTER_"}

    # Lower bound used when criteria carry no "from" key; empty disables it
    default_window: str = "24h"

    # Address-like prefixes stripped from free text before tokenizing
    structural_prefixes: frozenset[str] = frozenset({"to", "from", "cc", "bcc", "subject"})


class PolicySettings(BaseSettings):
    """Connector policy settings."""

    model_config = {"env_prefix": "EP_POLICY_"}

    # JSON document holding the connector rule list
    rules_key: str = "connectors:rules"

    # Verdict when no rule matches
    default_verdict: Verdict = Verdict.KEEP


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "EP_"}

    app_name: str = "evidence-pipeline"
    debug: bool = False
    log_level: str = "INFO"

    redis: RedisSettings = Field(default_factory=RedisSettings)
    filter: FilterSettings = Field(default_factory=FilterSettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)
