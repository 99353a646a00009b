"""Configuration module for the Hive ledger core."""

import os
from typing import List
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Application settings with environment variable support."""

    # Node RPC Configuration
    hive_nodes: List[str] = Field(default_factory=lambda: [
        "https://api.hive.blog",
        "https://api.deathwing.me",
        "https://api.openhive.network",
        "https://hive-api.arcange.eu",
    ])
    rpc_timeout: float = Field(default=10.0)
    max_retries: int = Field(default=3)

    # Platform Configuration
    app_name: str = Field(default="sportsblock")
    app_version: str = Field(default="1.0.0")
    community_id: str = Field(default="hive-115814")
    community_tags: List[str] = Field(default_factory=lambda: ["sportsblock", "hive-115814"])
    platform_beneficiary: str = Field(default="sportsblock")
    platform_beneficiary_weight: int = Field(default=500)  # 5%
    muted_authors: List[str] = Field(default_factory=list)
    post_url_base: str = Field(default="https://hive.blog")

    # Resource budget Configuration
    min_rc_percentage: float = Field(default=10.0)
    manabar_regeneration_seconds: int = Field(default=432000)  # 5 days
    min_voting_power: float = Field(default=1.0)
    edit_window_days: int = Field(default=7)

    # Confirmation Configuration
    confirmation_timeout: float = Field(default=60.0)
    confirmation_poll_interval: float = Field(default=3.0)

    # HiveSigner Configuration
    hivesigner_api_url: str = Field(default="https://hivesigner.com/api/broadcast")
    hivesigner_vote_url: str = Field(default="https://hivesigner.com/sign/vote")

    # Block stream Configuration
    block_poll_interval: float = Field(default=3.0)
    history_blocks: int = Field(default=100)
    process_history: bool = Field(default=False)

    # NATS Configuration
    nats_url: str = Field(default="nats://nats.nats.svc.cluster.local:4222")
    nats_stream: str = Field(default="hive-events")
    nats_subject: str = Field(default="hive.events")
    nats_kv_bucket: str = Field(default="hive-ledger-state")
    num_stream_replicas: int = Field(default=1)
    service_name: str = Field(default="hive-ledger-monitor")
    cursor_save_interval: int = Field(default=20)

    # Health Check Configuration
    health_check_port: int = Field(default=8080)
    metrics_enabled: bool = Field(default=True)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    def __init__(self, **kwargs):
        # Load from environment variables
        env_values = {}

        # Map environment variables to settings
        env_mapping = {
            "HIVE_NODES": "hive_nodes",
            "RPC_TIMEOUT": "rpc_timeout",
            "MAX_RETRIES": "max_retries",
            "APP_NAME": "app_name",
            "APP_VERSION": "app_version",
            "COMMUNITY_ID": "community_id",
            "COMMUNITY_TAGS": "community_tags",
            "PLATFORM_BENEFICIARY": "platform_beneficiary",
            "PLATFORM_BENEFICIARY_WEIGHT": "platform_beneficiary_weight",
            "MUTED_AUTHORS": "muted_authors",
            "POST_URL_BASE": "post_url_base",
            "MIN_RC_PERCENTAGE": "min_rc_percentage",
            "MIN_VOTING_POWER": "min_voting_power",
            "EDIT_WINDOW_DAYS": "edit_window_days",
            "CONFIRMATION_TIMEOUT": "confirmation_timeout",
            "CONFIRMATION_POLL_INTERVAL": "confirmation_poll_interval",
            "HIVESIGNER_API_URL": "hivesigner_api_url",
            "HIVESIGNER_VOTE_URL": "hivesigner_vote_url",
            "BLOCK_POLL_INTERVAL": "block_poll_interval",
            "HISTORY_BLOCKS": "history_blocks",
            "PROCESS_HISTORY": "process_history",
            "NATS_URL": "nats_url",
            "NATS_STREAM": "nats_stream",
            "NATS_SUBJECT": "nats_subject",
            "NATS_KV_BUCKET": "nats_kv_bucket",
            "NUM_STREAM_REPLICAS": "num_stream_replicas",
            "SERVICE_NAME": "service_name",
            "CURSOR_SAVE_INTERVAL": "cursor_save_interval",
            "HEALTH_CHECK_PORT": "health_check_port",
            "METRICS_ENABLED": "metrics_enabled",
            "LOG_LEVEL": "log_level",
            "LOG_FORMAT": "log_format",
        }

        for env_var, field_name in env_mapping.items():
            if env_var in os.environ:
                value = os.environ[env_var]

                # Convert types
                if field_name in ["max_retries", "platform_beneficiary_weight", "edit_window_days",
                                  "history_blocks", "num_stream_replicas", "cursor_save_interval",
                                  "health_check_port"]:
                    try:
                        value = int(value)
                    except ValueError:
                        pass
                elif field_name in ["rpc_timeout", "min_rc_percentage", "min_voting_power",
                                    "confirmation_timeout", "confirmation_poll_interval",
                                    "block_poll_interval"]:
                    try:
                        value = float(value)
                    except ValueError:
                        pass
                elif field_name in ["hive_nodes", "community_tags", "muted_authors"]:
                    value = [item.strip() for item in value.split(",") if item.strip()]
                elif field_name in ["metrics_enabled", "process_history"]:
                    value = value.lower() in ("true", "1", "yes", "on")

                env_values[field_name] = value

        # Merge kwargs with env values (kwargs take precedence)
        final_values = {**env_values, **kwargs}
        super().__init__(**final_values)

    @property
    def app_tag(self) -> str:
        return f"{self.app_name}/{self.app_version}"


# Global settings instance
settings = Settings()
