"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="escalation-desk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/escalations",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Policy ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA policy YAML file"
    )
    sla_refresh_interval: int = Field(
        default=300,
        description="Seconds between SLA breach refreshes",
        ge=10
    )

    # ========== Auto-Resolution Sweeps ==========
    sweeps_enabled: bool = Field(default=True, description="Run sweeps on the internal scheduler")
    sweep_cron_hours: str = Field(
        default="6,18",
        description="Cron hour expression (UTC) for the twice-daily sweeps"
    )
    auto_resolve_reference: Literal["submitted_at", "user_dependency_started_at"] = Field(
        default="submitted_at",
        description="Timestamp the dependency age is measured from"
    )
    sweep_trigger_secret: Optional[str] = Field(
        default=None,
        description="Bearer secret required by the manual sweep endpoints"
    )

    # ========== Activity Log ==========
    activity_dedup_seconds: float = Field(
        default=2.0,
        description="Max timestamp distance for two stream entries to be one event",
        gt=0
    )
    activity_bulk_window_seconds: float = Field(
        default=300.0,
        description="Window around an anchor event for bulk grouping",
        gt=0
    )
    activity_feed_limit: int = Field(
        default=500,
        description="Rows read from each event stream for the feed",
        ge=1,
        le=5000
    )

    # ========== Tickets ==========
    ticket_number_prefix: str = Field(default="AWGN", description="Ticket number prefix")
    tracking_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL for public ticket tracking links"
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving ticket notifications (email/SMS/WhatsApp relay)"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def sweep_hours(self) -> List[int]:
        """Parsed cron hours for the sweep schedule."""
        return sorted({int(h) for h in self.sweep_cron_hours.split(",") if h.strip()})


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    OPS_INPUT_REQUIRED = "ops_input_required"
    USER_DEPENDENCY = "user_dependency"
    OPS_USER_DEPENDENCY = "ops_user_dependency"
    SEND_FOR_APPROVAL = "send_for_approval"
    APPROVED = "approved"
    RESOLVED = "resolved"


class Severity(str, Enum):
    """Urgency tiers driving the SLA target."""
    SEV1 = "sev1"
    SEV2 = "sev2"
    SEV3 = "sev3"


class IssueCategory(str, Enum):
    """Issue categories reported by invigilators."""
    PAYMENT_DELAY = "payment_delay"
    PARTIAL_PAYMENT = "partial_payment"
    BEHAVIORAL_COMPLAINT = "behavioral_complaint"
    IMPROVEMENT_REQUEST = "improvement_request"
    FACILITY_ISSUE = "facility_issue"
    PENALTY_ISSUE = "penalty_issue"
    MALPRACTICE = "malpractice"
    APP_ISSUE = "app_issue"
    OTHER = "other"


class AssigneeRole(str, Enum):
    """Role tag on a ticket assignment."""
    RESOLVER = "resolver"
    APPROVER = "approver"


class ActorRole(str, Enum):
    """Roles that can act on tickets."""
    INVIGILATOR = "invigilator"
    RESOLVER = "resolver"
    APPROVER = "approver"
    TICKET_ADMIN = "ticket_admin"
    SUPER_ADMIN = "super_admin"
    SYSTEM = "system"


class EventAction(str, Enum):
    """Action types written to the event store."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    REOPENED = "reopened"
    RESOLVED = "resolved"
    SLA_BREACHED = "sla_breached"
    DELETED = "deleted"


class SweepType(str, Enum):
    """Kinds of auto-resolution sweeps."""
    AUTO_RESOLVE = "auto_resolve"
    CLEANUP = "cleanup"


SYSTEM_ACTOR = "system"
