"""
Workflow Engine Configuration

Environment-based settings for layout spacing, autosave timing and the
storage API used by the HTTP repository.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkflowSettings(BaseSettings):
    """Workflow engine configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="WORKFLOW_", extra="ignore")

    # Autosave
    autosave_debounce_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Quiet period after the last change before an autosave fires",
    )
    save_echo_suppression_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Window after a successful save during which layout replacements do not dirty the store",
    )

    # Layout
    rank_separation: float = Field(
        default=160, ge=0, description="Vertical gap between adjacent ranks"
    )
    node_separation: float = Field(
        default=400, ge=0, description="Horizontal gap between nodes of one rank"
    )
    margin_x: float = Field(default=40, ge=0, description="Horizontal layout margin")
    margin_y: float = Field(default=40, ge=0, description="Vertical layout margin")
    content_node_width: float = Field(
        default=280, gt=0, description="Width of default, end and jump nodes"
    )
    branch_node_width: float = Field(
        default=80, gt=0, description="Width of branch nodes"
    )
    crossing_passes: int = Field(
        default=24,
        ge=0,
        le=100,
        description="Maximum barycenter sweeps during crossing minimisation",
    )

    # Stored record defaults
    default_position_x: float = Field(default=250, description="Canvas origin x for new records")
    default_position_y: float = Field(default=25, description="Canvas origin y for new records")

    # Storage API
    api_base_url: str = Field(
        default="http://localhost:8001/api",
        description="Base URL of the workflow storage API",
    )
    api_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for storage API requests"
    )


# Global settings instance
workflow_settings = WorkflowSettings()
