"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Onboarding timing lives in YAML (config/onboarding_config.yaml) so the
pacing of the coach can be tuned without touching code.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables (prefixed CADENCE_) take precedence over .env values.
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=PACKAGE_CONFIG_DIR,
        description="Directory containing YAML content and timing files",
    )
    questionnaire_file: str = Field(
        default="questionnaire.yaml", description="Sections, questions and reactions"
    )
    narrative_file: str = Field(
        default="narrative.yaml", description="Scene scripts as rule tables"
    )
    onboarding_config_file: str = Field(
        default="onboarding_config.yaml", description="Timing profile"
    )

    # ==========================================================================
    # Logging
    # ==========================================================================

    logs_dir: Path = Field(default=Path("logs"), description="Directory for log files")
    log_sessions_to_keep: int = Field(
        default=5, ge=1, description="Number of session log files to retain"
    )
    debug: bool = Field(default=False, description="Enable debug mode")


# ============================================================================
# Onboarding Configuration (from YAML)
# ============================================================================


class TimingConfig(BaseModel):
    """Every delay the onboarding flow uses, in milliseconds.

    Character intervals drive the typewriter reveal; the *_advance_ms values
    are the highlight delays between answering and moving on.
    """

    coach_char_ms: int = Field(default=12, ge=0)
    thinking_char_ms: int = Field(default=8, ge=0)
    welcome_char_ms: int = Field(default=18, ge=0)
    initial_delay_ms: int = Field(default=100, ge=0)
    welcome_initial_delay_ms: int = Field(default=1000, ge=0)
    got_it_initial_delay_ms: int = Field(default=500, ge=0)
    default_pause_ms: int = Field(default=400, ge=0)
    thinking_line_pause_ms: int = Field(default=200, ge=0)

    single_select_advance_ms: int = Field(default=400, ge=0)
    multi_select_advance_ms: int = Field(default=300, ge=0)
    text_submit_advance_ms: int = Field(default=300, ge=0)
    reaction_settle_ms: int = Field(default=800, ge=0)

    got_it_continue_ms: int = Field(default=600, ge=0)
    scene_exit_ms: int = Field(default=300, ge=0)
    connect_advance_ms: int = Field(default=1000, ge=0)
    welcome_back_ms: int = Field(default=2000, ge=0)
    # Multiplier for the per-line pauses written into the narrative
    narrative_pause_scale: float = Field(default=1.0, ge=0)

    @classmethod
    def instant(cls) -> "TimingConfig":
        """Timing profile with every delay set to zero."""
        return cls(**{name: 0 for name in cls.model_fields})


class OnboardingConfig(BaseModel):
    """
    Complete onboarding configuration loaded from onboarding_config.yaml.
    """

    timing: TimingConfig = Field(default_factory=TimingConfig)
    fallback_display_name: str = Field(
        default="there",
        min_length=1,
        description="Used in templates when the runner has no name on file",
    )


def load_onboarding_config(config_path: Optional[Path] = None) -> OnboardingConfig:
    """
    Load onboarding configuration from YAML file.

    Args:
        config_path: Path to onboarding_config.yaml. If None, uses the
            configured config_dir.

    Returns:
        OnboardingConfig with validated settings. Defaults are used when the
        file is missing or empty.

    Raises:
        pydantic.ValidationError: If the YAML contents are invalid
    """
    if config_path is None:
        config_path = settings.config_dir / settings.onboarding_config_file

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return OnboardingConfig()

    with open(config_path, encoding="utf-8") as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return OnboardingConfig()

    return OnboardingConfig(**config_data)


# Global settings instance
settings = Settings()

# Global onboarding config instance
onboarding_config = load_onboarding_config()
