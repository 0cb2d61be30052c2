"""
Custom exception hierarchy for the onboarding engine.

All application exceptions inherit from OnboardingError.
"""


class OnboardingError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(OnboardingError):
    """Invalid or missing questionnaire, narrative or timing configuration."""

    pass


class ConditionError(ConfigurationError):
    """Malformed visibility condition, or one that references a question
    outside its section or later in the section."""

    pass


class RuleTableError(ConfigurationError):
    """Rule table without a final fallback, or a block that can render empty."""

    pass


class EmptySectionError(ConfigurationError):
    """Section has no question that is visible unconditionally."""

    pass


# =============================================================================
# Flow Errors
# =============================================================================


class FlowError(OnboardingError):
    """Operation not legal in the current flow state."""

    pass


class InvalidTransitionError(FlowError):
    """Requested phase or scene transition is not allowed."""

    pass


class ResponsesFrozenError(FlowError):
    """Attempted to mutate responses after they were handed off."""

    pass


class ResumeError(FlowError):
    """Onboarding cannot resume from the given state."""

    pass


# =============================================================================
# Input Errors
# =============================================================================


class InputValidationError(OnboardingError):
    """Answer rejected before reaching the response map."""

    pass


# =============================================================================
# External Effect Errors
# =============================================================================


class ExternalEffectError(OnboardingError):
    """Base for failures of host-provided capabilities."""

    pass


class DeviceConnectionError(ExternalEffectError):
    """Wearable connection attempt failed."""

    pass


class NameSubmissionError(ExternalEffectError):
    """Display name could not be saved."""

    pass


class ResponseSubmissionError(ExternalEffectError):
    """Collected responses could not be persisted."""

    pass
