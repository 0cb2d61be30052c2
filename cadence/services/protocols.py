"""
Host capability protocols (interfaces).

The onboarding engine never talks to a network or a database itself. The
host app injects objects satisfying these protocols and the orchestrator
awaits them as opaque effects.
"""

from typing import Dict, List, Optional, Protocol, Union

from cadence.domain.models.scene import ConnectionResult


class IDeviceConnector(Protocol):
    """
    Protocol for wearable connections.

    Defines the interface for linking a wearable or training platform.
    """

    async def connect(self, provider_id: str) -> Optional[ConnectionResult]:
        """
        Connect a provider account.

        Args:
            provider_id: Provider identifier (e.g. "strava", "garmin")

        Returns:
            ConnectionResult on success, None if the runner cancelled or the
            provider refused. Raising is treated the same as None.
        """
        ...


class INameConfirmer(Protocol):
    """Protocol for saving the runner's display name."""

    async def submit_name(self, name: str) -> None:
        """
        Persist the display name.

        Raises:
            Any exception to signal failure; the welcome scene stays put.
        """
        ...


class IResponseSubmitter(Protocol):
    """Protocol for persisting the finished questionnaire."""

    async def submit(self, responses: Dict[str, Union[str, List[str]]]) -> None:
        """
        Persist the final responses.

        Args:
            responses: Snapshot of the frozen response map
        """
        ...
