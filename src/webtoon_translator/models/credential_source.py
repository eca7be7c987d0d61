from abc import ABC, abstractmethod

VISION_SCOPE = "vision"
DRIVE_SCOPE = "drive"


class CredentialSource(ABC):
    """Abstract base class for credential configuration sources."""

    @abstractmethod
    def load_credentials(self, scope: str) -> list[str]:
        """Fetch the ordered credential list for a provider scope.

        Args:
            scope: Provider scope name (e.g. "vision", "drive").

        Returns:
            Ordered list of credential strings. An absent scope is an empty list.

        Raises:
            Exception: If the source itself is unreachable.
        """
        pass
