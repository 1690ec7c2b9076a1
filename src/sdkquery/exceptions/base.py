from __future__ import annotations


class SdkQueryError(Exception):
    """Base exception class for all sdkquery-specific errors.

    This is the root of the sdkquery exception hierarchy. Every custom
    exception raised by the library inherits from this class, so build tools
    can catch all query errors at their boundary while letting system
    exceptions propagate naturally.

    Attributes:
        message: Human-readable error message describing what went wrong.

    Example:
        ```python
        try:
            result = search("Reservations[].Instances[].State", response)
        except SdkQueryError as e:
            logger.error(f"Query failed: {e.message}")
        ```
    """

    def __init__(self, message: str) -> None:
        """Initialize the SdkQueryError.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)
