"""
Error taxonomy for host setup
"""

from typing import Optional


class SetupError(Exception):
    """Base class for all setup failures."""


class NotFoundError(SetupError):
    """No USB NIC candidate was found after probing."""


class UnreadableAddressError(SetupError):
    """The selected interface has no readable, non-null hardware address."""


class PrimitiveFailure(SetupError):
    """
    An external command or file operation failed.

    Attributes:
        description: The command line or path operation that failed
        output: Whatever diagnostic output the primitive produced
    """

    def __init__(self, description: str, output: Optional[str] = None):
        self.description = description
        self.output = (output or "").strip()
        message = f"{description} failed"
        if self.output:
            message = f"{message}: {self.output}"
        super().__init__(message)


class ValidationFailure(SetupError):
    """A configuration was rejected by its own validator before activation."""

    def __init__(self, description: str, output: Optional[str] = None):
        self.description = description
        self.output = (output or "").strip()
        message = f"Validation rejected {description}"
        if self.output:
            message = f"{message}: {self.output}"
        super().__init__(message)
