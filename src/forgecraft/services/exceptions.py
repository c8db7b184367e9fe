"""Service error hierarchy for image generation.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- GenerationError: Raised by a generation backend for a job it cannot run
- BackendNotInstalledError: The inference binary is missing
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class GenerationError(ServiceError):
    """A generation backend could not run a job."""

    pass


class BackendNotInstalledError(GenerationError):
    """The inference binary is not installed.

    Raised before a process is spawned; the setup wizard installs the binary.
    """

    pass
