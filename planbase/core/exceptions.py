"""
Domain errors raised by services.

Routes translate them to HTTP responses through the handlers registered in
``planbase.main``. Authorization denials are not errors and never appear here.
"""


class PlanBaseError(Exception):
    """Base class for service-level errors."""


class NotFoundError(PlanBaseError):
    """A referenced resource (permission pack, member, organization) does not exist."""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class CmsUnavailableError(PlanBaseError):
    """The CMS connector could not produce a configuration snapshot."""
