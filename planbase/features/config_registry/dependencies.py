"""
Dependencies exposing the config service to routes.
"""
from typing import Annotated, Optional
from fastapi import Depends, Query, Request

from planbase.features.config_registry.resolver import ResolveContext
from planbase.features.config_registry.service import ConfigService
from planbase.features.organizations.dependencies import get_current_member
from planbase.features.organizations.models import OrganizationMember


def get_config_service(request: Request) -> ConfigService:
    """The application's ConfigService, created at startup in ``planbase.main``."""
    return request.app.state.config_service


def get_resolve_context(
    member: Annotated[OrganizationMember, Depends(get_current_member)],
    project_id: Annotated[Optional[str], Query(alias="projectId")] = None,
) -> ResolveContext:
    """
    Request context: the caller's active membership gives the account and
    user, plus an optional project.
    """
    return ResolveContext(
        account_id=member.organization_id,
        user_id=member.user_id,
        project_id=project_id,
    )
