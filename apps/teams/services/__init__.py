"""
Team services.
"""
from apps.teams.services.context_resolver import TeamContextResolver
from apps.teams.services.team_service import TeamService
from apps.teams.services.ownership_transfer import OwnershipTransferService
from apps.teams.services.tenant_switcher import TenantSwitcher
from apps.teams.services.global_admin import (
    GlobalAdminDashboardService, GlobalAdminTeamService, GlobalAdminUserService,
)

__all__ = [
    'TeamContextResolver',
    'TeamService',
    'OwnershipTransferService',
    'TenantSwitcher',
    'GlobalAdminTeamService',
    'GlobalAdminUserService',
    'GlobalAdminDashboardService',
]
