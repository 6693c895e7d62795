"""
URL routing for team endpoints.
"""
from django.urls import path
from apps.teams import views, views_admin

urlpatterns = [
    # Teams
    path('teams', views.TeamListView.as_view(), name='team-list'),
    path('teams/subdomains/<str:subdomain>/availability',
         views.SubdomainAvailabilityView.as_view(), name='subdomain-availability'),
    path('teams/<uuid:team_id>', views.TeamDetailView.as_view(), name='team-detail'),
    path('teams/<uuid:team_id>/summary', views.TeamSummaryView.as_view(), name='team-summary'),
    path('teams/<uuid:team_id>/subdomain', views.TeamSubdomainView.as_view(), name='team-subdomain'),

    # Members
    path('teams/<uuid:team_id>/members', views.TeamMembersView.as_view(), name='team-members'),
    path('teams/<uuid:team_id>/members/<uuid:user_id>',
         views.TeamMemberDetailView.as_view(), name='team-member-detail'),

    # Ownership transfers
    path('teams/<uuid:team_id>/ownership-transfers',
         views.OwnershipTransferInitiateView.as_view(), name='ownership-transfer-initiate'),
    path('teams/<uuid:team_id>/ownership-transfers/pending',
         views.PendingOwnershipTransferView.as_view(), name='ownership-transfer-pending'),
    path('ownership-transfers/complete',
         views.CompleteOwnershipTransferView.as_view(), name='ownership-transfer-complete'),
    path('ownership-transfers/<uuid:transfer_id>/cancel',
         views.CancelOwnershipTransferView.as_view(), name='ownership-transfer-cancel'),

    # Global admin
    path('admin/teams', views_admin.AdminTeamListView.as_view(), name='admin-team-list'),
    path('admin/teams/deleted', views_admin.AdminDeletedTeamListView.as_view(), name='admin-team-deleted'),
    path('admin/teams/<uuid:team_id>', views_admin.AdminTeamDetailView.as_view(), name='admin-team-detail'),
    path('admin/teams/<uuid:team_id>/permanent',
         views_admin.AdminTeamPermanentDeleteView.as_view(), name='admin-team-permanent-delete'),
    path('admin/teams/<uuid:team_id>/recover',
         views_admin.AdminTeamRecoverView.as_view(), name='admin-team-recover'),
    path('admin/teams/<uuid:team_id>/transfer-ownership',
         views_admin.AdminTeamTransferOwnershipView.as_view(), name='admin-team-transfer-ownership'),
    path('admin/users', views_admin.AdminUserListView.as_view(), name='admin-user-list'),
    path('admin/users/deleted', views_admin.AdminDeletedUserListView.as_view(), name='admin-user-deleted'),
    path('admin/users/<uuid:user_id>', views_admin.AdminUserDetailView.as_view(), name='admin-user-detail'),
    path('admin/users/<uuid:user_id>/recover',
         views_admin.AdminUserRecoverView.as_view(), name='admin-user-recover'),
    path('admin/users/<uuid:user_id>/permanent',
         views_admin.AdminUserPermanentDeleteView.as_view(), name='admin-user-permanent-delete'),
    path('admin/users/<uuid:user_id>/reset-lockout',
         views_admin.AdminUserResetLockoutView.as_view(), name='admin-user-reset-lockout'),
    path('admin/dashboard', views_admin.AdminDashboardView.as_view(), name='admin-dashboard'),
]
