"""
RBAC (Role-Based Access Control) application.

Provides team-scoped access control with:
- Global user identity
- Signed bearer tokens carrying the current team membership
- A single authorization decision point (AuthorizationEngine)
- Authentication endpoints (register, login, team switching)
"""
