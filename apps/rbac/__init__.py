"""
RBAC (Role-Based Access Control) application.

Provides multi-tenant access control with:
- A global permission catalog shared by every company
- Per-company roles and user-role assignments
- Cached permission and role resolution
- Policy rules for tenant isolation, system roles and last-role protection
"""
