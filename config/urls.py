"""
URL configuration for the RBAC service.

The authorization core exposes no HTTP routes of its own; host projects
mount their views here and guard them with apps.core.permissions.
"""

urlpatterns = []
