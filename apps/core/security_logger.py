"""
Security event logging for monitoring and alerting.

Logs all authorization-relevant events including:
- Authorization denials (with their reason category)
- Cross-tenant access attempts
- System role protection hits
- High-privilege operations
- Role and permission assignment changes

Critical events are sent to Sentry for immediate alerting.
"""
import logging
from typing import Any, Dict, Iterable, Optional

import sentry_sdk
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger('security')


class SecurityLogger:
    """
    Centralized security event logging.

    All security events are logged with structured data for analysis.
    Critical events trigger Sentry alerts for immediate response.
    """

    # Denial reasons that indicate a probing or escalation attempt
    CRITICAL_REASONS = {
        'cross_tenant_denied',
        'system_role_protected',
    }

    @classmethod
    def log_authorization_denied(
        cls,
        principal_id: Optional[int],
        company_id: Optional[int],
        reason: str,
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Log an authorization denial.

        Args:
            principal_id: Acting user ID (None when unauthenticated)
            company_id: Acting user's company ID
            reason: Decision reason token
            action: Ability or required permission set attempted
            target_type: Model name of the target, if any
            target_id: Primary key of the target, if any
            details: Extra structured context from the decision
        """
        level = logging.WARNING if reason in cls.CRITICAL_REASONS else logging.INFO
        logger.log(
            level,
            f"Authorization denied: {reason}",
            extra={
                'event_type': 'authorization_denied',
                'reason': reason,
                'user_id': principal_id,
                'company_id': company_id,
                'action': action,
                'target_type': target_type,
                'target_id': str(target_id) if target_id is not None else None,
                'details': details or {},
                'timestamp': timezone.now().isoformat(),
            }
        )

        if reason in cls.CRITICAL_REASONS:
            cls._alert(
                f"Authorization denied ({reason}) for user {principal_id}",
                level='warning',
                extras={
                    'user_id': principal_id,
                    'company_id': company_id,
                    'action': action,
                    'target_type': target_type,
                    'target_id': str(target_id) if target_id is not None else None,
                },
            )

    @classmethod
    def log_high_privilege_access(
        cls,
        principal_id: int,
        company_id: int,
        permissions: Iterable[str],
    ):
        """
        Log a granted check on high-privilege permissions.

        Args:
            principal_id: Acting user ID
            company_id: Acting user's company ID
            permissions: High-privilege permission names that were required
        """
        logger.info(
            "High privilege operation authorized",
            extra={
                'event_type': 'high_privilege_access',
                'user_id': principal_id,
                'company_id': company_id,
                'permissions': sorted(permissions),
                'timestamp': timezone.now().isoformat(),
            }
        )

    @classmethod
    def log_assignment_change(
        cls,
        event: str,
        company_id: Optional[int],
        actor_id: Optional[int] = None,
        user_id: Optional[int] = None,
        role_id: Optional[int] = None,
        permission_ids: Optional[Iterable[int]] = None,
    ):
        """
        Log a change to the assignment graph.

        Args:
            event: Change kind (role_assigned, role_removed, permissions_synced, ...)
            company_id: Company owning the changed rows
            actor_id: User who made the change
            user_id: Affected user, for user-role changes
            role_id: Affected role
            permission_ids: Affected permissions, for role-permission changes
        """
        logger.info(
            f"RBAC assignment change: {event}",
            extra={
                'event_type': event,
                'company_id': company_id,
                'actor_id': actor_id,
                'user_id': user_id,
                'role_id': role_id,
                'permission_ids': sorted(permission_ids) if permission_ids else [],
                'timestamp': timezone.now().isoformat(),
            }
        )

    @classmethod
    def log_cache_cleared(cls, scope: str, principal_id: Optional[int] = None,
                          company_id: Optional[int] = None):
        """Log an administrative decision cache flush."""
        logger.info(
            "Authorization decision cache cleared",
            extra={
                'event_type': 'rbac_cache_cleared',
                'scope': scope,
                'user_id': principal_id,
                'company_id': company_id,
                'timestamp': timezone.now().isoformat(),
            }
        )

    @classmethod
    def _alert(cls, message: str, level: str, extras: Dict[str, Any]):
        """Send a security alert to Sentry outside of DEBUG."""
        if settings.DEBUG:
            return
        try:
            sentry_sdk.capture_message(message, level=level, extras=extras)
        except Exception as e:
            logger.error(f"Failed to send security alert to Sentry: {str(e)}")
