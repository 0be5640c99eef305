"""
Tenant models for multi-tenant isolation.

A Company is the isolation boundary: every role and every user-role
assignment belongs to exactly one company.
"""
from django.db import models
from apps.core.models import BaseModel, BaseModelManager, BaseModelQuerySet


class CompanyManager(BaseModelManager.from_queryset(BaseModelQuerySet)):
    """Manager for company queries."""
    
    def active(self):
        """Return only active companies."""
        return self.filter(is_active=True)
    
    def by_slug(self, slug):
        """Find company by slug."""
        return self.filter(slug=slug).first()


class Company(BaseModel):
    """
    Company (tenant) owning roles, users and role assignments.
    
    Default roles are seeded by apps.rbac.signals when a company is created.
    """
    
    name = models.CharField(
        max_length=255,
        help_text="Business name"
    )
    slug = models.SlugField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="URL-safe unique identifier"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether the company can be used"
    )
    
    objects = CompanyManager()
    
    class Meta:
        db_table = 'companies'
        ordering = ['name']
        verbose_name_plural = 'companies'
    
    def __str__(self):
        return self.name
