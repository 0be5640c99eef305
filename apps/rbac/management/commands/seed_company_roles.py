"""
Management command to seed default roles for companies.

Creates TenantAdmin, Manager, Technician and Customer with their default
permission sets for one or all companies. Idempotent and safe to re-run.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.rbac.services import RBACService
from apps.tenants.models import Company


class Command(BaseCommand):
    help = 'Seed default roles for company(ies) (idempotent)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--company',
            type=str,
            help='Company ID or slug to seed roles for',
        )
        parser.add_argument(
            '--all',
            action='store_true',
            help='Seed roles for all companies',
        )

    def handle(self, *args, **options):
        company_ref = options.get('company')
        seed_all = options.get('all')

        if not company_ref and not seed_all:
            raise CommandError('Specify --company <id|slug> or --all')
        if company_ref and seed_all:
            raise CommandError('Use either --company or --all, not both')

        if seed_all:
            companies = list(Company.objects.order_by('pk'))
            self.stdout.write(f'Seeding roles for all {len(companies)} companies...\n')
        else:
            company = Company.objects.by_slug(company_ref)
            if company is None and company_ref.isdigit():
                company = Company.objects.filter(pk=int(company_ref)).first()
            if company is None:
                raise CommandError(f'Company not found: {company_ref}')
            companies = [company]

        for company in companies:
            roles_created = RBACService.seed_default_roles(company)
            if roles_created:
                self.stdout.write(
                    self.style.SUCCESS(f'✓ {company.slug}: created {", ".join(roles_created)}')
                )
            else:
                self.stdout.write(f'  {company.slug}: roles up to date')

        self.stdout.write(self.style.SUCCESS(f'\n✓ Seeded roles for {len(companies)} company(ies)'))
