"""
Seed script to populate a demo resource catalog and organization.

Run this script after database initialization to create:
- Services with their pages and actions
- Companies, sectors, departments and sections
- Jobs, their distribution and baseline job permissions

Usage:
    uv run python -m scripts.seed_catalog
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.organizations.models import Company, Sector, Department, Section, Job, JobDistribution
from app.features.permissions.models import JobPermission
from app.features.services.models import Service, SubService, SubSubService
from app.utils import get_logger


log = get_logger(__name__)


# service id -> (label_ar, label_en, [(page id, ar, en)], [(action id, ar, en)])
CATALOG = {
    "1": ("الموارد البشرية", "Human Resources",
          [("11", "بيانات الموظفين", "Employee Data"), ("12", "طلبات المستخدمين", "User Requests")],
          [("101", "إضافة مستخدم", "Add User"), ("102", "تجميد حساب", "Freeze Account")]),
    "2": ("الصلاحيات", "Permissions",
          [("21", "صلاحيات الوظائف", "Job Permissions"), ("22", "استثناءات المستخدمين", "User Exceptions")],
          [("201", "تفويض الوصول", "Access Delegation"), ("202", "تفويض التحكم", "Control Delegation")]),
    "3": ("الحراسات", "Guards Rating",
          [("31", "تقييم جديد", "New Evaluation"), ("32", "سجل التقييمات", "Evaluation History")],
          [("301", "تصدير التقارير", "Export Reports")]),
    "10": ("المهام", "Tasks",
           [("41", "المهام المعلقة", "Pending Tasks")],
           []),
}

COMPANIES = [("c1", "الشركة الأولى", "First Company"), ("c2", "الشركة الثانية", "Second Company")]
SECTORS = [("sec1", "قطاع العمليات", "Operations Sector")]
DEPARTMENTS = [("d1", "sec1", "إدارة الأمن", "Security Department")]
SECTIONS = [("s1", "d1", "قسم الحراسة", "Guarding Section"), ("s2", "d1", "قسم المراقبة", "Monitoring Section")]

JOBS = {
    "j-admin": ("مدير النظام", "System Administrator"),
    "j-supervisor": ("مشرف", "Supervisor"),
    "j-guard": ("حارس أمن", "Security Guard"),
}

DISTRIBUTION = [
    ("j-supervisor", "c1", None),
    ("j-supervisor", "c2", None),
    ("j-guard", "c1", "s1"),
    ("j-guard", "c1", "s2"),
]

# job id -> [(resource id, scope company, scope section)]
JOB_PERMISSIONS = {
    "j-admin": [("s:1", None, None), ("s:2", None, None), ("ss:21", None, None), ("ss:22", None, None)],
    "j-supervisor": [("s:3", None, None), ("ss:31", None, None), ("ss:32", None, None), ("sss:301", "c1", None)],
    "j-guard": [("s:3", None, None), ("ss:32", "c1", "s1")],
}


async def _missing(db: AsyncSession, model, record_id: str) -> bool:
    return await db.get(model, record_id) is None


async def seed_catalog(db: AsyncSession):
    """Create services, pages and actions."""
    log.info("Creating resource catalog...")
    for service_id, (label_ar, label_en, pages, actions) in CATALOG.items():
        if await _missing(db, Service, service_id):
            db.add(Service(id=service_id, label_ar=label_ar, label_en=label_en))
        for order, (page_id, page_ar, page_en) in enumerate(pages):
            if await _missing(db, SubService, page_id):
                db.add(SubService(id=page_id, service_id=service_id, label_ar=page_ar, label_en=page_en, order=order))
        for action_id, action_ar, action_en in actions:
            if await _missing(db, SubSubService, action_id):
                db.add(SubSubService(id=action_id, service_id=service_id, label_ar=action_ar, label_en=action_en))
    await db.commit()
    log.info(f"Catalog has {len(CATALOG)} services")


async def seed_organization(db: AsyncSession):
    """Create companies, org units, jobs and job distribution."""
    log.info("Creating organization structure...")
    for company_id, name_ar, name_en in COMPANIES:
        if await _missing(db, Company, company_id):
            db.add(Company(id=company_id, name_ar=name_ar, name_en=name_en))
    for sector_id, name_ar, name_en in SECTORS:
        if await _missing(db, Sector, sector_id):
            db.add(Sector(id=sector_id, name_ar=name_ar, name_en=name_en))
    for department_id, sector_id, name_ar, name_en in DEPARTMENTS:
        if await _missing(db, Department, department_id):
            db.add(Department(id=department_id, sector_id=sector_id, name_ar=name_ar, name_en=name_en))
    for section_id, department_id, name_ar, name_en in SECTIONS:
        if await _missing(db, Section, section_id):
            db.add(Section(id=section_id, department_id=department_id, name_ar=name_ar, name_en=name_en))
    for job_id, (name_ar, name_en) in JOBS.items():
        if await _missing(db, Job, job_id):
            db.add(Job(id=job_id, name_ar=name_ar, name_en=name_en))
    await db.commit()

    for job_id, company_id, section_id in DISTRIBUTION:
        stmt = select(JobDistribution).where(
            JobDistribution.job_id == job_id,
            JobDistribution.company_id == company_id,
            JobDistribution.section_id.is_(None) if section_id is None else JobDistribution.section_id == section_id,
        )
        if (await db.execute(stmt)).scalars().first() is None:
            db.add(JobDistribution(job_id=job_id, company_id=company_id, section_id=section_id))
    await db.commit()
    log.info(f"Created {len(JOBS)} jobs distributed into {len(DISTRIBUTION)} placements")


async def seed_job_permissions(db: AsyncSession):
    """Grant each job its baseline resources."""
    log.info("Creating job permissions...")
    created = 0
    for job_id, grants in JOB_PERMISSIONS.items():
        for resource_id, company_id, section_id in grants:
            stmt = select(JobPermission).where(
                JobPermission.job_id == job_id,
                JobPermission.resource_id == resource_id,
            )
            if (await db.execute(stmt)).scalars().first() is not None:
                log.debug(f"Job {job_id} already holds {resource_id}, skipping")
                continue
            db.add(JobPermission(
                job_id=job_id,
                resource_id=resource_id,
                scope_company_id=company_id,
                scope_section_id=section_id,
            ))
            created += 1
    await db.commit()
    log.info(f"Created {created} job permissions")


async def main():
    """Main function to seed the catalog and organization."""
    log.info("Starting catalog seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            await seed_catalog(db)
            await seed_organization(db)
            await seed_job_permissions(db)
            log.info("Catalog seeding completed successfully!")
        except Exception as e:
            log.error(f"Error seeding catalog: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
