"""
Elevated-trust procedures for bulk permission edits.

    client = procedures.bind(store, actor_id=admin.id)
    await client.call("manageJobPermissions", {"job_id": ..., "to_add": [...], "to_remove": [...]})
    await client.call("manageUserPermissions", {"user_id": ..., "permissions": [...]})

Writes are issued one by one with no enclosing transaction.
"""
from typing import Any

from app.core.errors import DelegationValidationError, NotFound
from app.core.records.rpc import ProcedureContext, ProcedureRegistry
from app.features.permissions.resolution import JOB_PERMISSIONS, USER_EXCEPTIONS
from app.features.permissions.scopes import AccessScope
from app.features.services.identifiers import try_parse_resource_id
from app.utils import get_logger


log = get_logger(__name__)

procedures = ProcedureRegistry()


async def _require(ctx: ProcedureContext, collection: str, record_id: Any) -> dict[str, Any]:
    if not record_id:
        raise DelegationValidationError(f"Missing {collection} id")
    rows = await ctx.store.query(collection, {"id": str(record_id)})
    if not rows:
        raise NotFound(collection, record_id)
    return rows[0]


def _resource_entry(entry: Any) -> tuple[str | None, AccessScope]:
    """Accept "ss:12" or {"resource_id": "ss:12", "scope": {"companies": [...], ...}}."""
    if isinstance(entry, dict):
        resource_id = entry.get("resource_id")
        scope = AccessScope.from_lists(entry.get("scope"))
    else:
        resource_id, scope = entry, AccessScope()
    if try_parse_resource_id(resource_id) is None:
        log.warning(f"Skipping malformed resource id {resource_id!r}")
        return None, scope
    return resource_id, scope


@procedures.procedure("manageJobPermissions")
async def manage_job_permissions(ctx: ProcedureContext, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Add and remove job permissions.

    An add is a no-op when the job already holds the resource; a remove
    deletes every matching record.
    """
    job = await _require(ctx, "jobs", payload.get("job_id"))
    job_id = job["id"]
    added: list[str] = []
    removed = 0

    for entry in payload.get("to_add") or []:
        resource_id, scope = _resource_entry(entry)
        if resource_id is None:
            continue
        existing = await ctx.store.query(JOB_PERMISSIONS, {"job_id": job_id, "resource_id": resource_id})
        if existing:
            continue
        await ctx.store.create(JOB_PERMISSIONS, {
            "job_id": job_id,
            "resource_id": resource_id,
            "created_by": ctx.actor_id,
            **scope.to_record(),
        })
        added.append(resource_id)

    for entry in payload.get("to_remove") or []:
        resource_id, _ = _resource_entry(entry)
        if resource_id is None:
            continue
        for record in await ctx.store.query(JOB_PERMISSIONS, {"job_id": job_id, "resource_id": resource_id}):
            await ctx.store.delete(JOB_PERMISSIONS, record["id"])
            removed += 1

    log.info(f"Job {job_id}: {len(added)} permission(s) added, {removed} removed by {ctx.actor_id}")
    return {"success": True, "added": added, "removed": removed}


@procedures.procedure("manageUserPermissions")
async def manage_user_permissions(ctx: ProcedureContext, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize a user's exceptions against their job's grants.

    For each {"resource_id", "is_allowed"} item:
    - allowed, and the job grants it: the exception is dropped
    - allowed, and the job does not grant it: an allow exception is kept
    - denied, and the job grants it: a deny exception is kept
    - denied, and the job does not grant it: the exception is dropped
    """
    user = await _require(ctx, "users", payload.get("user_id"))
    user_id = user["id"]
    job_id = user.get("job_id")
    created = deleted = 0

    for item in payload.get("permissions") or []:
        resource_id, _ = _resource_entry(item.get("resource_id"))
        if resource_id is None:
            continue
        is_allowed = bool(item.get("is_allowed"))

        granted_by_job = False
        if job_id:
            granted_by_job = bool(
                await ctx.store.query(JOB_PERMISSIONS, {"job_id": job_id, "resource_id": resource_id})
            )
        existing = await ctx.store.query(USER_EXCEPTIONS, {"user_id": user_id, "resource_id": resource_id})

        keep_exception = is_allowed != granted_by_job
        if keep_exception and existing and all(r["is_allowed"] == is_allowed for r in existing):
            continue

        # records are never updated in place: "set" is delete-then-create
        for record in existing:
            await ctx.store.delete(USER_EXCEPTIONS, record["id"])
            deleted += 1
        if keep_exception:
            await ctx.store.create(USER_EXCEPTIONS, {
                "user_id": user_id,
                "resource_id": resource_id,
                "is_allowed": is_allowed,
                "created_by": ctx.actor_id,
            })
            created += 1

    log.info(f"User {user_id}: {created} exception(s) written, {deleted} removed by {ctx.actor_id}")
    return {"success": True, "created": created, "deleted": deleted}
