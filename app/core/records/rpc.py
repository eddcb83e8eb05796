"""
Named procedures for writes that run with elevated trust.

Procedures are registered by name on a ProcedureRegistry and invoked through
a client bound to a record store and an acting user:

    registry = ProcedureRegistry()

    @registry.procedure("manageJobPermissions")
    async def manage_job_permissions(ctx: ProcedureContext, payload: dict) -> dict:
        ...

    client = registry.bind(store, actor_id=user.id)
    await client.call("manageJobPermissions", {...})
"""
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.core.errors import UnknownProcedure
from app.core.records.store import RecordStore
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class ProcedureContext:
    """What a procedure may use: the store and who is calling."""
    store: RecordStore
    actor_id: str | None = None


Procedure = Callable[[ProcedureContext, dict[str, Any]], Awaitable[Any]]


class ProcedureRegistry:
    """Name -> coroutine function table."""

    def __init__(self):
        self._procedures: dict[str, Procedure] = {}

    def procedure(self, name: str) -> Callable[[Procedure], Procedure]:
        def decorator(func: Procedure) -> Procedure:
            self._procedures[name] = func
            return func
        return decorator

    def names(self) -> list[str]:
        return sorted(self._procedures)

    def bind(self, store: RecordStore, actor_id: str | None = None) -> "ProcedureClient":
        return ProcedureClient(self, ProcedureContext(store=store, actor_id=actor_id))

    async def invoke(self, name: str, ctx: ProcedureContext, payload: dict[str, Any]) -> Any:
        func = self._procedures.get(name)
        if func is None:
            raise UnknownProcedure(name)
        log.info("Calling procedure %s as %s", name, ctx.actor_id)
        return await func(ctx, payload)


class ProcedureClient:
    """`call(name, payload) -> result` bound to one context."""

    def __init__(self, registry: ProcedureRegistry, ctx: ProcedureContext):
        self._registry = registry
        self._ctx = ctx

    async def call(self, name: str, payload: dict[str, Any] | None = None) -> Any:
        return await self._registry.invoke(name, self._ctx, payload or {})
