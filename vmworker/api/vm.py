"""Coordination endpoints: assign, release and snapshot refresh."""

from typing import Optional

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response

from ..dependencies.services import ConnectionRegistryDep, PoolRegistryDep
from ..models.errors import PoolNotConfiguredError
from ..models.requests import AssignVMRequest, ReleaseVMRequest, UpdateSnapshotRequest
from ..services.assignment import AssignmentCoordinator
from ..services.store import PoolStore
from ..utils.tasks import spawn_background

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/assignVM", summary="Assign a ready VM to a client")
async def assign_vm(
    request: AssignVMRequest,
    pools: PoolRegistryDep,
    connections: ConnectionRegistryDep,
):
    """Block until a VM from the addressed pool is assigned.

    Returns the VM descriptor, or null if none became available in time.
    The wait runs on a connection registered under the client's uid so a
    release from the same client can abort it.
    """
    manager = pools.get(request.pool_key)
    if manager is None:
        raise PoolNotConfiguredError(request.pool_key)

    async with connections.connection(request.uid) as client:
        coordinator = AssignmentCoordinator(PoolStore(client))
        vm = await coordinator.assign(manager)

    return vm.to_response() if vm else None


@router.post("/releaseVM", summary="Release a client's VM")
async def release_vm(
    request: Request,
    pools: PoolRegistryDep,
    connections: ConnectionRegistryDep,
):
    """Cancel the client's pending assignment and recycle its VM, if given.

    Always answers 200. The body is read by hand so that one which fails to
    parse still gets an empty 200; a string uid in such a body is still
    disconnected.
    """
    body = await _read_release_body(request)
    if body is None:
        return Response(status_code=200)

    try:
        if body.uid:
            await connections.disconnect(body.uid)
        manager = pools.get(body.pool_key)
        if body.id and manager is not None:
            spawn_background(manager.reset_vm(body.id), name=f"reset-{body.id}")
    except Exception as e:
        logger.warning("Release failed", pool=body.pool_key, vm_id=body.id, error=str(e))
    return Response(status_code=200)


async def _read_release_body(request: Request) -> Optional[ReleaseVMRequest]:
    payload = None
    try:
        payload = await request.json()
        return ReleaseVMRequest.model_validate(payload)
    except ValueError as e:
        # JSON decode errors and pydantic validation errors both land here
        logger.warning("Malformed release body", error=str(e))

    uid = payload.get("uid") if isinstance(payload, dict) else None
    if isinstance(uid, str) and uid:
        return ReleaseVMRequest(uid=uid)
    return None


@router.post("/updateSnapshot", summary="Refresh a pool's base image")
async def update_snapshot(request: UpdateSnapshotRequest, pools: PoolRegistryDep):
    manager = pools.get(request.pool_key)
    result = await manager.update_snapshot() if manager is not None else None
    return PlainTextResponse("" if result is None else str(result))
