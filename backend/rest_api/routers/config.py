"""
Reservation configuration router.
Settings, tables and shifts edited by the configuration wizard.
Reading is open to all staff; writing requires ADMIN or MANAGER.
"""

from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from rest_api.services.domain import ConfigService, ConfigSnapshot
from rest_api.services.reservation_events import announce_config_change
from rest_api.db import get_db
from shared.auth import actor_of, current_user_context, require_roles, tenant_of
from shared.constants import MANAGEMENT_ROLES, STAFF_ROLES
from shared.logging import config_logger as logger
from shared.schemas import (
    ReservationConfigInput,
    ReservationConfigOutput,
    ShiftOutput,
    TableOutput,
)


router = APIRouter(prefix="/api/reservations/config", tags=["reservation-config"])


def _config_output(snapshot: ConfigSnapshot) -> ReservationConfigOutput:
    return ReservationConfigOutput(
        is_active=bool(snapshot.settings.is_active),
        total_seats=snapshot.settings.total_seats or 0,
        total_high_chairs=snapshot.settings.total_high_chairs or 0,
        notification_email=snapshot.settings.notification_email,
        tables=[TableOutput.model_validate(t) for t in snapshot.tables],
        shifts=[ShiftOutput.model_validate(s) for s in snapshot.shifts],
    )


@router.get("", response_model=ReservationConfigOutput)
def get_config(
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> ReservationConfigOutput:
    require_roles(ctx, STAFF_ROLES)
    return _config_output(ConfigService(db).get_config(tenant_of(ctx)))


@router.put("", response_model=ReservationConfigOutput)
async def replace_config(
    body: ReservationConfigInput,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> ReservationConfigOutput:
    """
    Save the whole configuration.

    Tables and shifts left out of the payload are removed. A removed table
    that still holds an upcoming reservation answers 409 and nothing is saved.
    """
    require_roles(ctx, MANAGEMENT_ROLES)
    tenant_id = tenant_of(ctx)
    user_id, email = actor_of(ctx)

    snapshot = ConfigService(db).replace_config(tenant_id, body, user_id, email)
    await announce_config_change(tenant_id, "config", actor_user_id=user_id)
    return _config_output(snapshot)


@router.delete("/tables/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table(
    table_id: int,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> None:
    """Remove a table unless it is bound to a reservation from today on."""
    require_roles(ctx, MANAGEMENT_ROLES)
    tenant_id = tenant_of(ctx)
    user_id, email = actor_of(ctx)

    ConfigService(db).delete_table(tenant_id, table_id, user_id, email)
    logger.info("Table removed from room", tenant_id=tenant_id, table_id=table_id)
    await announce_config_change(tenant_id, "table", entity_id=table_id, actor_user_id=user_id)
