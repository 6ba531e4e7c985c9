"""
Periodicity endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LendingSystem, get_lending_system, to_http_error
from .schemas import CreatePeriodicityRequest, UpdatePeriodicityRequest, SchedulePreviewRequest
from ..dates import format_date, to_local_date
from ..periodicity import Periodicity, describe_periodicity, generate_schedule, validate_start_date


router = APIRouter()


def _periodicity_response(periodicity: Periodicity) -> dict:
    return {
        "id": periodicity.id,
        "name": periodicity.name,
        "description": periodicity.description,
        "label": periodicity.label,
        "config": periodicity.config.to_dict(),
        "created_at": periodicity.created_at.isoformat(),
        "updated_at": periodicity.updated_at.isoformat()
    }


@router.get("")
async def list_periodicities(system: LendingSystem = Depends(get_lending_system)):
    """List periodicities ordered by name"""
    return {
        "periodicities": [_periodicity_response(p) for p in system.periodicity_manager.list_periodicities()]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_periodicity(
    request: CreatePeriodicityRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Create a named periodicity"""
    try:
        periodicity = system.periodicity_manager.create_periodicity(
            name=request.name,
            config=request.config.to_config(),
            description=request.description
        )
        return _periodicity_response(periodicity)

    except ValueError as e:
        raise to_http_error(e)


@router.post("/preview")
async def preview_schedule(
    request: SchedulePreviewRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Preview the due dates a periodicity produces"""
    locale = request.locale or system.config.locale
    try:
        config = request.config.to_config()
        start_date = to_local_date(request.start_date, system.config.timezone)
        due_dates = generate_schedule(start_date, request.installments, config)
    except ValueError as e:
        raise to_http_error(e)

    validation = validate_start_date(start_date, config, locale)
    return {
        "label": describe_periodicity(config, locale),
        "start_date_valid": validation.is_valid,
        "suggested_start_date": validation.suggested_date.isoformat() if validation.suggested_date else None,
        "message": validation.message,
        "due_dates": [d.isoformat() for d in due_dates],
        "formatted_due_dates": [format_date(d, locale) for d in due_dates]
    }


@router.get("/{periodicity_id}")
async def get_periodicity(
    periodicity_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get periodicity details"""
    periodicity = system.periodicity_manager.get_periodicity(periodicity_id)
    if not periodicity:
        raise HTTPException(status_code=404, detail="Periodicity not found")
    return _periodicity_response(periodicity)


@router.put("/{periodicity_id}")
async def update_periodicity(
    periodicity_id: str,
    request: UpdatePeriodicityRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Update a periodicity"""
    if not system.periodicity_manager.get_periodicity(periodicity_id):
        raise HTTPException(status_code=404, detail="Periodicity not found")

    try:
        periodicity = system.periodicity_manager.update_periodicity(
            periodicity_id,
            name=request.name,
            config=request.config.to_config() if request.config else None,
            description=request.description
        )
        return _periodicity_response(periodicity)

    except ValueError as e:
        raise to_http_error(e)


@router.delete("/{periodicity_id}")
async def delete_periodicity(
    periodicity_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a periodicity no loan references"""
    try:
        deleted = system.periodicity_manager.delete_periodicity(periodicity_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if not deleted:
        raise HTTPException(status_code=404, detail="Periodicity not found")
    return {"message": "Periodicity deleted successfully"}
