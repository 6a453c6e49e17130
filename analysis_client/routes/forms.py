from __future__ import annotations

from fastapi import APIRouter, HTTPException

from analysis_client.application import get_analysis_service
from analysis_client.application.orchestrator import SubmissionOrchestrator

router = APIRouter(prefix="/forms", tags=["forms"])


def _orchestrator(form: str) -> SubmissionOrchestrator:
    service = get_analysis_service()
    try:
        return service.form(form).orchestrator
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="form not found") from exc


@router.get("/{form}")
async def get_form_state(form: str) -> dict:
    orchestrator = _orchestrator(form)
    await orchestrator.refresh_identity()
    return orchestrator.state()


@router.post("/{form}/submit")
async def submit_form(form: str, payload: dict) -> dict:
    raw_input = payload.get("input")
    if not isinstance(raw_input, str):
        raise HTTPException(status_code=400, detail="input is required")
    instruction = payload.get("instruction")
    if instruction is not None and not isinstance(instruction, str):
        raise HTTPException(status_code=400, detail="instruction must be a string")

    orchestrator = _orchestrator(form)
    outcome = await orchestrator.submit(raw_input, instruction)
    return {"outcome": outcome.value, **orchestrator.state()}


@router.post("/{form}/cancel")
async def cancel_form(form: str) -> dict:
    orchestrator = _orchestrator(form)
    orchestrator.cancel()
    return orchestrator.state()


@router.post("/{form}/reset")
async def reset_form(form: str) -> dict:
    orchestrator = _orchestrator(form)
    orchestrator.reset()
    return orchestrator.state()


@router.get("/{form}/history")
async def list_history(form: str) -> dict:
    history = _orchestrator(form).history
    return {"storage_key": history.storage_key, "items": history.history}


@router.delete("/{form}/history/{entry_id}")
async def delete_history_entry(form: str, entry_id: str) -> dict:
    history = _orchestrator(form).history
    if not history.has_id(entry_id):
        raise HTTPException(status_code=404, detail="history entry not found")
    history.remove_by_id(entry_id)
    return {"items": history.history}


@router.delete("/{form}/history")
async def clear_history(form: str) -> dict:
    history = _orchestrator(form).history
    history.clear_history()
    return {"items": history.history}
