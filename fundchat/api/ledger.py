"""
API: /ledger

Balance and investment endpoints. All monetary logic lives in
runtime.ledger.LedgerEngine; business errors are mapped to HTTP status
codes by the FundchatError handler in fundchat_api.
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fundchat.api.deps import get_ledger
from fundchat.runtime import LedgerEngine
from fundchat.runtime.ledger import to_json_number

router = APIRouter(prefix="/ledger", tags=["ledger"])


class AmountRequest(BaseModel):
    email: str
    # Validated by the engine so bad amounts surface as invalid_amount (400).
    amount: Any = None


class InvestRequest(BaseModel):
    email: str
    project_id: str = Field(..., alias="projectId")
    amount: Any = None

    model_config = {"populate_by_name": True}


@router.post("/credit")
def credit(payload: AmountRequest, engine: LedgerEngine = Depends(get_ledger)) -> Dict[str, Any]:
    balance = engine.credit(payload.email, payload.amount)
    return {"ok": True, "email": payload.email, "money": to_json_number(balance)}


@router.post("/debit")
def debit(payload: AmountRequest, engine: LedgerEngine = Depends(get_ledger)) -> Dict[str, Any]:
    balance = engine.debit(payload.email, payload.amount)
    return {"ok": True, "email": payload.email, "money": to_json_number(balance)}


@router.post("/invest")
def invest(payload: InvestRequest, engine: LedgerEngine = Depends(get_ledger)) -> Dict[str, Any]:
    result = engine.invest(payload.email, payload.project_id, payload.amount)
    return {
        "ok": True,
        "email": payload.email,
        "money": to_json_number(result.balance),
        "project": result.project,
    }


@router.get("/balance/{email}")
def balance(email: str, engine: LedgerEngine = Depends(get_ledger)) -> Dict[str, Any]:
    return {"ok": True, "email": email, "money": to_json_number(engine.get_balance(email))}


@router.get("/projects")
def projects(engine: LedgerEngine = Depends(get_ledger)) -> List[Dict[str, Any]]:
    return engine.list_projects()


@router.get("/projects/{project_id}")
def project(project_id: str, engine: LedgerEngine = Depends(get_ledger)) -> Dict[str, Any]:
    return {"ok": True, "project": engine.get_project(project_id)}
