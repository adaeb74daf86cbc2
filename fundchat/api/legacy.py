"""
Legacy client routes: /projects, /updateMoney, /invest.

Older app builds still call these paths. They are kept as aliases over the
same LedgerEngine the /ledger routes use, so both surfaces share one
implementation.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from fundchat.api.deps import get_ledger
from fundchat.runtime import LedgerEngine
from fundchat.runtime.ledger import to_json_number

router = APIRouter(tags=["legacy"])


class UpdateMoneyRequest(BaseModel):
    email: str
    amount: Any = None
    project_id: Optional[str] = Field(None, alias="projectId")

    model_config = {"populate_by_name": True}


@router.get("/projects")
def list_projects(engine: LedgerEngine = Depends(get_ledger)) -> List[Dict[str, Any]]:
    return engine.list_projects()


@router.post("/updateMoney")
def update_money(
    payload: UpdateMoneyRequest,
    action: Optional[str] = Query(None, alias="type"),
    engine: LedgerEngine = Depends(get_ledger),
) -> Dict[str, Any]:
    if action == "invest":
        result = engine.invest(payload.email, payload.project_id or "", payload.amount)
        return {
            "ok": True,
            "message": "Investment successful",
            "money": to_json_number(result.balance),
            "project": result.project,
        }

    balance = engine.credit(payload.email, payload.amount)
    return {"ok": True, "message": "Money added", "money": to_json_number(balance)}


@router.post("/invest")
def invest(payload: UpdateMoneyRequest, engine: LedgerEngine = Depends(get_ledger)) -> Dict[str, Any]:
    result = engine.invest(payload.email, payload.project_id or "", payload.amount)
    return {
        "ok": True,
        "message": "Investment successful",
        "remainingMoney": to_json_number(result.balance),
        "newProjectInvestment": result.project.get("investedAmount"),
    }
