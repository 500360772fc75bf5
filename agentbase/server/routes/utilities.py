"""Utility catalog routes."""

from typing import List

from fastapi import APIRouter, Depends

from ..app import require_app, verify_api_key
from ..models import UtilityInfoResponse

router = APIRouter()


@router.get("/utilities", response_model=List[UtilityInfoResponse], dependencies=[Depends(verify_api_key)])
async def list_utilities():
    app = require_app()
    return [UtilityInfoResponse(**info.to_dict()) for info in app.list_utilities()]
