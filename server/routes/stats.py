from fastapi import APIRouter, Depends

from ..models import StatsResponse
from ..storage import BaseStorage, get_storage

router = APIRouter()


@router.get(
    "",
    response_model=StatsResponse,
    summary="Get Attention Statistics",
    description="Session count, mean attention, study time this week and the weekly trend"
)
async def get_stats(storage: BaseStorage = Depends(get_storage)):
    return storage.get_session_stats()
