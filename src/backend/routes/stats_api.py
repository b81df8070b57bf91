# src/backend/routes/stats_api.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.backend.crud.stats import courier_stats, monthly_stats
from src.backend.models.user import User
from src.backend.utils.auth import get_current_user, user_department_ids
from src.backend.utils.database import get_db

router = APIRouter(prefix="/api", tags=["Stats"])

INDIAN_STATES = (
    "Andhra Pradesh", "Arunachal Pradesh", "Assam", "Bihar", "Chhattisgarh", "Goa",
    "Gujarat", "Haryana", "Himachal Pradesh", "Jharkhand", "Karnataka", "Kerala",
    "Madhya Pradesh", "Maharashtra", "Manipur", "Meghalaya", "Mizoram", "Nagaland",
    "Odisha", "Punjab", "Rajasthan", "Sikkim", "Tamil Nadu", "Telangana", "Tripura",
    "Uttar Pradesh", "Uttarakhand", "West Bengal",
    # union territories
    "Andaman and Nicobar Islands", "Chandigarh", "Dadra and Nagar Haveli and Daman and Diu",
    "Delhi", "Jammu and Kashmir", "Ladakh", "Lakshadweep", "Puducherry",
)


@router.get("/stats")
async def api_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await courier_stats(db, current_user, await user_department_ids(db, current_user))


@router.get("/stats/monthly")
async def api_monthly_stats(
    months: int = Query(6, ge=1, le=24),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await monthly_stats(db, current_user, await user_department_ids(db, current_user), months=months)


@router.get("/states")
async def api_states():
    return list(INDIAN_STATES)
