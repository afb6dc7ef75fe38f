# hemolink/api/v1/router.py
from fastapi import APIRouter

from hemolink.api.v1.endpoints import (
    hospitals,
    donors,
    demands,
    proposals,
    inventory,
    appointments,
)

api_router = APIRouter()

api_router.include_router(hospitals.router, prefix="/hospitals", tags=["hospitals"])
api_router.include_router(donors.router, prefix="/donors", tags=["donors"])
api_router.include_router(demands.router, prefix="/demand-units", tags=["demand-units"])
api_router.include_router(proposals.router, prefix="/proposals", tags=["proposals"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
