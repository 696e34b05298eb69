from fastapi import APIRouter

from src.app.leaderboard.router import router as leaderboard_router
from src.app.stats.router import router as stats_router
from src.app.users.router import router as users_router

# Create the root API router
api_router = APIRouter()

# Include domain routers
api_router.include_router(stats_router, tags=['stats'])
api_router.include_router(users_router, tags=['users'])
api_router.include_router(leaderboard_router, tags=['leaderboard'])
