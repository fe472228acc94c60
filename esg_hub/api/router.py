from fastapi import APIRouter
from esg_hub.api.endpoints import auth, users, assistant, analytics

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(assistant.router)
api_router.include_router(analytics.router)
