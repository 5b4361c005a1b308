"""
Anonymous session routes
"""
from fastapi import APIRouter

from ..schemas import AnonymousSessionResponse
from ..auth import create_access_token, new_anonymous_user_id
from ..logger import logger

router = APIRouter(prefix="/sessions", tags=["Sessions"])

@router.post("/anonymous", response_model=AnonymousSessionResponse, status_code=201)
async def create_anonymous_session():
    """Issue a new anonymous identity"""
    user_id = new_anonymous_user_id()
    logger.info("Anonymous session created", extra={"user_id": user_id})
    return AnonymousSessionResponse(token=create_access_token(user_id), userId=user_id)
