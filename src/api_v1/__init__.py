from fastapi import APIRouter

from .oauth.views import router as oauth_router
from .connections.views import router as connections_router

router = APIRouter()
router.include_router(router=oauth_router, prefix="/oauth")
router.include_router(router=connections_router, prefix="/connections")
