from fastapi import APIRouter
from .endpoints import (
    auth,
    wallet,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(wallet.router, prefix="/wallet", tags=["Wallet"])
