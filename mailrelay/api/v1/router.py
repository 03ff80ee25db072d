from fastapi import APIRouter

from mailrelay.api.v1 import email


def build_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(email.router)
    return router


api_router = build_api_router()
