"""
FastAPI dependencies.
"""

from fastapi import Request

from domains.factory import IntegrityServices


def get_services(request: Request) -> IntegrityServices:
    return request.app.state.services


def client_address(request: Request) -> str:
    return request.client.host if request.client else ""
