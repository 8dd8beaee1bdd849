"""Session endpoints: who am I, logout."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

COOKIE_NAME = "session"

router = APIRouter()


@router.post("/auth/logout")
def logout(response: Response) -> dict:
    """Clear the session cookie."""
    response.delete_cookie(key=COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/auth/check")
def check_auth(request: Request) -> dict:
    """Report whether the caller resolved to a journal owner."""
    user_id = getattr(request.state, "user_id", None)
    return {"authenticated": bool(user_id), "userId": user_id}
