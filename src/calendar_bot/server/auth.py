from __future__ import annotations

import hmac

from fastapi import HTTPException, Request


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    token_header = request.headers.get("X-Admin-Token", "").strip()
    return token_header or None


async def require_admin_auth(request: Request) -> dict[str, str]:
    admin_token: str = request.app.state.admin_token
    if not admin_token:
        raise HTTPException(status_code=503, detail="ADMIN_AUTH_TOKEN 未配置")

    token = extract_token(request)
    if token and hmac.compare_digest(token.encode("utf-8"), admin_token.encode("utf-8")):
        return {"auth": "token", "user": "admin-token"}

    raise HTTPException(status_code=401, detail="未授权")


async def require_dispatch_auth(request: Request) -> dict[str, str]:
    """提醒入口鉴权: 配置了 DISPATCH_SHARED_SECRET 时校验 X-Dispatch-Secret，否则退回管理员鉴权"""
    secret: str = request.app.state.dispatch_secret
    if not secret:
        return await require_admin_auth(request)

    incoming = request.headers.get("X-Dispatch-Secret", "")
    if not hmac.compare_digest(incoming.encode("utf-8"), secret.encode("utf-8")):
        raise HTTPException(status_code=401, detail="提醒入口鉴权失败")
    return {"auth": "dispatch-secret", "user": "scheduler"}
