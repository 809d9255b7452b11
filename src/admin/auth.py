"""Admin API 鉴权

静态 token，可放在 `Authorization: Bearer <token>` 或 `X-Admin-Token` 头里。
作为 FastAPI 依赖挂在受保护的路由上；未配置 ADMIN_AUTH_TOKEN 时一律返回 503。
"""

from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import ADMIN_AUTH_TOKEN
from logger import logger

if not ADMIN_AUTH_TOKEN:
    logger.warning("未配置 ADMIN_AUTH_TOKEN，管理 API 将不可访问")

_bearer = HTTPBearer(auto_error=False)


def _token_matches(token: str) -> bool:
    return hmac.compare_digest(token.encode("utf-8"), ADMIN_AUTH_TOKEN.encode("utf-8"))


async def require_admin_auth(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    x_admin_token: str | None = Header(default=None),
) -> str:
    """校验通过返回调用方标识，用于审计日志"""
    if not ADMIN_AUTH_TOKEN:
        raise HTTPException(status_code=503, detail="ADMIN_AUTH_TOKEN 未配置")

    if credentials is not None and _token_matches(credentials.credentials):
        return "bearer"
    if x_admin_token and _token_matches(x_admin_token.strip()):
        return "x-admin-token"

    raise HTTPException(status_code=401, detail="未授权")
