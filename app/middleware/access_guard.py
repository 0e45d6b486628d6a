"""API 访问控制中间件。"""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.services import route_registry
from app.services.access_types import RequestMeta
from app.services.errors import AuditWriteError

logger = logging.getLogger(__name__)


def forbidden_response() -> Response:
    """返回统一的 403 响应，不暴露拒绝的内部原因。"""

    return JSONResponse({"detail": "access denied"}, status_code=403)


class AccessGuardMiddleware(BaseHTTPMiddleware):
    """按路由映射的功能调用访问决策引擎。

    用户身份由上游网关认证后通过请求头传入，本中间件不管理会话。
    """

    def __init__(
        self,
        app,
        *,
        user_header: str = "X-User-Id",
        protected_prefix: str = "/api",
        exempt_paths: set[str] | None = None,
        max_user_id_length: int = 64,
    ):
        super().__init__(app)
        self.user_header = user_header
        self.protected_prefix = protected_prefix.rstrip("/")
        self.exempt_paths = exempt_paths or set()
        self.max_user_id_length = max_user_id_length

    def is_protected(self, path: str) -> bool:
        return path == self.protected_prefix or path.startswith(self.protected_prefix + "/")

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path

        if path in self.exempt_paths or not self.is_protected(path):
            return await call_next(request)

        user_id = (request.headers.get(self.user_header) or "").strip()
        if not user_id:
            return JSONResponse({"detail": "authentication required"}, status_code=401)
        if len(user_id) > self.max_user_id_length:
            logger.warning("用户标识超长被拒绝: %s %s length=%d", request.method, path, len(user_id))
            return JSONResponse({"detail": "invalid user identity"}, status_code=401)

        needed = route_registry.required_feature(path, request.method)
        if needed is None:
            logger.warning("未注册权限映射的请求被拒绝: %s %s", request.method, path)
            return forbidden_response()

        feature, action = needed
        engine = request.app.state.engine
        try:
            decision = await engine.evaluate(user_id, feature, action, RequestMeta(path=path, method=request.method))
        except AuditWriteError as exc:
            # 审计失败不改变已得出的决策
            logger.error("访问审计写入失败: %s %s user=%s error=%s", request.method, path, user_id, exc.message)
            decision = exc.decision

        if not decision.allowed:
            return forbidden_response()

        request.state.user_id = user_id
        request.state.decision = decision
        return await call_next(request)
