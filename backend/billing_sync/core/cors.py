"""
跨域中间件

BACKEND_CORS_ORIGINS 只约束面向浏览器的接口。Stripe webhook 路由自己返回宽松的
CORS 头部，因此该路径前缀下的请求（包括预检）直接交给路由处理。
"""
from collections.abc import Sequence

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send


class ScopedCORSMiddleware(CORSMiddleware):
    def __init__(self, app: ASGIApp, exempt_prefixes: Sequence[str] = (), **kwargs) -> None:
        super().__init__(app, **kwargs)
        self.exempt_prefixes = tuple(exempt_prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"].startswith(self.exempt_prefixes):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


def install_cors(app: FastAPI, origins: list[str], exempt_prefixes: Sequence[str] = ()) -> None:
    """按配置的来源列表注册 CORS 中间件，exempt_prefixes 下的路径不受约束"""
    app.add_middleware(
        ScopedCORSMiddleware,
        exempt_prefixes=exempt_prefixes,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
