"""
API 路由聚合模块

路由模块说明：
- webhooks: Stripe webhook 接收
- utils: 工具相关（健康检查等）
"""
from fastapi import APIRouter

from billing_sync.api.routes import (
    utils,  # 工具路由
    webhooks,  # Webhook 路由
)

api_router = APIRouter()

api_router.include_router(webhooks.router)  # /webhooks/*
api_router.include_router(utils.router)  # /utils/*
