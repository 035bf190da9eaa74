"""
Webhook 路由模块

- POST /webhooks/stripe: 接收 Stripe 事件（需要 Stripe-Signature 头部）
- OPTIONS /webhooks/stripe: 跨域预检，返回空的成功响应

状态码约定：
- 200: 已处理（包括不处理的事件类型、找不到用户/订阅等无需重试的情况）
- 400: 签名错误或内容无法解析，Stripe 不应原样重试
- 500: 配置缺失或依赖暂时失败，Stripe 会重试
"""
from fastapi import APIRouter, Header, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from billing_sync.api.deps import WebhookProcessorDep
from billing_sync.api.schemas import ApiEnvelope

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, stripe-signature",
}


@router.options("/stripe")
def stripe_webhook_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/stripe", response_model=ApiEnvelope)
async def stripe_webhook(
    request: Request,
    processor: WebhookProcessorDep,
    stripe_signature: str | None = Header(default=None),
) -> JSONResponse:
    # Signature is computed over the exact bytes, so read the raw body.
    payload = await request.body()
    ack = await run_in_threadpool(processor.process, payload, stripe_signature)
    return JSONResponse(
        status_code=200,
        content=ApiEnvelope(data=ack.model_dump(mode="json")).model_dump(mode="json"),
        headers=CORS_HEADERS,
    )
