"""
API依赖项 - 组装支付服务

处理方客户端与限流存储在应用生命周期内创建并挂在 app.state 上，
这里按请求把它们组装成应用服务。
"""
from typing import Callable

from fastapi import Depends, Request

from application.ports.rate_limiter import RateLimitStore
from application.services.capture_service import CaptureReconciliationService
from application.services.payment_service import PaymentFlowMode, ReservationPaymentGateway
from application.services.webhook_service import WebhookEventProcessor
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.cache import InMemoryRateLimitStore
from infrastructure.external.payments import PaypalClients, create_paypal_clients
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def get_uow_factory() -> Callable[[], AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


def get_rate_limiter(request: Request) -> RateLimitStore:
    store = getattr(request.app.state, "rate_limiter", None)
    if store is None:
        # 生命周期未运行（例如脚本直接调用）时回退为进程内存储
        store = InMemoryRateLimitStore()
        request.app.state.rate_limiter = store
    return store


def get_paypal_clients(request: Request) -> PaypalClients:
    clients = getattr(request.app.state, "paypal_clients", None)
    if clients is None:
        clients = create_paypal_clients()
        request.app.state.paypal_clients = clients
    return clients


def get_payment_gateway(
    clients: PaypalClients = Depends(get_paypal_clients),
    rate_limiter: RateLimitStore = Depends(get_rate_limiter),
    uow_factory: Callable[[], AbstractUnitOfWork] = Depends(get_uow_factory),
) -> ReservationPaymentGateway:
    limits = payment_settings.rate_limit
    paypal = payment_settings.paypal
    capture_service = CaptureReconciliationService(
        clients.orders,
        rate_limiter,
        uow_factory,
        max_attempts=limits.max_attempts,
        decay_seconds=limits.decay_seconds,
        mismatch_penalty=limits.mismatch_penalty,
        key_prefix=limits.key_prefix,
    )
    webhook_processor = WebhookEventProcessor(clients.verifier, uow_factory)
    return ReservationPaymentGateway(
        clients.orders,
        capture_service,
        webhook_processor,
        uow_factory,
        mode=PaymentFlowMode(paypal.flow),
        checkout_complete_url=paypal.checkout_complete_url,
        default_currency=paypal.currency,
        brand_name=paypal.brand_name,
    )
