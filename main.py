"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import payments as payments_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.settings import payment_settings
from core.logging_config import get_logger, configure_logging
from infrastructure.cache import (
    InMemoryRateLimitStore,
    RedisRateLimitStore,
    init_redis_client,
    shutdown_redis_client,
)
from infrastructure.database import create_tables
from infrastructure.external.payments import create_paypal_clients


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


async def _init_rate_limiter():
    """有 redis.url 时使用Redis计数（多进程共享），否则回退为进程内存储"""
    if settings.redis.url:
        try:
            client = await init_redis_client()
            logger.info("rate_limiter_selected", provider="redis")
            return RedisRateLimitStore(client, namespace=settings.redis.namespace)
        except Exception as exc:
            logger.error("redis_init_failed", error=str(exc))
    logger.info("rate_limiter_selected", provider="inmemory")
    return InMemoryRateLimitStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）；生产环境的 reservations 表由宿主系统管理
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")

    app.state.rate_limiter = await _init_rate_limiter()
    app.state.paypal_clients = create_paypal_clients()
    logger.info(
        "paypal_clients_initialized",
        mode=payment_settings.paypal.mode,
        flow=payment_settings.paypal.flow,
        webhook_configured=bool(payment_settings.paypal.webhook_id),
    )

    yield

    await app.state.paypal_clients.aclose()
    if settings.redis.url:
        await shutdown_redis_client()
        logger.info("redis_shutdown", message="Redis connection closed")
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="预订系统 PayPal 支付网关",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id与client_ip）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(payments_routes.router, prefix="/api/v1")


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
        message="Welcome"
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
