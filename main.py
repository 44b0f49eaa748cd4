"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import close_collaborators
from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import notifications as notifications_routes
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.external.cache import get_redis_client, init_redis_client, shutdown_redis_client
from infrastructure.external.payments import close_payment_gateways


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # Redis 是 redis 存储后端的硬依赖：初始化失败直接中止启动
    if settings.storage_backend == "redis":
        await init_redis_client()
        logger.info("redis_store_initialized")
    elif settings.redis.url:
        logger.info("redis_configured_but_unused", storage_backend=settings.storage_backend)
    else:
        logger.warning("payment_store_in_memory", message="Payment records are not shared across processes")

    yield

    await close_payment_gateways()
    await close_collaborators()
    if settings.storage_backend == "redis":
        await shutdown_redis_client()
        logger.info("redis_store_shutdown")
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="PIX 支付连接器：授权、取消、结算、网关回调对账与代金券退款",
)

# 添加中间件（注意顺序：后添加的在外层，最先执行）
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# Request ID中间件在最外层，为日志提供request_id
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api/v1")
app.include_router(notifications_routes.router, prefix="/api/v1")


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


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    data = {"status": "healthy", "storage": settings.storage_backend}
    if settings.storage_backend == "redis":
        redis = await get_redis_client()
        data["redis"] = "ok" if await redis.health_check() else "unavailable"
        if data["redis"] != "ok":
            data["status"] = "degraded"
    return success_response(data=data, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
