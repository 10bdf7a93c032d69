"""
FastAPI 主应用
"""
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from profit_dashboard.api import auth, expenses, locations, orders, pricing, profit, purchase_orders
from profit_dashboard.core.config import get_settings
from profit_dashboard.core.exceptions import DashboardError
from profit_dashboard.schemas.base import ErrorResponse

settings = get_settings()

# 配置日志
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.LOG_LEVEL,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info(f"🚀 启动应用: {settings.APP_NAME}")
    logger.info(f"📝 环境: {settings.ENV}")
    logger.info(f"🛍️  Shopify API 版本: {settings.SHOPIFY_API_VERSION}")
    yield
    logger.info("👋 关闭应用")


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan
)

# 配置 CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} 失败: {exc.message} {exc.details or ''}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    body = ErrorResponse(code=exc.status_code, error=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg")}
        for err in exc.errors()
    ]
    body = ErrorResponse(code=400, error="Missing required fields", details=details)
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


app.include_router(auth.router)
app.include_router(orders.router)
app.include_router(profit.router)
app.include_router(locations.router)
app.include_router(expenses.router)
app.include_router(pricing.router)
app.include_router(purchase_orders.router)


@app.get("/")
async def root():
    """根路径"""
    return {
        "app": settings.APP_NAME,
        "version": "1.0.0",
        "shopify_api_version": settings.SHOPIFY_API_VERSION,
        "status": "running",
    }


@app.get("/health")
async def health():
    """健康检查；database=false 时费用与价格缓存接口不可用"""
    return {"status": "healthy", "database": bool(settings.database_dsn)}
