"""
wxkit 应用入口：FastAPI 应用实例、路由注册、生命周期和后台任务。
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

load_dotenv()

# 日志配置
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    force=True,
)

logger = logging.getLogger(__name__)


# ── 后台任务 ──────────────────────────────────────────────

async def _token_purge_task() -> None:
    """定期清理过期的凭据缓存行（每 10 分钟）。"""
    from wxkit.database import purge_expired_tokens

    while True:
        try:
            removed = purge_expired_tokens(time.time())
            logger.debug("过期凭据清理完成: removed=%d", removed)
        except Exception as e:
            logger.error("过期凭据清理异常: %s", e)
        await asyncio.sleep(600)


# ── Lifespan ──────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期：启动时初始化数据库并启动后台任务。"""
    from wxkit.database import init_db

    init_db()
    logger.info("数据库初始化完成")

    tasks = []
    if os.environ.get("TESTING") != "1":
        tasks.append(asyncio.create_task(_token_purge_task()))
        logger.info("后台任务已启动：过期凭据清理")

    yield

    for t in tasks:
        t.cancel()
        try:
            await t
        except asyncio.CancelledError:
            pass


app = FastAPI(title="wxkit", description="微信登录与支付接入层", lifespan=lifespan)


# ── 配置异常 ──────────────────────────────────────────────

from wxkit.services.errors import ConfigError


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    logger.error("配置错误: %s", exc.message)
    return JSONResponse(status_code=500, content={"code": -1, "msg": exc.message})


# ── 路由注册 ──────────────────────────────────────────────

from wxkit.routes.pay import router as pay_router

app.include_router(pay_router)


# ── 健康检查 ──────────────────────────────────────────────

@app.get("/health")
async def health_check():
    return {"status": "ok"}
