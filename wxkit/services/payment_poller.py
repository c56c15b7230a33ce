"""
支付轮询调度器：下单并由前端调起支付后，在后台轮询订单查询接口确认支付完成。

轮询策略：
- 10 分钟内：每 1 秒查询一次
- 10 分钟后：停止轮询
- TRADE_STATE 为 SUCCESS 时调用 on_paid 并停止
- 查询失败（RESULT_CODE 非 SUCCESS）或进入其他终态（CLOSED、REVOKED、PAYERROR 等）时停止

查询接口是同步调用，放在线程中执行，不阻塞事件循环。
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from wxkit.services.errors import WechatError
from wxkit.services.pay_service import PayService

logger = logging.getLogger(__name__)

POLL_WINDOW_SECONDS = 600

# 仍可能转为支付成功的交易状态，其余状态视为终态
PENDING_TRADE_STATES = ("NOTPAY", "USERPAYING")

# 活跃的轮询任务 {out_trade_no: asyncio.Task}
_active_tasks: dict[str, asyncio.Task] = {}


def _get_poll_interval(elapsed_seconds: float) -> float | None:
    """
    根据已过时间返回轮询间隔（秒）。
    超过 10 分钟返回 None 表示停止轮询。
    """
    if elapsed_seconds < POLL_WINDOW_SECONDS:
        return 1.0
    else:
        return None


async def _poll_order_payment(
    pay_service: PayService,
    out_trade_no: str,
    on_paid: Callable[[str, dict], None] | None,
) -> bool:
    """
    轮询指定订单直到支付成功或超时。

    Returns:
        True 表示检测到支付成功。
    """
    logger.info("启动支付轮询: out_trade_no=%s", out_trade_no)
    start_time = datetime.now()
    poll_count = 0

    try:
        while True:
            elapsed = (datetime.now() - start_time).total_seconds()
            interval = _get_poll_interval(elapsed)

            if interval is None:
                logger.info(
                    "轮询超时(10分钟), 停止轮询: out_trade_no=%s, 共轮询%d次",
                    out_trade_no, poll_count,
                )
                return False

            poll_count += 1
            try:
                result = await asyncio.to_thread(
                    pay_service.query_order, out_trade_no
                )
            except WechatError as e:
                logger.warning(
                    "轮询订单查询异常: out_trade_no=%s, error=%s",
                    out_trade_no, e,
                )
            else:
                if result.is_success and result.trade_state == "SUCCESS":
                    logger.info(
                        "轮询检测到支付成功: out_trade_no=%s, 耗时%.1f秒, 共轮询%d次",
                        out_trade_no, elapsed, poll_count,
                    )
                    if on_paid is not None:
                        on_paid(out_trade_no, result.data)
                    return True
                if not result.is_success or result.trade_state not in PENDING_TRADE_STATES:
                    logger.info(
                        "订单已终止, 停止轮询: out_trade_no=%s, trade_state=%s, err_code=%s, 共轮询%d次",
                        out_trade_no, result.trade_state, result.get("err_code"), poll_count,
                    )
                    return False

            await asyncio.sleep(interval)

    except asyncio.CancelledError:
        logger.info("轮询任务被取消: out_trade_no=%s", out_trade_no)
        raise
    finally:
        if _active_tasks.get(out_trade_no) is asyncio.current_task():
            _active_tasks.pop(out_trade_no, None)


def start_payment_polling(
    pay_service: PayService,
    out_trade_no: str,
    on_paid: Callable[[str, dict], None] | None = None,
) -> asyncio.Task | None:
    """
    为指定订单启动后台支付轮询任务，需在事件循环中调用。

    如果该订单已有轮询任务在运行，则跳过。
    """
    if out_trade_no in _active_tasks:
        logger.debug("轮询任务已存在: out_trade_no=%s", out_trade_no)
        return _active_tasks[out_trade_no]

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning("无法启动轮询任务(无事件循环): out_trade_no=%s", out_trade_no)
        return None

    task = loop.create_task(_poll_order_payment(pay_service, out_trade_no, on_paid))
    _active_tasks[out_trade_no] = task
    return task


def cancel_payment_polling(out_trade_no: str) -> None:
    """取消指定订单的轮询任务。"""
    task = _active_tasks.pop(out_trade_no, None)
    if task and not task.done():
        task.cancel()


def get_active_polling_count() -> int:
    """返回当前活跃的轮询任务数量。"""
    return len(_active_tasks)
