"""
微信接口路由：登录、JS-SDK 签名、JSAPI / H5 支付下单和订单状态查询。

终端 IP 由本层显式传入支付服务：
- JSAPI 支付使用服务器 IP（WECHAT_SERVER_IP）
- H5 支付使用用户终端 IP（request.client.host）
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from wxkit.services.errors import PlatformError, TransportError, ValidationError, WechatError
from wxkit.services.http_client import HttpClient
from wxkit.services.pay_service import PayService
from wxkit.services.payment_poller import start_payment_polling
from wxkit.services.platform_config import (
    get_credentials,
    get_http_timeout,
    get_notify_url,
    get_server_ip,
)
from wxkit.services.token_cache import CredentialCache, SqliteCacheStore
from wxkit.services.wechat_client import WechatClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/wechat")


@lru_cache(maxsize=1)
def get_wechat_client() -> WechatClient:
    """进程内共享一个 WechatClient，凭据缓存落在 SQLite。"""
    return WechatClient(
        get_credentials(),
        CredentialCache(SqliteCacheStore()),
        HttpClient(timeout=get_http_timeout()),
    )


@lru_cache(maxsize=1)
def get_pay_service() -> PayService:
    return PayService(get_credentials(), HttpClient(timeout=get_http_timeout()))


def _error_response(e: WechatError) -> JSONResponse:
    if isinstance(e, TransportError):
        msg = "请求微信接口失败，请稍后重试"
    else:
        msg = e.message
    return JSONResponse(content={"code": -1, "msg": msg})


def _parse_total_fee(raw: str | None) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("total_fee 必须是整数，单位为分")


def _on_paid(out_trade_no: str, data: dict) -> None:
    logger.info(
        "订单支付完成: out_trade_no=%s, transaction_id=%s",
        out_trade_no, data.get("TRANSACTION_ID"),
    )


async def _read_form(request: Request, required: list[str]) -> dict:
    form_data = await request.form()
    params = {k: v for k, v in form_data.items() if isinstance(v, str)}
    missing = [k for k in required if not params.get(k)]
    if missing:
        raise ValidationError(f"缺少必填参数: {', '.join(missing)}")
    return params


@router.post("/login")
async def login(request: Request, client: WechatClient = Depends(get_wechat_client)):
    """小程序登录：code 换取 openid。"""
    try:
        params = await _read_form(request, ["code"])
        res = await run_in_threadpool(client.fetch_openid, params["code"])
    except WechatError as e:
        return _error_response(e)

    return JSONResponse(content={
        "code": 1,
        "openid": res.get("openid"),
        "unionid": res.get("unionid"),
    })


@router.get("/js-sign")
async def js_sign(
    url: str = Query(""),
    client: WechatClient = Depends(get_wechat_client),
):
    """JS-SDK wx.config 签名包。"""
    try:
        package = await run_in_threadpool(client.build_js_sign_package, url)
    except WechatError as e:
        return _error_response(e)

    return JSONResponse(content={"code": 1, **package.to_dict()})


@router.post("/pay/jsapi")
async def pay_jsapi(request: Request, svc: PayService = Depends(get_pay_service)):
    """
    JSAPI 下单，返回前端调起支付的参数包。

    表单参数：body, total_fee（分）, out_trade_no, openid, notify_url（可选）
    """
    try:
        params = await _read_form(request, ["body", "total_fee", "out_trade_no", "openid"])
        package = await run_in_threadpool(
            svc.pay_via_app,
            params["body"],
            _parse_total_fee(params["total_fee"]),
            params["out_trade_no"],
            params["openid"],
            params.get("notify_url") or get_notify_url(),
            get_server_ip(),
        )
    except WechatError as e:
        return _error_response(e)

    return JSONResponse(content={"code": 1, **package.to_dict()})


@router.post("/pay/h5")
async def pay_h5(request: Request, svc: PayService = Depends(get_pay_service)):
    """
    H5 下单，返回 mweb_url 并在后台轮询支付结果。

    表单参数：body, total_fee（分）, out_trade_no, notify_url（可选）
    """
    client_ip = request.client.host if request.client else ""
    try:
        params = await _read_form(request, ["body", "total_fee", "out_trade_no"])
        if not client_ip:
            raise ValidationError("无法获取用户终端 IP")
        result = await run_in_threadpool(
            svc.pay_via_web,
            params["body"],
            _parse_total_fee(params["total_fee"]),
            params["out_trade_no"],
            params.get("notify_url") or get_notify_url(),
            client_ip,
        )
    except WechatError as e:
        return _error_response(e)

    start_payment_polling(svc, params["out_trade_no"], on_paid=_on_paid)

    return JSONResponse(content={
        "code": 1,
        "out_trade_no": params["out_trade_no"],
        "prepay_id": result.prepay_id,
        "mweb_url": result.mweb_url,
    })


@router.get("/order/status")
async def order_status(
    out_trade_no: Optional[str] = Query(None),
    transaction_id: Optional[str] = Query(None),
    svc: PayService = Depends(get_pay_service),
):
    """订单状态查询，优先使用 out_trade_no。"""
    try:
        paid = await run_in_threadpool(
            svc.query_order_status, out_trade_no, transaction_id
        )
    except PlatformError as e:
        return JSONResponse(content={"code": 1, "paid": False, "msg": e.message})
    except WechatError as e:
        return _error_response(e)

    return JSONResponse(content={"code": 1, "paid": paid})
