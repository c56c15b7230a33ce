"""
平台配置服务：从环境变量（支持 .env 文件）读取微信凭证、接口地址和超时设置。

环境变量：
- WECHAT_APP_ID / WECHAT_APP_SECRET: 公众号或小程序凭证（必填）
- WECHAT_MCH_ID / WECHAT_MCH_KEY: 商户号和商户 API 密钥（支付接口必填）
- WECHAT_NOTIFY_URL: 支付结果通知地址
- WECHAT_SERVER_IP: 服务器出口 IP，JSAPI 下单时作为 spbill_create_ip
- WECHAT_HTTP_TIMEOUT: 请求超时秒数，默认 10
"""

import logging
import os

from dotenv import load_dotenv

from wxkit.models.schemas import Credentials
from wxkit.services.errors import ConfigError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 10.0

# 微信接口地址
API_ENDPOINTS = {
    "openid": "https://api.weixin.qq.com/sns/jscode2session",
    "access_token": "https://api.weixin.qq.com/cgi-bin/token",
    "user_access_token": "https://api.weixin.qq.com/sns/oauth2/access_token",
    "userinfo": "https://api.weixin.qq.com/sns/userinfo",
    "msg_sec_check": "https://api.weixin.qq.com/wxa/msg_sec_check",
    "prepay": "https://api.mch.weixin.qq.com/pay/unifiedorder",
    "query_order": "https://api.mch.weixin.qq.com/pay/orderquery",
    "jsapi_ticket": "https://api.weixin.qq.com/cgi-bin/ticket/getticket",
}


def get_credentials() -> Credentials:
    """
    读取微信凭证。

    Raises:
        ConfigError: WECHAT_APP_ID 或 WECHAT_APP_SECRET 未配置。
    """
    app_id = os.getenv("WECHAT_APP_ID", "")
    app_secret = os.getenv("WECHAT_APP_SECRET", "")
    if not app_id or not app_secret:
        raise ConfigError("WECHAT_APP_ID 或 WECHAT_APP_SECRET 未配置")

    mch_id = os.getenv("WECHAT_MCH_ID", "")
    mch_key = os.getenv("WECHAT_MCH_KEY", "")
    if not mch_id or not mch_key:
        logger.info("未配置商户号或商户密钥，支付接口不可用")

    return Credentials(
        app_id=app_id,
        app_secret=app_secret,
        mch_id=mch_id,
        mch_key=mch_key,
    )


def get_http_timeout() -> float:
    """
    读取请求超时秒数。

    Raises:
        ConfigError: 配置值不是正数。
    """
    raw = os.getenv("WECHAT_HTTP_TIMEOUT")
    if raw is None or raw == "":
        return DEFAULT_HTTP_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        raise ConfigError(f"WECHAT_HTTP_TIMEOUT 格式无效: {raw}")
    if timeout <= 0:
        raise ConfigError(f"WECHAT_HTTP_TIMEOUT 必须大于 0: {raw}")
    return timeout


def get_notify_url() -> str:
    return os.getenv("WECHAT_NOTIFY_URL", "")


def get_server_ip() -> str:
    return os.getenv("WECHAT_SERVER_IP", "127.0.0.1")
