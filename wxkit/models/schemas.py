"""
数据模型 / 类型定义，供各模块引用。
使用 dataclass 保持轻量。
"""

from dataclasses import dataclass, field
from typing import Optional

TRADE_TYPE_JSAPI = "JSAPI"
TRADE_TYPE_MWEB = "MWEB"
TRADE_TYPES = (TRADE_TYPE_JSAPI, TRADE_TYPE_MWEB)


@dataclass(frozen=True)
class Credentials:
    app_id: str
    app_secret: str
    mch_id: str = ""  # 商户号，仅支付接口需要
    mch_key: str = ""  # 商户 API 密钥，仅支付接口需要

    @property
    def has_merchant(self) -> bool:
        return bool(self.mch_id and self.mch_key)


@dataclass(frozen=True)
class CachedToken:
    name: str
    value: str
    expires_at: float  # Unix 时间戳（秒）


@dataclass(frozen=True)
class OrderRequest:
    trade_type: str
    out_trade_no: str
    body: str
    total_fee: int  # 单位：分
    spbill_create_ip: str
    notify_url: str
    nonce_str: str
    openid: Optional[str] = None


@dataclass(frozen=True)
class OrderResult:
    """统一下单 / 订单查询响应，键名均为大写。"""

    data: dict = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.data.get(key.upper(), default)

    @property
    def return_code(self) -> Optional[str]:
        return self.data.get("RETURN_CODE")

    @property
    def result_code(self) -> Optional[str]:
        return self.data.get("RESULT_CODE")

    @property
    def return_msg(self) -> Optional[str]:
        return self.data.get("RETURN_MSG")

    @property
    def prepay_id(self) -> Optional[str]:
        return self.data.get("PREPAY_ID")

    @property
    def trade_state(self) -> Optional[str]:
        return self.data.get("TRADE_STATE")

    @property
    def mweb_url(self) -> Optional[str]:
        return self.data.get("MWEB_URL")

    @property
    def is_success(self) -> bool:
        return self.return_code == "SUCCESS" and self.result_code == "SUCCESS"


@dataclass(frozen=True)
class PaymentPackage:
    """JSAPI 支付参数包，供前端 WeixinJSBridge / chooseWXPay 调起支付。"""

    app_id: str
    time_stamp: str
    nonce_str: str
    package: str
    sign_type: str
    pay_sign: str
    out_trade_no: str

    def to_dict(self) -> dict:
        return {
            "appId": self.app_id,
            "timeStamp": self.time_stamp,
            "nonceStr": self.nonce_str,
            "package": self.package,
            "signType": self.sign_type,
            "paySign": self.pay_sign,
            "out_trade_no": self.out_trade_no,
        }


@dataclass(frozen=True)
class JsSignPackage:
    """JS-SDK wx.config 所需的签名包。"""

    app_id: str
    nonce_str: str
    timestamp: int
    url: str
    signature: str
    raw_string: str

    def to_dict(self) -> dict:
        return {
            "appId": self.app_id,
            "nonceStr": self.nonce_str,
            "timestamp": self.timestamp,
            "url": self.url,
            "signature": self.signature,
            "rawString": self.raw_string,
        }
