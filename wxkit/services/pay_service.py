"""
微信支付服务：统一下单、JSAPI 支付参数包、H5 支付和订单状态查询。

下单流程：
1. 按字段顺序组装下单参数（openid 仅在存在时加入）
2. 使用商户密钥生成 MD5 签名
3. 按相同顺序生成 XML 请求体并 POST 到统一下单接口
4. 响应 XML 转为大写键名字典，RETURN_CODE 与 RESULT_CODE 均为 SUCCESS 才算成功
"""

import logging
import time

from wxkit.models.schemas import (
    TRADE_TYPE_JSAPI,
    TRADE_TYPE_MWEB,
    TRADE_TYPES,
    Credentials,
    OrderRequest,
    OrderResult,
    PaymentPackage,
)
from wxkit.services.errors import PlatformError, ValidationError
from wxkit.services.http_client import HttpClient
from wxkit.services.platform_config import API_ENDPOINTS
from wxkit.services.sign import generate_nonce, make_sign
from wxkit.services.xml_codec import dict_to_xml, xml_to_dict

logger = logging.getLogger(__name__)

ORDER_NOT_PAID_MSG = "未支付或不存在订单"
_ORDER_FAILED_MSG = "统一下单失败"


class PayService:
    """微信支付服务。"""

    def __init__(
        self,
        credentials: Credentials,
        http: HttpClient | None = None,
        endpoints: dict | None = None,
    ):
        self.credentials = credentials
        self.http = http or HttpClient()
        self.api = dict(API_ENDPOINTS)
        if endpoints:
            self.api.update(endpoints)

    def _require_merchant(self) -> None:
        if not self.credentials.has_merchant:
            raise ValidationError("未配置商户号或商户密钥")

    def _post_xml(self, api: str, params: dict) -> OrderResult:
        """签名后以 XML 请求体 POST，返回大写键名的响应。"""
        signed = dict(params)
        signed["sign"] = make_sign(params, self.credentials.mch_key)
        xml = self.http.send(self.api[api], dict_to_xml(signed), "POST")
        return OrderResult(data=xml_to_dict(xml, upper=True))

    @staticmethod
    def _validate_order(req: OrderRequest) -> None:
        if req.trade_type not in TRADE_TYPES:
            raise ValidationError(f"不支持的交易类型: {req.trade_type}")
        if isinstance(req.total_fee, bool) or not isinstance(req.total_fee, int):
            raise ValidationError("订单金额必须是整数，单位为分")
        if req.total_fee < 0:
            raise ValidationError("订单金额不能为负数")
        if not req.out_trade_no:
            raise ValidationError("商户订单号不能为空")
        if req.trade_type == TRADE_TYPE_JSAPI and not req.openid:
            raise ValidationError("JSAPI 支付必须提供用户 openid")

    def create_unified_order(self, req: OrderRequest) -> OrderResult:
        """
        统一下单。

        Args:
            req: 下单请求。

        Returns:
            成功时的下单结果，包含 PREPAY_ID（H5 支付另含 MWEB_URL）。

        Raises:
            ValidationError: 参数不合法或未配置商户信息。
            PlatformError: RETURN_CODE 或 RESULT_CODE 非 SUCCESS。
            TransportError: 网络异常或响应无法解析。
        """
        self._require_merchant()
        self._validate_order(req)

        # 字段顺序与 XML 报文一致
        params = {
            "appid": self.credentials.app_id,
            "body": req.body,
            "mch_id": self.credentials.mch_id,
            "nonce_str": req.nonce_str,
            "notify_url": req.notify_url,
        }
        if req.openid:
            params["openid"] = req.openid
        params["out_trade_no"] = req.out_trade_no
        params["spbill_create_ip"] = req.spbill_create_ip
        params["total_fee"] = req.total_fee
        params["trade_type"] = req.trade_type

        result = self._post_xml("prepay", params)
        if not result.is_success:
            message = (
                result.return_msg
                or result.get("ERR_CODE_DES")
                or _ORDER_FAILED_MSG
            )
            logger.warning(
                "统一下单失败: out_trade_no=%s, return_code=%s, result_code=%s, msg=%s",
                req.out_trade_no, result.return_code, result.result_code, message,
            )
            raise PlatformError(message, code=result.get("ERR_CODE"))

        logger.info(
            "统一下单成功: out_trade_no=%s, trade_type=%s, total_fee=%d",
            req.out_trade_no, req.trade_type, req.total_fee,
        )
        return result

    def pay_via_app(
        self,
        body: str,
        total_fee: int,
        out_trade_no: str,
        openid: str,
        notify_url: str,
        server_ip: str,
    ) -> PaymentPackage:
        """
        JSAPI 支付（公众号 / 小程序内）：下单后生成前端调起支付所需的签名参数包。

        Args:
            server_ip: 服务器终端 IP，作为 spbill_create_ip。

        Raises:
            ValidationError: openid 为空等参数错误，不会发起网络请求。
            PlatformError: 下单失败。
        """
        if not openid:
            raise ValidationError("JSAPI 支付必须提供用户 openid")

        nonce_str = generate_nonce(32)
        result = self.create_unified_order(OrderRequest(
            trade_type=TRADE_TYPE_JSAPI,
            out_trade_no=out_trade_no,
            body=body,
            total_fee=total_fee,
            spbill_create_ip=server_ip,
            notify_url=notify_url,
            nonce_str=nonce_str,
            openid=openid,
        ))

        time_stamp = str(int(time.time()))
        package = f"prepay_id={result.prepay_id}"
        pay_params = {
            "appId": self.credentials.app_id,
            "nonceStr": nonce_str,
            "package": package,
            "signType": "MD5",
            "timeStamp": time_stamp,
        }
        return PaymentPackage(
            app_id=self.credentials.app_id,
            time_stamp=time_stamp,
            nonce_str=nonce_str,
            package=package,
            sign_type="MD5",
            pay_sign=make_sign(pay_params, self.credentials.mch_key),
            out_trade_no=out_trade_no,
        )

    def pay_via_web(
        self,
        body: str,
        total_fee: int,
        out_trade_no: str,
        notify_url: str,
        client_ip: str,
    ) -> OrderResult:
        """
        H5 支付（手机浏览器）：下单并原样返回结果，跳转地址在 MWEB_URL 中。

        Args:
            client_ip: 用户终端 IP，作为 spbill_create_ip。
        """
        return self.create_unified_order(OrderRequest(
            trade_type=TRADE_TYPE_MWEB,
            out_trade_no=out_trade_no,
            body=body,
            total_fee=total_fee,
            spbill_create_ip=client_ip,
            notify_url=notify_url,
            nonce_str=generate_nonce(32),
        ))

    def query_order(
        self,
        out_trade_no: str | None = None,
        transaction_id: str | None = None,
    ) -> OrderResult:
        """
        调用订单查询接口，原样返回响应（含 TRADE_STATE）。

        同时传入时优先使用商户订单号 out_trade_no。

        Raises:
            ValidationError: 两个订单号均未提供。
            TransportError: 网络异常或响应无法解析。
        """
        if not out_trade_no and not transaction_id:
            raise ValidationError("商户订单号和微信订单号至少提供一个")
        self._require_merchant()

        params = {
            "appid": self.credentials.app_id,
            "mch_id": self.credentials.mch_id,
            "nonce_str": generate_nonce(32),
        }
        if out_trade_no:
            params["out_trade_no"] = out_trade_no
        else:
            params["transaction_id"] = transaction_id

        return self._post_xml("query_order", params)

    def query_order_status(
        self,
        out_trade_no: str | None = None,
        transaction_id: str | None = None,
    ) -> bool:
        """
        查询订单状态。

        Returns:
            True：RETURN_CODE 与 RESULT_CODE 均为 SUCCESS。

        Raises:
            ValidationError: 两个订单号均未提供。
            PlatformError: 未支付或订单不存在（不透传平台消息）。
        """
        result = self.query_order(out_trade_no, transaction_id)
        if result.is_success:
            return True

        logger.info(
            "订单未支付或不存在: out_trade_no=%s, transaction_id=%s, return_msg=%s",
            out_trade_no, transaction_id, result.return_msg,
        )
        raise PlatformError(ORDER_NOT_PAID_MSG)
