"""
HTTP 传输层：封装 httpx 同步请求，统一超时和异常处理。

- 字典 payload：GET 时作为查询参数，POST 时作为表单提交
- 字符串 payload：作为原始请求体（支付接口的 XML）POST
- parse_json=True 时将响应解码为字典，否则返回响应文本
"""

import json
import logging

import httpx

from wxkit.services.errors import TransportError

logger = logging.getLogger(__name__)

_XML_HEADERS = {"Content-Type": "text/xml; charset=utf-8"}


class HttpClient:
    """微信接口 HTTP 客户端。"""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def send(
        self,
        url: str,
        payload: dict | str | None = None,
        method: str = "GET",
        parse_json: bool = False,
    ) -> dict | str:
        """
        发送请求并返回响应。

        Args:
            url: 接口地址。
            payload: 字典参数或原始字符串请求体。
            method: GET 或 POST。
            parse_json: 是否将响应按 JSON 解码。

        Returns:
            parse_json 为 True 时返回 dict，否则返回响应文本。

        Raises:
            TransportError: 网络异常、超时、HTTP 状态码错误或 JSON 解析失败。
        """
        method = method.upper()
        if method not in ("GET", "POST"):
            raise ValueError(f"不支持的请求方法: {method}")

        try:
            with httpx.Client(timeout=self.timeout) as client:
                if method == "GET":
                    response = client.get(url, params=payload)
                elif isinstance(payload, str):
                    response = client.post(
                        url,
                        content=payload.encode("utf-8"),
                        headers=_XML_HEADERS,
                    )
                else:
                    response = client.post(url, data=payload)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("请求微信接口超时: url=%s, timeout=%s", url, self.timeout)
            raise TransportError(f"请求微信接口超时: {e}") from e
        except httpx.HTTPError as e:
            logger.warning("请求微信接口失败: url=%s, error=%s", url, e)
            raise TransportError(f"请求微信接口失败: {e}") from e

        if not parse_json:
            return response.text

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise TransportError(f"解析微信响应失败: {e}") from e

        if not isinstance(data, dict):
            raise TransportError("解析微信响应失败: 响应不是 JSON 对象")
        return data
