"""
微信 SDK 异常定义。

所有公开操作要么返回结果，要么抛出以下异常之一，
调用方按异常类型区分平台错误、网络错误和参数错误。
"""


class WechatError(Exception):
    """微信 SDK 异常基类。"""

    def __init__(self, message: str, code: int | str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class PlatformError(WechatError):
    """微信平台返回非成功状态码（errcode 非 0 或 RETURN_CODE/RESULT_CODE 非 SUCCESS）。"""
    pass


class TransportError(WechatError):
    """网络异常、请求超时或响应体无法解析。"""
    pass


class ValidationError(WechatError):
    """调用参数不合法，在发起网络请求之前抛出。"""
    pass


class ConfigError(WechatError):
    """必需的环境配置缺失或格式错误。"""
    pass
