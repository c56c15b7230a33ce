"""
签名模块：微信支付 MD5 签名、JS-SDK SHA1 签名和随机字符串生成。

两种签名的拼接规则不同，分别实现：
- make_sign: 参数按字典序排序、URL 编码，拼接 &key= 后 MD5 大写
- make_js_signature: 固定字段顺序，不排序不编码，SHA1 小写
"""

import hashlib
import secrets
import string
from urllib.parse import urlencode

_NONCE_ALPHABET = string.ascii_letters + string.digits


def build_sign_string(params: dict, key: str) -> str:
    """
    构建 MD5 签名前的待签名字符串。

    1. 按参数名 ASCII 码从小到大排序
    2. 拼接 URL 键值对（参数值 URL 编码）
    3. 末尾拼接 &key=商户密钥

    空值参数由调用方自行剔除（例如 openid 不存在时不放入 params）。
    """
    sorted_items = sorted(params.items())
    query_string = urlencode(sorted_items)
    return f"{query_string}&key={key}"


def make_sign(params: dict, key: str) -> str:
    """生成微信支付 MD5 签名，返回大写 32 位十六进制字符串。"""
    sign_str = build_sign_string(params, key)
    return hashlib.md5(sign_str.encode("utf-8")).hexdigest().upper()


def make_js_signature(
    ticket: str, nonce_str: str, timestamp: int | str, url: str
) -> tuple[str, str]:
    """
    生成 JS-SDK 权限验证签名。

    字段顺序固定为 jsapi_ticket、noncestr、timestamp、url，
    不参与字典序排序，也不做 URL 编码。

    Returns:
        (signature, raw_string)：SHA1 小写十六进制签名和签名原串。
    """
    raw_string = (
        f"jsapi_ticket={ticket}&noncestr={nonce_str}"
        f"&timestamp={timestamp}&url={url}"
    )
    signature = hashlib.sha1(raw_string.encode("utf-8")).hexdigest()
    return signature, raw_string


def generate_nonce(length: int = 32) -> str:
    """生成指定长度的随机字符串（字母 + 数字），用作 nonce_str。"""
    return "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(length))
