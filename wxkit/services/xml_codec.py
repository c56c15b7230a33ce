"""微信支付 XML 报文编解码。"""

import xml.etree.ElementTree as ET

from wxkit.services.errors import TransportError

# 值中出现这些字符时使用 CDATA 包裹，其余原样写入
# 值内的 "]]>" 拆到两个 CDATA 段中，避免提前结束 CDATA
_MARKUP_CHARS = ("<", ">", "&")


def _format_value(value) -> str:
    text = str(value)
    if any(ch in text for ch in _MARKUP_CHARS):
        text = text.replace("]]>", "]]]]><![CDATA[>")
        return f"<![CDATA[{text}]]>"
    return text


def dict_to_xml(params: dict) -> str:
    """按字典插入顺序生成 <xml> 请求报文，整数值原样写为数字。"""
    parts = ["<xml>"]
    for key, value in params.items():
        parts.append(f"<{key}>{_format_value(value)}</{key}>")
    parts.append("</xml>")
    return "".join(parts)


def xml_to_dict(text: str, upper: bool = True) -> dict:
    """
    将微信返回的 XML 转换为扁平字典。

    Args:
        text: 响应 XML 文本。
        upper: 是否将键名转换为大写。

    Raises:
        TransportError: 响应不是合法 XML。
    """
    if not text or not text.strip():
        raise TransportError("解析微信响应失败: 响应为空")
    try:
        root = ET.fromstring(text.strip())
    except ET.ParseError as e:
        raise TransportError(f"解析微信响应失败: {e}") from e

    result = {}
    for child in root:
        key = child.tag.upper() if upper else child.tag
        result[key] = (child.text or "").strip()
    return result
