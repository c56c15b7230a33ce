"""
微信开放接口客户端：登录凭证校验、access_token、用户授权、JS-SDK 签名和内容安全检测。

主要功能：
- fetch_openid: 小程序 code 换取 openid / session_key
- get_access_token / get_jsapi_ticket: 全局凭据，经 CredentialCache 缓存
- get_user_access_token / get_user_info: 网页授权
- build_js_sign_package: JS-SDK wx.config 签名包
- check_content: 文本内容安全检测
"""

import logging
import time

from wxkit.models.schemas import Credentials, JsSignPackage
from wxkit.services.errors import PlatformError, TransportError
from wxkit.services.http_client import HttpClient
from wxkit.services.platform_config import API_ENDPOINTS
from wxkit.services.sign import generate_nonce, make_js_signature
from wxkit.services.token_cache import CredentialCache

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
JSAPI_TICKET_KEY = "jsapi_ticket"

# access_token 无效或已过期的错误码
_INVALID_TOKEN_CODES = (40001, 40014, 42001)


def _raise_for_errcode(res: dict, action: str) -> None:
    """errcode 存在且非 0 时抛出 PlatformError，消息为平台返回的 errmsg。"""
    errcode = res.get("errcode")
    if errcode is None:
        return
    try:
        code = int(errcode)
    except (TypeError, ValueError):
        code = errcode
    if code == 0:
        return
    message = res.get("errmsg") or f"{action}失败"
    logger.warning("%s失败: errcode=%s, errmsg=%s", action, code, message)
    raise PlatformError(message, code=code)


class WechatClient:
    """微信开放接口客户端。"""

    def __init__(
        self,
        credentials: Credentials,
        cache: CredentialCache,
        http: HttpClient | None = None,
        endpoints: dict | None = None,
    ):
        self.credentials = credentials
        self.cache = cache
        self.http = http or HttpClient()
        self.api = dict(API_ENDPOINTS)
        if endpoints:
            self.api.update(endpoints)

    @property
    def app_id(self) -> str:
        return self.credentials.app_id

    def _get_json(self, api: str, params: dict, action: str) -> dict:
        res = self.http.send(self.api[api], params, "GET", parse_json=True)
        _raise_for_errcode(res, action)
        return res

    # ── 登录与授权 ────────────────────────────────────────

    def fetch_openid(self, code: str) -> dict:
        """
        小程序登录：使用 wx.login 返回的 code 换取 openid。

        Returns:
            dict: {"openid", "session_key", "unionid"(可选)}

        Raises:
            PlatformError: 微信返回 errcode 非 0。
            TransportError: 网络异常或响应无法解析。
        """
        params = {
            "appid": self.credentials.app_id,
            "secret": self.credentials.app_secret,
            "grant_type": "authorization_code",
            "js_code": code,
        }
        return self._get_json("openid", params, "获取openid")

    def get_access_token(self) -> str:
        """获取全局接口调用凭据 access_token，优先读取缓存。"""
        return self.cache.get_or_fetch(ACCESS_TOKEN_KEY, self._fetch_access_token)

    def _fetch_access_token(self) -> tuple[str, int]:
        params = {
            "grant_type": "client_credential",
            "appid": self.credentials.app_id,
            "secret": self.credentials.app_secret,
        }
        res = self._get_json("access_token", params, "获取access_token")
        if not res.get("access_token"):
            raise TransportError("微信响应缺少 access_token 字段")
        return res["access_token"], int(res.get("expires_in", 7200))

    def get_user_access_token(self, code: str) -> dict:
        """
        网页授权：code 换取用户 access_token（不缓存）。

        Returns:
            dict: {"access_token", "expires_in", "refresh_token", "openid", "scope"}
        """
        params = {
            "appid": self.credentials.app_id,
            "secret": self.credentials.app_secret,
            "code": code,
            "grant_type": "authorization_code",
        }
        return self._get_json("user_access_token", params, "获取用户access_token")

    def get_user_info(self, code: str, lang: str = "zh_CN") -> dict:
        """网页授权后拉取用户信息（昵称、头像、unionid 等）。"""
        token = self.get_user_access_token(code)
        params = {
            "access_token": token["access_token"],
            "openid": token["openid"],
            "lang": lang,
        }
        return self._get_json("userinfo", params, "获取用户信息")

    # ── JS-SDK ────────────────────────────────────────────

    def get_jsapi_ticket(self) -> str:
        """获取 JS-SDK 临时票据 jsapi_ticket，优先读取缓存。"""
        return self.cache.get_or_fetch(JSAPI_TICKET_KEY, self._fetch_jsapi_ticket)

    def _fetch_jsapi_ticket(self) -> tuple[str, int]:
        access_token = self.get_access_token()
        params = {"type": "jsapi", "access_token": access_token}
        try:
            res = self._get_json("jsapi_ticket", params, "获取jsapi_ticket")
        except PlatformError as e:
            self._drop_invalid_token(e)
            raise
        if not res.get("ticket"):
            raise TransportError("微信响应缺少 ticket 字段")
        return res["ticket"], int(res.get("expires_in", 7200))

    def build_js_sign_package(self, url: str = "") -> JsSignPackage:
        """
        生成 JS-SDK 权限验证签名包。

        Args:
            url: 调用 JS 接口的页面完整 URL（不含 # 及其后部分）。
        """
        ticket = self.get_jsapi_ticket()
        nonce_str = generate_nonce(32)
        timestamp = int(time.time())
        signature, raw_string = make_js_signature(ticket, nonce_str, timestamp, url)
        return JsSignPackage(
            app_id=self.credentials.app_id,
            nonce_str=nonce_str,
            timestamp=timestamp,
            url=url,
            signature=signature,
            raw_string=raw_string,
        )

    # ── 内容安全 ──────────────────────────────────────────

    def check_content(self, content: str) -> None:
        """
        检查一段文本是否含有违法违规内容，未检出违规时正常返回。

        Raises:
            PlatformError: 内容违规（errcode=87014）或其他平台错误。
        """
        access_token = self.get_access_token()
        url = f"{self.api['msg_sec_check']}?access_token={access_token}"
        res = self.http.send(url, {"content": content}, "POST", parse_json=True)
        try:
            _raise_for_errcode(res, "内容安全检测")
        except PlatformError as e:
            self._drop_invalid_token(e)
            raise

    def _drop_invalid_token(self, error: PlatformError) -> None:
        """平台提示 access_token 失效时清除缓存，下次调用重新获取。"""
        if error.code in _INVALID_TOKEN_CODES:
            logger.info("access_token 已失效，清除缓存: errcode=%s", error.code)
            self.cache.invalidate(ACCESS_TOKEN_KEY)
