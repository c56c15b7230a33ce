"""微信接口路由单元测试。"""

import os
import sqlite3
import tempfile
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# 在导入 wxkit 模块之前设置测试数据库路径和凭证
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False, prefix="pay_route_")
_tmp.close()
os.environ["DB_PATH"] = _tmp.name
os.environ["WECHAT_SERVER_IP"] = "10.0.0.1"
os.environ["WECHAT_NOTIFY_URL"] = "https://shop.example.com/notify"

import wxkit.database as _db_mod
from wxkit.database import init_db
from wxkit.main import app
from wxkit.models.schemas import JsSignPackage, OrderResult, PaymentPackage
from wxkit.routes.pay import get_pay_service, get_wechat_client
from wxkit.services.errors import PlatformError, TransportError, ValidationError


@pytest.fixture(autouse=True)
def _setup_db():
    """每个测试前重建数据库。"""
    os.environ["DB_PATH"] = _tmp.name
    _db_mod.DB_PATH = _tmp.name
    conn = sqlite3.connect(_tmp.name)
    conn.executescript("DROP TABLE IF EXISTS token_cache;")
    conn.close()
    init_db()
    yield


@pytest.fixture
def wechat():
    return MagicMock()


@pytest.fixture
def pay():
    return MagicMock()


@pytest.fixture
def client(wechat, pay):
    app.dependency_overrides[get_wechat_client] = lambda: wechat
    app.dependency_overrides[get_pay_service] = lambda: pay
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """健康检查端点测试。"""

    def test_health_returns_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestLogin:
    """POST /v1/wechat/login 测试。"""

    def test_success(self, client, wechat):
        wechat.fetch_openid.return_value = {"openid": "o1", "session_key": "sk"}
        resp = client.post("/v1/wechat/login", data={"code": "c1"})
        assert resp.json() == {"code": 1, "openid": "o1", "unionid": None}
        wechat.fetch_openid.assert_called_once_with("c1")

    def test_missing_code(self, client, wechat):
        resp = client.post("/v1/wechat/login", data={})
        data = resp.json()
        assert data["code"] == -1
        assert "code" in data["msg"]
        wechat.fetch_openid.assert_not_called()

    def test_platform_error_message(self, client, wechat):
        wechat.fetch_openid.side_effect = PlatformError("invalid code", code=40029)
        resp = client.post("/v1/wechat/login", data={"code": "bad"})
        assert resp.json() == {"code": -1, "msg": "invalid code"}


class TestJsSign:
    """GET /v1/wechat/js-sign 测试。"""

    def test_returns_package(self, client, wechat):
        wechat.build_js_sign_package.return_value = JsSignPackage(
            app_id="wx_app", nonce_str="N", timestamp=1, url="https://a.com",
            signature="sig", raw_string="raw",
        )
        resp = client.get("/v1/wechat/js-sign", params={"url": "https://a.com"})
        data = resp.json()
        assert data["code"] == 1
        assert data["signature"] == "sig"
        assert data["rawString"] == "raw"
        wechat.build_js_sign_package.assert_called_once_with("https://a.com")

    def test_transport_error_hides_detail(self, client, wechat):
        wechat.build_js_sign_package.side_effect = TransportError("connect refused")
        data = client.get("/v1/wechat/js-sign").json()
        assert data["code"] == -1
        assert "connect refused" not in data["msg"]


class TestPayJsapi:
    """POST /v1/wechat/pay/jsapi 测试。"""

    def test_uses_server_ip_and_default_notify_url(self, client, pay):
        pay.pay_via_app.return_value = PaymentPackage(
            app_id="A", time_stamp="1", nonce_str="N", package="prepay_id=wx1",
            sign_type="MD5", pay_sign="PS", out_trade_no="1001",
        )
        resp = client.post("/v1/wechat/pay/jsapi", data={
            "body": "t-shirt", "total_fee": "100", "out_trade_no": "1001", "openid": "o1",
        })
        data = resp.json()
        assert data["code"] == 1
        assert data["paySign"] == "PS"
        pay.pay_via_app.assert_called_once_with(
            "t-shirt", 100, "1001", "o1", "https://shop.example.com/notify", "10.0.0.1",
        )

    def test_missing_openid(self, client, pay):
        resp = client.post("/v1/wechat/pay/jsapi", data={
            "body": "t-shirt", "total_fee": "100", "out_trade_no": "1001",
        })
        assert resp.json()["code"] == -1
        pay.pay_via_app.assert_not_called()

    def test_invalid_total_fee(self, client, pay):
        resp = client.post("/v1/wechat/pay/jsapi", data={
            "body": "t-shirt", "total_fee": "1.5", "out_trade_no": "1001", "openid": "o1",
        })
        data = resp.json()
        assert data["code"] == -1
        assert "total_fee" in data["msg"]
        pay.pay_via_app.assert_not_called()


class TestPayH5:
    """POST /v1/wechat/pay/h5 测试。"""

    @patch("wxkit.routes.pay.start_payment_polling")
    def test_uses_client_ip_and_starts_polling(self, mock_poll, client, pay):
        pay.pay_via_web.return_value = OrderResult(data={
            "RETURN_CODE": "SUCCESS", "RESULT_CODE": "SUCCESS",
            "PREPAY_ID": "wx1", "MWEB_URL": "https://wx.tenpay.com/x",
        })
        resp = client.post("/v1/wechat/pay/h5", data={
            "body": "t-shirt", "total_fee": "100", "out_trade_no": "1001",
            "notify_url": "https://x/cb",
        })
        data = resp.json()
        assert data == {
            "code": 1, "out_trade_no": "1001",
            "prepay_id": "wx1", "mweb_url": "https://wx.tenpay.com/x",
        }
        pay.pay_via_web.assert_called_once_with(
            "t-shirt", 100, "1001", "https://x/cb", "testclient",
        )
        mock_poll.assert_called_once()
        assert mock_poll.call_args.args[:2] == (pay, "1001")

    @patch("wxkit.routes.pay.start_payment_polling")
    def test_order_failure_does_not_poll(self, mock_poll, client, pay):
        pay.pay_via_web.side_effect = PlatformError("商户号mch_id与appid不匹配")
        resp = client.post("/v1/wechat/pay/h5", data={
            "body": "t-shirt", "total_fee": "100", "out_trade_no": "1001",
        })
        assert resp.json() == {"code": -1, "msg": "商户号mch_id与appid不匹配"}
        mock_poll.assert_not_called()


class TestOrderStatus:
    """GET /v1/wechat/order/status 测试。"""

    def test_paid(self, client, pay):
        pay.query_order_status.return_value = True
        resp = client.get("/v1/wechat/order/status", params={"out_trade_no": "1001"})
        assert resp.json() == {"code": 1, "paid": True}
        pay.query_order_status.assert_called_once_with("1001", None)

    def test_not_paid(self, client, pay):
        pay.query_order_status.side_effect = PlatformError("未支付或不存在订单")
        data = client.get("/v1/wechat/order/status", params={"transaction_id": "42"}).json()
        assert data == {"code": 1, "paid": False, "msg": "未支付或不存在订单"}

    def test_missing_identifiers(self, client, pay):
        pay.query_order_status.side_effect = ValidationError("商户订单号和微信订单号至少提供一个")
        data = client.get("/v1/wechat/order/status").json()
        assert data["code"] == -1
