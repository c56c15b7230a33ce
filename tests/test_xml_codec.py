"""XML 编解码单元测试。"""

import pytest

from wxkit.services.errors import TransportError
from wxkit.services.xml_codec import dict_to_xml, xml_to_dict


class TestDictToXml:
    """dict_to_xml 单元测试。"""

    def test_keeps_insertion_order(self):
        xml = dict_to_xml({"b": "2", "a": "1", "sign": "S"})
        assert xml == "<xml><b>2</b><a>1</a><sign>S</sign></xml>"

    def test_integer_written_plain(self):
        assert "<total_fee>100</total_fee>" in dict_to_xml({"total_fee": 100})

    def test_markup_wrapped_in_cdata(self):
        xml = dict_to_xml({"body": "A&B"})
        assert xml == "<xml><body><![CDATA[A&B]]></body></xml>"


class TestXmlToDict:
    """xml_to_dict 单元测试。"""

    def test_uppercase_keys_and_cdata(self):
        text = """<xml>
            <return_code><![CDATA[SUCCESS]]></return_code>
            <return_msg><![CDATA[OK]]></return_msg>
            <prepay_id><![CDATA[wx201410272009395522657a690389285100]]></prepay_id>
        </xml>"""
        data = xml_to_dict(text)
        assert data == {
            "RETURN_CODE": "SUCCESS",
            "RETURN_MSG": "OK",
            "PREPAY_ID": "wx201410272009395522657a690389285100",
        }

    def test_keep_original_case(self):
        data = xml_to_dict("<xml><return_code>FAIL</return_code></xml>", upper=False)
        assert data == {"return_code": "FAIL"}

    def test_empty_element(self):
        assert xml_to_dict("<xml><openid></openid></xml>") == {"OPENID": ""}

    def test_malformed_raises(self):
        with pytest.raises(TransportError, match="解析微信响应失败"):
            xml_to_dict("<xml><a>1</xml>")

    def test_empty_body_raises(self):
        with pytest.raises(TransportError, match="响应为空"):
            xml_to_dict("   ")


class TestCdataTerminator:
    """值中包含 CDATA 结束符时的编码测试。"""

    def test_terminator_split_across_sections(self):
        xml = dict_to_xml({"body": "a]]>b<c"})
        assert xml == "<xml><body><![CDATA[a]]]]><![CDATA[>b<c]]></body></xml>"

    def test_terminator_round_trip(self):
        params = {"body": "a]]>b<c", "attach": "]]>"}
        assert xml_to_dict(dict_to_xml(params), upper=False) == params

    def test_terminator_cannot_inject_elements(self):
        body = "x]]></body><openid>evil</openid><body><![CDATA[y"
        data = xml_to_dict(dict_to_xml({"body": body, "total_fee": 1}), upper=False)
        assert data == {"body": body, "total_fee": "1"}
