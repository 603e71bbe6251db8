from __future__ import annotations

import pytest

from mcp_log_threat_server.core.formats import (
    detect_format,
    flatten_csv_line,
    flatten_json_line,
    flatten_object,
    normalize_line,
    parse_csv_header,
    parse_csv_values,
)
from mcp_log_threat_server.core.models import LogFormat


@pytest.mark.parametrize(
    ("sample", "expected"),
    [
        (['{"a":1}'], LogFormat.JSONL),
        (["timestamp,src_ip", "2025-01-01,1.2.3.4"], LogFormat.CSV),
        (["[]"], LogFormat.PLAIN),
        (["hello world"], LogFormat.PLAIN),
        ([], LogFormat.PLAIN),
        (["", "   ", '{"msg":"x"}'], LogFormat.JSONL),
        (["{not json"], LogFormat.PLAIN),
        (["name,age"], LogFormat.PLAIN),
    ],
)
def test_detect_format(sample: list[str], expected: LogFormat) -> None:
    assert detect_format(sample) is expected


def test_detect_format_looks_at_first_non_blank_line_only() -> None:
    assert detect_format(["plain text", '{"a":1}']) is LogFormat.PLAIN


def test_flatten_object_one_level() -> None:
    obj = {
        "ip": "1.2.3.4",
        "ok": True,
        "req": {"path": "/x", "deep": {"k": 1}},
        "tags": ["a", "b"],
        "missing": None,
    }
    text = flatten_object(obj)
    assert text.split(" ") == [
        "ip=1.2.3.4",
        "ok=true",
        "req_path=/x",
        'req_deep={"k":1}',
        "tags_0=a",
        "tags_1=b",
    ]


def test_flatten_json_line_malformed_sets_error_and_keeps_text() -> None:
    out = flatten_json_line('{"a": ')
    assert out.error is True
    assert out.text == '{"a": '


def test_flatten_json_line_non_object_passes_through() -> None:
    out = flatten_json_line("[1, 2]")
    assert out.error is False
    assert out.text == "[1, 2]"


def test_parse_csv_values_handles_quotes_and_escapes() -> None:
    line = 'a,"b,c","say ""hi""",'
    assert parse_csv_values(line) == ["a", "b,c", 'say "hi"', ""]


def test_parse_csv_header_strips_quotes() -> None:
    assert parse_csv_header('"timestamp", src_ip ,"user"') == ["timestamp", "src_ip", "user"]


def test_flatten_csv_line_zips_and_skips_empty_values() -> None:
    out = flatten_csv_line('2025-01-01,,"GET /a?b=1,2"', ["ts", "ip", "req"])
    assert out.text == "ts=2025-01-01 req=GET /a?b=1,2"
    assert out.error is False


def test_normalize_line_plain_is_identity() -> None:
    out = normalize_line("anything at all", LogFormat.PLAIN)
    assert out.text == "anything at all"
    assert out.error is False


def test_normalize_line_jsonl_malformed_never_raises() -> None:
    out = normalize_line('{"broken": tru', LogFormat.JSONL)
    assert out.error is True
    assert out.text == '{"broken": tru'


def test_normalize_line_jsonl_non_json_line_passes_through() -> None:
    out = normalize_line("free text between records", LogFormat.JSONL)
    assert out.error is False
    assert out.text == "free text between records"


def test_normalize_line_csv_without_headers_passes_through() -> None:
    out = normalize_line("a,b,c", LogFormat.CSV, None)
    assert out.text == "a,b,c"
