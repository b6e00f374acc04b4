import pytest

from security import BatchItemResult, ErrorCode, validate_many


def test_failures_are_isolated():
    urls = ["https://good.com", "javascript:x", "https://good2.com"]
    items = validate_many(urls)

    assert [item.url for item in items] == urls
    assert items[0].result is not None and items[0].error is None
    assert items[0].result.sanitized == "https://good.com/"
    assert items[1].result is None
    assert items[1].error.code == ErrorCode.PROTOCOL_NOT_ALLOWED
    assert items[2].result.sanitized == "https://good2.com/"
    assert items[2].error is None


def test_empty_input():
    assert validate_many([]) == []


def test_tuple_input():
    items = validate_many(("example.com",))
    assert items[0].result.sanitized == "https://example.com/"


@pytest.mark.parametrize("urls", [None, "https://example.com", {"url": "x"}, 42])
def test_non_array_rejected(urls):
    with pytest.raises(TypeError, match="must be an array"):
        validate_many(urls)


def test_every_error_kind_in_one_batch():
    items = validate_many([None, "", "http://", "data:,x", "bad host.com", "ok.com"])
    codes = [item.error.code if item.error else None for item in items]
    assert codes == [
        ErrorCode.INVALID_TYPE,
        ErrorCode.EMPTY_URL,
        ErrorCode.MALFORMED_URL,
        ErrorCode.PROTOCOL_NOT_ALLOWED,
        ErrorCode.INVALID_HOSTNAME,
        None,
    ]


def test_thread_pool_preserves_order():
    urls = [f"https://host{i}.example/" if i % 3 else f"javascript:{i}" for i in range(50)]
    serial = validate_many(urls)
    parallel = validate_many(urls, max_workers=8)
    assert [item.to_dict() for item in parallel] == [item.to_dict() for item in serial]


def test_item_to_dict():
    ok, bad = validate_many(["example.com", "vbscript:msgbox(1)"])
    assert ok.to_dict() == {
        "url": "example.com",
        "result": {"valid": True, "sanitized": "https://example.com/", "protocol": "https:"},
        "error": None,
    }
    assert bad.to_dict()["result"] is None
    assert bad.to_dict()["error"]["code"] == "PROTOCOL_NOT_ALLOWED"
    assert isinstance(bad, BatchItemResult)
