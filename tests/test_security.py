from allyhub.auth.security import extract_api_key, mask_api_key


def test_mask_api_key_keeps_four_characters_each_side():
    assert mask_api_key("0123456789abcdef") == "0123...cdef"


def test_mask_api_key_hides_short_keys_completely():
    assert mask_api_key("12345678") == "********"
    assert mask_api_key("abc") == "***"
    assert mask_api_key("") == ""


def test_extract_api_key_prefers_header_then_bearer():
    assert extract_api_key("key-a", "Bearer key-b") == "key-a"
    assert extract_api_key(None, "Bearer key-b") == "key-b"
    assert extract_api_key(None, "bearer key-c") == "key-c"
    assert extract_api_key(None, "raw-key") == "raw-key"
    assert extract_api_key(None, None) is None
    assert extract_api_key("  ", None) is None
