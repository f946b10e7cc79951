from allyhub.models.codec import decode_map, encode_map, resource_triplet, sum_maps, to_wire


def test_decode_map_accepts_string_keys_and_json_text():
    assert decode_map({"109": 12, "110": "3"}) == {109: 12, 110: 3}
    assert decode_map('{"1": 20, "2": 18}') == {1: 20, 2: 18}


def test_decode_map_drops_non_integral_entries():
    raw = {"901": 10, "abc": 5, "902": "lots", "903": 1.5, "904": True}
    assert decode_map(raw) == {901: 10}


def test_decode_map_tolerates_garbage():
    assert decode_map(None) == {}
    assert decode_map("not json") == {}
    assert decode_map([1, 2, 3]) == {}


def test_encode_map_orders_keys_numerically():
    encoded = encode_map({10: 1, 2: 5, "1": 7})
    assert list(encoded) == ["1", "2", "10"]
    assert encoded == {"1": 7, "2": 5, "10": 1}


def test_encode_none_stays_none_but_wire_form_is_empty():
    assert encode_map(None) is None
    assert to_wire(None) == {}


def test_resource_triplet_defaults_to_zero():
    assert resource_triplet({"901": 1500, "902": 600}) == (1500, 600, 0)
    assert resource_triplet(None) == (0, 0, 0)


def test_sum_maps_adds_per_key():
    total = sum_maps([{"202": 10, "203": 2}, {"202": 5}, None])
    assert total == {202: 15, 203: 2}
