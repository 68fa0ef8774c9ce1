"""Tests for client address extraction."""

from starlette.requests import Request

from authcore.api.deps import MAX_IP_LENGTH, get_client_ip


def make_request(forwarded=None, client=("10.0.0.7", 5123)) -> Request:
    headers = []
    if forwarded is not None:
        headers.append((b"x-forwarded-for", forwarded.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": client})


def test_first_forwarded_hop_wins():
    assert get_client_ip(make_request("203.0.113.9, 10.0.0.1")) == "203.0.113.9"


def test_forwarded_ipv6_is_normalised():
    assert get_client_ip(make_request("2001:DB8:0:0:0:0:0:1")) == "2001:db8::1"


def test_garbage_forwarded_falls_back_to_peer():
    assert get_client_ip(make_request("x" * 60)) == "10.0.0.7"
    assert get_client_ip(make_request("unknown")) == "10.0.0.7"


def test_long_scoped_address_falls_back_to_peer():
    scoped = "fe80::1%" + "a" * 60
    assert get_client_ip(make_request(scoped)) == "10.0.0.7"


def test_result_fits_ip_columns():
    address = get_client_ip(make_request("ffff:ffff:ffff:ffff:ffff:ffff:255.255.255.255"))
    assert address is not None
    assert len(address) <= MAX_IP_LENGTH


def test_no_header_and_no_peer():
    assert get_client_ip(make_request(client=None)) is None
