"""Tests for referral code generation and share links."""
from unittest.mock import patch

from fleet_rewards.referral.codes import (
    CODE_ALPHABET,
    build_share_link,
    generate_referral_code,
    normalize_code,
)


def test_generated_code_uses_alphabet_and_length():
    with patch("fleet_rewards.referral.codes.get_code_length", return_value=8):
        code = generate_referral_code()
    assert len(code) == 8
    assert set(code) <= set(CODE_ALPHABET)


def test_alphabet_has_no_ambiguous_characters():
    for ch in "01IO":
        assert ch not in CODE_ALPHABET


def test_explicit_length():
    assert len(generate_referral_code(12)) == 12


def test_normalize_code():
    assert normalize_code(" k7h2qx9p ") == "K7H2QX9P"
    assert normalize_code("   ") is None
    assert normalize_code(None) is None


def test_share_link_encodes_code():
    assert (
        build_share_link("K7H2QX9P", origin="https://fleet.example.com/")
        == "https://fleet.example.com/signup?ref=K7H2QX9P"
    )


def test_share_link_default_origin():
    with patch("fleet_rewards.referral.codes.get_public_origin", return_value="https://app.test"):
        assert build_share_link("AB CD") == "https://app.test/signup?ref=AB+CD"
