"""Tests for argon2id hashing and the encoded hash format."""

from __future__ import annotations

import pytest

from identity_service.errors import HashFormatError, IncompatibleVariantError, IncompatibleVersionError
from identity_service.security.passwords import CredentialHasher, HashParams, decode_hash


@pytest.mark.parametrize("password", ["Secret123!", "", "correct horse battery staple", "pässwörd-ünïcode"])
def test_hash_then_verify_accepts_same_password(hasher, password):
    assert hasher.verify_password(password, hasher.hash_password(password))


def test_verify_rejects_other_password(hasher):
    encoded = hasher.hash_password("Secret123!")
    assert not hasher.verify_password("secret123!", encoded)
    assert not hasher.verify_password("Secret123", encoded)


def test_hashes_are_salted_but_both_verify(hasher):
    first = hasher.hash_password("Secret123!")
    second = hasher.hash_password("Secret123!")
    assert first != second
    assert hasher.verify_password("Secret123!", first)
    assert hasher.verify_password("Secret123!", second)


def test_default_parameters_are_encoded_in_six_segments():
    encoded = CredentialHasher().hash_password("Secret123!")
    segments = encoded.split("$")
    assert len(segments) == 6
    assert encoded.startswith("$argon2id$v=19$m=65536,t=4,p=4$")
    params, salt, key = decode_hash(encoded)
    assert params == HashParams()
    assert len(salt) == 16
    assert len(key) == 32


def test_verification_uses_parameters_from_hash(hasher):
    encoded = hasher.hash_password("Secret123!")
    other = CredentialHasher(HashParams(memory=2048, iterations=2, parallelism=2))
    assert other.verify_password("Secret123!", encoded)


@pytest.mark.parametrize(
    "encoded",
    [
        "",
        "plaintext",
        "$argon2id$v=19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0",
        "$argon2id$v=19$m=1024,t=1,p=1$c2FsdA$a2V5$extra",
    ],
)
def test_wrong_segment_count_is_format_error(hasher, encoded):
    with pytest.raises(HashFormatError):
        hasher.verify_password("Secret123!", encoded)


def test_unknown_variant_is_rejected(hasher):
    encoded = hasher.hash_password("Secret123!").replace("$argon2id$", "$argon2i$")
    with pytest.raises(IncompatibleVariantError):
        hasher.verify_password("Secret123!", encoded)


def test_mismatched_version_is_rejected(hasher):
    encoded = hasher.hash_password("Secret123!").replace("$v=19$", "$v=16$")
    with pytest.raises(IncompatibleVersionError):
        hasher.verify_password("Secret123!", encoded)


@pytest.mark.parametrize(
    "replace_from, replace_to",
    [
        ("$v=19$", "$version=19$"),
        ("$m=1024,t=1,p=1$", "$m=1024;t=1;p=1$"),
        ("$m=1024,t=1,p=1$", "$m=x,t=1,p=1$"),
    ],
)
def test_unparseable_fields_are_format_errors(hasher, replace_from, replace_to):
    encoded = hasher.hash_password("Secret123!").replace(replace_from, replace_to)
    with pytest.raises(HashFormatError):
        hasher.verify_password("Secret123!", encoded)


def test_invalid_base64_is_format_error(hasher):
    segments = hasher.hash_password("Secret123!").split("$")
    segments[4] = "not*base64!"
    with pytest.raises(HashFormatError):
        hasher.verify_password("Secret123!", "$".join(segments))


def test_needs_rehash_detects_parameter_drift(hasher):
    encoded = hasher.hash_password("Secret123!")
    assert not hasher.needs_rehash(encoded)
    assert CredentialHasher().needs_rehash(encoded)


def test_dummy_verification_does_not_raise(hasher):
    hasher.verify_dummy("anything")
    assert hasher.params == HashParams(memory=1024, iterations=1, parallelism=1)


@pytest.mark.parametrize("segment, padding", [(4, "=="), (5, "=")])
def test_padded_base64_is_format_error(hasher, segment, padding):
    segments = hasher.hash_password("Secret123!").split("$")
    segments[segment] += padding
    with pytest.raises(HashFormatError):
        hasher.verify_password("Secret123!", "$".join(segments))


def test_non_canonical_trailing_bits_are_format_error(hasher):
    segments = hasher.hash_password("Secret123!").split("$")
    # a 16-byte salt leaves 4 unused bits in its last character
    segments[4] = segments[4][:-1] + chr(ord(segments[4][-1]) + 1)
    with pytest.raises(HashFormatError):
        hasher.verify_password("Secret123!", "$".join(segments))
