from __future__ import annotations

import string

import pytest

from identity_service.errors import CodeLengthError
from identity_service.security.codes import generate_access_code, generate_code


@pytest.mark.parametrize("length", [32, 33, 48, 63, 64])
def test_generate_code_returns_letters_of_requested_length(length):
    code = generate_code(length)
    assert len(code) == length
    assert set(code) <= set(string.ascii_letters)


@pytest.mark.parametrize("length", [-1, 0, 6, 31, 65, 128])
def test_generate_code_rejects_out_of_range_lengths(length):
    with pytest.raises(CodeLengthError):
        generate_code(length)


def test_generated_codes_do_not_repeat():
    codes = {generate_code(32) for _ in range(200)}
    assert len(codes) == 200


def test_access_code_uses_maximum_length():
    code = generate_access_code()
    assert len(code) == 64
    assert code.isalpha()
