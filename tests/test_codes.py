import pytest

from geodrop.codes import CODE_ALPHABET, CodeGenerator
from geodrop.errors import ValidationError


def test_generated_codes_use_unambiguous_alphabet():
    generator = CodeGenerator()
    for _ in range(200):
        code = generator.generate()
        assert len(code) == 8
        assert set(code) <= set(CODE_ALPHABET)
        assert not set(code) & set("0O1Il")


def test_generated_codes_do_not_repeat():
    generator = CodeGenerator()
    codes = {generator.generate() for _ in range(1000)}
    assert len(codes) == 1000


def test_custom_length():
    assert len(CodeGenerator(length=12).generate()) == 12


def test_rejects_short_codes():
    with pytest.raises(ValueError):
        CodeGenerator(length=6)


def test_normalize_uppercases_and_strips():
    assert CodeGenerator().normalize("  abcdefgh ") == "ABCDEFGH"


@pytest.mark.parametrize("code", ["", "ABC", "ABCDEFGHJ", "ABCDEFG0", "ABCD-EFG", None])
def test_normalize_rejects_malformed_codes(code):
    with pytest.raises(ValidationError):
        CodeGenerator().normalize(code)
