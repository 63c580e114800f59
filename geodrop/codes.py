import re
import secrets

from geodrop.errors import ValidationError

# Excludes the look-alikes 0/O and 1/I/L.
CODE_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"


class CodeGenerator:
    def __init__(self, length: int = 8, alphabet: str = CODE_ALPHABET):
        if length < 8:
            raise ValueError("retrieval codes must be at least 8 characters")
        self.length = length
        self.alphabet = alphabet
        self._pattern = re.compile(f"[{re.escape(alphabet)}]{{{length}}}")

    def generate(self) -> str:
        return "".join(secrets.choice(self.alphabet) for _ in range(self.length))

    def normalize(self, code: str) -> str:
        """Uppercase a user-entered code and reject anything outside the alphabet."""
        normalized = (code or "").strip().upper()
        if not self._pattern.fullmatch(normalized):
            raise ValidationError(
                f"retrieval code must be {self.length} characters from {self.alphabet}"
            )
        return normalized
