"""
Short public codes for uploaded artifacts.

8 symbols from a 36-symbol alphabet gives 36**8 (~2.8e12) codes. The
generator does not check for collisions; MetadataStore.insert rejects a code
that is already active and ArtifactService retries with a fresh one.
"""

import secrets
import string
from typing import Protocol, runtime_checkable

CODE_ALPHABET = string.ascii_lowercase + string.digits
DEFAULT_CODE_LENGTH = 8


@runtime_checkable
class CodeSource(Protocol):
    def generate(self) -> str:
        ...


class CodeGenerator:
    def __init__(self, length: int = DEFAULT_CODE_LENGTH, alphabet: str = CODE_ALPHABET):
        if length < 1:
            raise ValueError("Code length must be positive")
        if len(set(alphabet)) < 2:
            raise ValueError("Code alphabet needs at least two distinct symbols")
        self.length = length
        self.alphabet = alphabet

    def generate(self) -> str:
        return "".join(secrets.choice(self.alphabet) for _ in range(self.length))

    @property
    def space_size(self) -> int:
        """Number of distinct codes this generator can produce."""
        return len(self.alphabet) ** self.length
