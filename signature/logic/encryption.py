# signature/logic/encryption.py
from __future__ import annotations

from typing import Iterable, List, Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


class SignatureCipher:
    """
    At-rest encryption for captured signature images.

    Keys are Fernet keys (``Fernet.generate_key()``) as base64 strings:
    - the first key is the current key (used for ENCRYPT),
    - remaining entries are legacy keys (used only for DECRYPT).
    """

    def __init__(self, current_key: str, legacy_keys: Optional[Iterable[str]] = None) -> None:
        keys: List[Fernet] = [Fernet(current_key.encode("ascii"))]
        for k in legacy_keys or ():
            keys.append(Fernet(k.encode("ascii")))
        self._fernet = MultiFernet(keys)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    def seal(self, data_url: str) -> str:
        return self._fernet.encrypt(data_url.encode("utf-8")).decode("ascii")

    def unseal(self, token: str) -> str:
        """
        Decrypt a stored value; legacy plaintext data URLs are accepted as-is.
        Otherwise raise InvalidToken.
        """
        if token.startswith("data:"):
            return token
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken:
            raise
        except (ValueError, UnicodeError) as exc:
            raise InvalidToken("Unable to decrypt signature image") from exc
