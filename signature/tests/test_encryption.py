from __future__ import annotations

import pytest
from cryptography.fernet import InvalidToken

from signature.logic.encryption import SignatureCipher

IMAGE = "data:image/png;base64,iVBORw0KGgo="


def test_seal_hides_the_data_url() -> None:
    cipher = SignatureCipher(SignatureCipher.generate_key())
    sealed = cipher.seal(IMAGE)
    assert not sealed.startswith("data:")
    assert cipher.unseal(sealed) == IMAGE


def test_legacy_keys_still_decrypt() -> None:
    old_key = SignatureCipher.generate_key()
    sealed = SignatureCipher(old_key).seal(IMAGE)
    rotated = SignatureCipher(SignatureCipher.generate_key(), legacy_keys=[old_key])
    assert rotated.unseal(sealed) == IMAGE


def test_plaintext_values_pass_through() -> None:
    assert SignatureCipher(SignatureCipher.generate_key()).unseal(IMAGE) == IMAGE


def test_wrong_key_fails() -> None:
    sealed = SignatureCipher(SignatureCipher.generate_key()).seal(IMAGE)
    with pytest.raises(InvalidToken):
        SignatureCipher(SignatureCipher.generate_key()).unseal(sealed)
