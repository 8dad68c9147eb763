"""
Tests for key generation and password-based key derivation.
"""
import base64

import pytest

from neon_crypto.util import (
    generate_key,
    generate_random_bytes,
    validate_aes_key_size,
    decode_key,
    derive_key_from_password,
    derive_hmac_key,
  )
from neon_crypto.exceptions import NeonCryptoInvalidArgumentError


class TestDeriveKeyFromPassword:
  """Tests for derive_key_from_password()."""

  @pytest.mark.parametrize("bits", [8, 64, 128, 192, 256, 512])
  def test_key_size(self, bits):
    """The derived key has exactly bits / 8 bytes."""
    key = derive_key_from_password("password", bits)
    assert isinstance(key, bytes)
    assert len(key) == bits // 8

  def test_deterministic(self):
    """The same password and size always produce the same key."""
    assert derive_key_from_password("GU6qc2vsJgmCWmdL", 256) == derive_key_from_password("GU6qc2vsJgmCWmdL", 256)

  def test_different_passwords_differ(self):
    assert derive_key_from_password("password1", 256) != derive_key_from_password("password2", 256)

  def test_shorter_key_is_prefix(self):
    """PBKDF2 output of a shorter length is a prefix of a longer one."""
    assert derive_key_from_password("password", 512)[:16] == derive_key_from_password("password", 128)

  def test_unicode_password(self):
    key = derive_key_from_password("pässwörd-密码", 256)
    assert len(key) == 32
    assert key != derive_key_from_password("passwrd", 256)

  @pytest.mark.parametrize("bits", [7, 0, -8, 520, 1024, None, "", "256", 256.0, True])
  def test_invalid_bits(self, bits):
    with pytest.raises(NeonCryptoInvalidArgumentError):
      derive_key_from_password("password", bits)

  @pytest.mark.parametrize("password", [None, "", b"password"])
  def test_invalid_password(self, password):
    with pytest.raises(NeonCryptoInvalidArgumentError):
      derive_key_from_password(password, 256)

  def test_invalid_argument_is_value_error(self):
    with pytest.raises(ValueError):
      derive_key_from_password("password", 7)


class TestGenerateKey:
  """Tests for generate_key() and friends."""

  @pytest.mark.parametrize("bits", [128, 192, 256])
  def test_key_size(self, bits):
    key = base64.b64decode(generate_key(bits))
    assert len(key) == bits // 8

  def test_default_size(self):
    assert len(base64.b64decode(generate_key())) == 32

  @pytest.mark.parametrize("bits", [128, 192, 256])
  def test_keys_are_unique(self, bits):
    """1000 generated keys are all different."""
    keys = set(generate_key(bits) for _ in range(1000))
    assert len(keys) == 1000

  @pytest.mark.parametrize("bits", [0, 64, 100, 512, None, "256"])
  def test_invalid_size(self, bits):
    with pytest.raises(NeonCryptoInvalidArgumentError):
      generate_key(bits)

  def test_random_bytes(self):
    assert len(generate_random_bytes(17)) == 17
    assert generate_random_bytes(32) != generate_random_bytes(32)

  def test_validate_aes_key_size(self):
    assert validate_aes_key_size(192) == 192
    with pytest.raises(NeonCryptoInvalidArgumentError):
      validate_aes_key_size(True)


class TestDecodeKey:
  """Tests for decode_key()."""

  def test_base64(self):
    raw = bytes(range(32))
    assert decode_key(base64.b64encode(raw).decode('utf-8')) == raw

  def test_raw_bytes(self):
    raw = bytes(range(16))
    assert decode_key(raw) == raw

  @pytest.mark.parametrize("key", ["", "not base64!", base64.b64encode(b"short").decode('utf-8'), bytes(10), 12345])
  def test_invalid(self, key):
    with pytest.raises(NeonCryptoInvalidArgumentError):
      decode_key(key)


def test_hmac_key_is_bound_to_aes_key():
  key1 = bytes(32)
  key2 = bytes([1]) + bytes(31)
  hmac_key = derive_hmac_key(key1)
  assert len(hmac_key) == 64
  assert hmac_key == derive_hmac_key(key1)
  assert hmac_key != derive_hmac_key(key2)
  assert hmac_key[:32] != key1
