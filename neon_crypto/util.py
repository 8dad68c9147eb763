#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Random key generation and deterministic key derivation"""

from typing import Optional, Union
from types import ModuleType

import binascii
from base64 import b64encode, b64decode

from Cryptodome.Protocol.KDF import PBKDF2, HKDF
from Cryptodome.Hash import SHA512
from Cryptodome.Random import get_random_bytes

from .exceptions import NeonCryptoInvalidArgumentError

from .constants import (
    SUPPORTED_KEY_SIZES_BITS,
    DEFAULT_KEY_SIZE_BITS,
    MAX_DERIVED_KEY_SIZE_BITS,
    PBKDF2_COUNT,
    PBKDF2_SALT,
    HMAC_HKDF_INFO,
  )

PBKDF2_HASH_MODULE: ModuleType = SHA512
"""Type of hash used to derive a key from a password"""

def generate_random_bytes(n_bytes: int) -> bytes:
  """Generate cryptographically random bytes.

  Args:
      n_bytes (int): The number of bytes to generate.

  Returns:
      bytes: n_bytes cryptographically random bytes
  """
  return get_random_bytes(n_bytes)

def validate_aes_key_size(bits: int) -> int:
  """Ensure that a key size is supported by AES.

  Raises:
      NeonCryptoInvalidArgumentError: bits is not 128, 192 or 256
  """
  if isinstance(bits, bool) or not isinstance(bits, int) or bits not in SUPPORTED_KEY_SIZES_BITS:
    raise NeonCryptoInvalidArgumentError(
        f"Invalid key size [{bits}]. Only these sizes are currently supported: 128, 192, and 256."
      )
  return bits

def generate_key(bits: int=DEFAULT_KEY_SIZE_BITS) -> str:
  """Generate a cryptographically random AES key.

  Args:
      bits (int, optional): The key size in bits; one of 128, 192, or 256. Default is 256.

  Raises:
      NeonCryptoInvalidArgumentError: Unsupported key size

  Returns:
      str: The base64 encoding of the new key
  """
  validate_aes_key_size(bits)
  return b64encode(get_random_bytes(bits // 8)).decode('utf-8')

def decode_key(key: Union[str, bytes, bytearray]) -> bytes:
  """Convert a base64 encoded or raw AES key to bytes, validating its size.

  Raises:
      NeonCryptoInvalidArgumentError: The key is not valid base64 or is the wrong size
  """
  if isinstance(key, str):
    if key == '':
      raise NeonCryptoInvalidArgumentError("The key cannot be empty")
    try:
      key_bytes = b64decode(key, validate=True)
    except (binascii.Error, ValueError) as e:
      raise NeonCryptoInvalidArgumentError("The key is not valid base64") from e
  elif isinstance(key, (bytes, bytearray)):
    key_bytes = bytes(key)
  else:
    raise NeonCryptoInvalidArgumentError(f"The key must be str or bytes, not {type(key).__name__}")
  validate_aes_key_size(len(key_bytes) * 8)
  return key_bytes

def derive_key_from_password(password: Optional[str], bits: int) -> bytes:
  """Deterministically derive a key of the requested size from a password.

  PBKDF2-HMAC-SHA512 is applied with a fixed public salt and iteration count, so the same
  password always yields the same key, across processes and releases. This is what allows a
  vault document to be decrypted with nothing more than the remembered password.

  Args:
      password (str): The password; cannot be None or empty.
      bits (int):     The key size in bits; a positive multiple of 8 no greater than 512.

  Raises:
      NeonCryptoInvalidArgumentError: Empty password or unsupported key size

  Returns:
      bytes: A key of bits // 8 bytes
  """
  if password is None or not isinstance(password, str) or password == '':
    raise NeonCryptoInvalidArgumentError("The password cannot be None or empty")
  if isinstance(bits, bool) or not isinstance(bits, int):
    raise NeonCryptoInvalidArgumentError(f"The key size must be an integer, not {type(bits).__name__}")
  if bits <= 0 or bits % 8 != 0 or bits > MAX_DERIVED_KEY_SIZE_BITS:
    raise NeonCryptoInvalidArgumentError(
        f"Invalid key size [{bits}]. Must be a positive multiple of 8 no greater than {MAX_DERIVED_KEY_SIZE_BITS}."
      )
  key = PBKDF2(
      password.encode('utf-8'),
      PBKDF2_SALT,
      dkLen=bits // 8,
      count=PBKDF2_COUNT,
      hmac_hash_module=PBKDF2_HASH_MODULE
    )
  return key

def derive_hmac_key(key: bytes) -> bytes:
  """Derive the HMAC-SHA512 key that authenticates frames encrypted with an AES key.

  The HMAC key is bound to the AES key but never equal to it.
  """
  assert isinstance(key, bytes)
  hmac_key = HKDF(key, 64, b'', SHA512, context=HMAC_HKDF_INFO)
  assert isinstance(hmac_key, bytes)
  return hmac_key
