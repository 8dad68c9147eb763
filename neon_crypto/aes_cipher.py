#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Authenticated AES encryption/decryption of bytes, strings and streams"""

from typing import Optional, Union, BinaryIO

import io
import shutil
import struct
import logging
import tempfile
from base64 import b64encode, b64decode
import binascii

from Cryptodome.Cipher import AES
from Cryptodome.Hash import HMAC, SHA512
from Cryptodome.Random import random as crypto_random
from Cryptodome.Util.Padding import pad, unpad

from .exceptions import NeonCryptoInvalidArgumentError, NeonCryptoTamperDetectedError
from .constants import (
    DEFAULT_KEY_SIZE_BITS,
    DEFAULT_MAX_PADDING_BYTES,
    MAX_PADDING_BYTES_LIMIT,
    AES_BLOCK_SIZE_BYTES,
    CIPHER_MAGIC,
    STREAM_CHUNK_SIZE,
  )
from .util import (
    generate_key,
    generate_random_bytes,
    validate_aes_key_size,
    decode_key,
    derive_hmac_key,
  )
from .internal_types import BytesOrText

logger = logging.getLogger("neon_crypto.cipher")

_FRAME_HEADER = struct.Struct('<ih')
"""Plaintext frame header: magic number, IV length"""

_PADDING_LENGTH = struct.Struct('<h')
"""Encrypted length of the random padding that precedes the user data"""

TAG_SIZE_BYTES = SHA512.digest_size
"""Size of the HMAC-SHA512 tag at the end of every frame"""

FRAME_OVERHEAD_BYTES = _FRAME_HEADER.size + AES_BLOCK_SIZE_BYTES + TAG_SIZE_BYTES
"""Bytes in every frame that are not ciphertext"""

MIN_FRAME_SIZE_BYTES = FRAME_OVERHEAD_BYTES + AES_BLOCK_SIZE_BYTES
"""Size of the shortest possible frame (empty plaintext, no padding)"""

SPOOL_MAX_SIZE_BYTES = 1024 * 1024
"""Non-seekable frames larger than this are spooled to a temporary file before verification"""

def _to_bytes(data: BytesOrText, name: str) -> bytes:
  if data is None:
    raise NeonCryptoInvalidArgumentError(f"{name} cannot be None")
  if isinstance(data, str):
    return data.encode('utf-8')
  if isinstance(data, (bytes, bytearray, memoryview)):
    return bytes(data)
  raise NeonCryptoInvalidArgumentError(f"{name} must be str or bytes, not {type(data).__name__}")

def validate_max_padding_bytes(max_padding_bytes: int) -> int:
  """Ensure that a maximum padding size is an integer from 0 to 32767.

  Raises:
      NeonCryptoInvalidArgumentError: Invalid padding size
  """
  if isinstance(max_padding_bytes, bool) or not isinstance(max_padding_bytes, int) or \
      not 0 <= max_padding_bytes <= MAX_PADDING_BYTES_LIMIT:
    raise NeonCryptoInvalidArgumentError(
        f"max_padding_bytes must be between 0 and {MAX_PADDING_BYTES_LIMIT}, got {max_padding_bytes}"
      )
  return max_padding_bytes

def _is_seekable(stream: BinaryIO) -> bool:
  seekable = getattr(stream, 'seekable', None)
  if seekable is None:
    # SpooledTemporaryFile has no seekable() before Python 3.11
    return hasattr(stream, 'seek') and hasattr(stream, 'tell')
  return seekable()

def read_up_to(source: BinaryIO, n: int) -> bytes:
  """Read n bytes from a binary stream, or fewer only if EOF is reached first.

  Unbuffered streams (pipes, sockets, raw files) may return fewer bytes than requested
  from a single read().

  Raises:
      NeonCryptoInvalidArgumentError: source is a text stream
  """
  result = bytearray()
  while len(result) < n:
    chunk = source.read(n - len(result))
    if not chunk:
      break
    if isinstance(chunk, str):
      raise NeonCryptoInvalidArgumentError("source must be a binary stream")
    result += chunk
  return bytes(result)

class _PaddingStripper:
  """Removes the length-prefixed random padding from the front of decrypted data"""

  _length_bytes: bytearray
  _skip: Optional[int] = None

  def __init__(self):
    self._length_bytes = bytearray()

  def feed(self, data: bytes) -> bytes:
    if self._skip is None:
      need = _PADDING_LENGTH.size - len(self._length_bytes)
      self._length_bytes += data[:need]
      data = data[need:]
      if len(self._length_bytes) < _PADDING_LENGTH.size:
        return b''
      padding_length: int = _PADDING_LENGTH.unpack(bytes(self._length_bytes))[0]
      if padding_length < 0:
        raise NeonCryptoTamperDetectedError("The encrypted data has been tampered with or is corrupt: Invalid padding size.")
      self._skip = padding_length
    if self._skip > 0:
      n = min(self._skip, len(data))
      self._skip -= n
      data = data[n:]
    return data

  def finish(self) -> None:
    if self._skip is None or self._skip > 0:
      raise NeonCryptoTamperDetectedError("The encrypted data has been tampered with or is corrupt: Truncated padding.")

class AesCipher:
  """Authenticated AES encryption with per-encryption IVs and optional random padding.

  Every call to encrypt() generates a new random IV, so encrypting the same plaintext twice
  never produces the same output. Up to max_padding_bytes of random padding can be encrypted
  along with the data so that the size of the output does not reveal the exact size of the
  plaintext.

  Encrypted frames are laid out as follows (multi-byte integers are little-endian):

      magic        4 bytes   0x3BBAA035
      iv_length    2 bytes   16
      iv          16 bytes   random, generated for each encryption
      ciphertext   n*16      AES-CBC(PKCS7(padding_length:int16 + padding + user_data))
      tag         64 bytes   HMAC-SHA512 over everything above

  The HMAC key is derived from the AES key with HKDF-SHA512 (encrypt-then-MAC). The tag is
  verified with a constant-time comparison before anything is decrypted, so a corrupted,
  truncated or wrongly keyed frame always raises NeonCryptoTamperDetectedError and never
  yields plaintext.

  Instances are immutable after construction and may be shared between threads.
  """

  _key: bytes
  """The AES key"""

  _iv: bytes
  """Random initialization vector generated at construction. Exposed for diagnostics only;
     each encryption uses its own fresh IV."""

  _hmac_key: bytes
  """HMAC-SHA512 key derived from _key"""

  _max_padding_bytes: int
  """Maximum number of random padding bytes added to each encryption"""

  @staticmethod
  def generate_key(bits: int=DEFAULT_KEY_SIZE_BITS) -> str:
    """Generate a random AES key of 128, 192, or 256 bits, encoded as base64."""
    return generate_key(bits)

  def __init__(
        self,
        key: Optional[Union[str, bytes, bytearray]]=None,
        key_size_bits: int=DEFAULT_KEY_SIZE_BITS,
        max_padding_bytes: int=DEFAULT_MAX_PADDING_BYTES,
      ):
    """Create an AES cipher.

    Args:
        key (Optional[Union[str, bytes]], optional):
                              A base64-encoded or raw AES key of 128, 192, or 256 bits. If None,
                              a random key of key_size_bits will be generated. Defaults to None.
        key_size_bits (int, optional):
                              The size of the generated key when key is None. Must be 128, 192,
                              or 256. Ignored when key is provided. Defaults to 256.
        max_padding_bytes (int, optional):
                              The maximum number of random padding bytes added to each encryption,
                              from 0 to 32767. Defaults to 0.

    Raises:
        NeonCryptoInvalidArgumentError: Invalid key, key size, or padding size
    """
    validate_max_padding_bytes(max_padding_bytes)
    if key is None:
      validate_aes_key_size(key_size_bits)
      key_bytes = generate_random_bytes(key_size_bits // 8)
    else:
      key_bytes = decode_key(key)
    self._key = key_bytes
    self._iv = generate_random_bytes(AES_BLOCK_SIZE_BYTES)
    self._hmac_key = derive_hmac_key(key_bytes)
    self._max_padding_bytes = max_padding_bytes

  @property
  def key(self) -> str:
    """The AES key, encoded as base64"""
    return b64encode(self._key).decode('utf-8')

  @property
  def key_bytes(self) -> bytes:
    """The raw AES key"""
    return self._key

  @property
  def key_size_bits(self) -> int:
    """The size of the AES key in bits"""
    return len(self._key) * 8

  @property
  def iv(self) -> str:
    """The instance initialization vector, encoded as base64"""
    return b64encode(self._iv).decode('utf-8')

  @property
  def max_padding_bytes(self) -> int:
    return self._max_padding_bytes

  # ---------------------------------------------------------------------------
  # Encryption

  def encrypt(self, plaintext: BytesOrText) -> bytes:
    """Encrypt bytes, or a string encoded as UTF-8, into a self-contained frame.

    Raises:
        NeonCryptoInvalidArgumentError: plaintext is None or not str/bytes
    """
    bin_plaintext = _to_bytes(plaintext, "plaintext")
    sink = io.BytesIO()
    self.encrypt_stream(io.BytesIO(bin_plaintext), sink)
    return sink.getvalue()

  def encrypt_to_base64(self, plaintext: BytesOrText) -> str:
    """Encrypt bytes or a string, returning the frame encoded as base64."""
    return b64encode(self.encrypt(plaintext)).decode('utf-8')

  def encrypt_stream(self, source: BinaryIO, sink: BinaryIO) -> None:
    """Encrypt a binary stream to another binary stream.

    The source is read in chunks until EOF and the frame is written to sink sequentially,
    so neither stream needs to be seekable and the data never needs to fit in memory.

    Args:
        source (BinaryIO): A readable binary stream of plaintext
        sink (BinaryIO):   A writable binary stream that will receive the frame
    """
    if source is None or sink is None:
      raise NeonCryptoInvalidArgumentError("source and sink cannot be None")
    iv = generate_random_bytes(AES_BLOCK_SIZE_BYTES)
    header = _FRAME_HEADER.pack(CIPHER_MAGIC, len(iv)) + iv
    mac = HMAC.new(self._hmac_key, digestmod=SHA512)
    mac.update(header)
    sink.write(header)
    aes = AES.new(self._key, AES.MODE_CBC, iv=iv)

    padding_length = crypto_random.randint(0, self._max_padding_bytes)
    pending = bytearray(_PADDING_LENGTH.pack(padding_length))
    pending += generate_random_bytes(padding_length)
    n_ciphertext = 0
    while True:
      chunk = source.read(STREAM_CHUNK_SIZE)
      if not chunk:
        break
      if isinstance(chunk, str):
        raise NeonCryptoInvalidArgumentError("source must be a binary stream")
      pending += chunk
      n_full = len(pending) - len(pending) % AES_BLOCK_SIZE_BYTES
      if n_full > 0:
        ciphertext = aes.encrypt(bytes(pending[:n_full]))
        del pending[:n_full]
        mac.update(ciphertext)
        sink.write(ciphertext)
        n_ciphertext += len(ciphertext)
    ciphertext = aes.encrypt(pad(bytes(pending), AES_BLOCK_SIZE_BYTES))
    mac.update(ciphertext)
    sink.write(ciphertext)
    n_ciphertext += len(ciphertext)
    sink.write(mac.digest())
    logger.debug("Encrypted frame with %d ciphertext bytes", n_ciphertext)

  # ---------------------------------------------------------------------------
  # Decryption

  def decrypt(self, frame: Union[bytes, bytearray]) -> bytes:
    """Decrypt a frame produced by encrypt().

    Raises:
        NeonCryptoInvalidArgumentError: frame is None or not bytes
        NeonCryptoTamperDetectedError:  The frame is corrupt, truncated, or was encrypted with a different key
    """
    if frame is None or not isinstance(frame, (bytes, bytearray, memoryview)):
      raise NeonCryptoInvalidArgumentError("frame must be bytes")
    sink = io.BytesIO()
    self._decrypt_seekable(io.BytesIO(bytes(frame)), sink)
    return sink.getvalue()

  def decrypt_to_string(self, frame: Union[bytes, bytearray]) -> str:
    """Decrypt a frame whose plaintext is UTF-8 text."""
    return self.decrypt(frame).decode('utf-8')

  def decrypt_from_base64(self, b64_frame: str) -> bytes:
    """Decrypt a frame produced by encrypt_to_base64()."""
    if not isinstance(b64_frame, str):
      raise NeonCryptoInvalidArgumentError("b64_frame must be a string")
    try:
      frame = b64decode(b64_frame, validate=True)
    except (binascii.Error, ValueError) as e:
      raise NeonCryptoTamperDetectedError("The encrypted data is not valid base64") from e
    return self.decrypt(frame)

  def decrypt_stream(self, source: BinaryIO, sink: BinaryIO) -> None:
    """Decrypt a binary stream produced by encrypt_stream() to another binary stream.

    The tag covering the whole frame is verified before any plaintext is written to sink.
    A seekable source is read twice (once to verify, once to decrypt) starting at its current
    position; a non-seekable source is first copied to a temporary spool file.

    Raises:
        NeonCryptoTamperDetectedError: The frame is corrupt, truncated, or was encrypted with a different key
    """
    if source is None or sink is None:
      raise NeonCryptoInvalidArgumentError("source and sink cannot be None")
    if _is_seekable(source):
      self._decrypt_seekable(source, sink)
    else:
      with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE_BYTES) as spool:
        shutil.copyfileobj(source, spool, STREAM_CHUNK_SIZE)
        spool.seek(0)
        self._decrypt_seekable(spool, sink)

  def _read_exact(self, source: BinaryIO, n: int) -> bytes:
    data = read_up_to(source, n)
    if len(data) != n:
      raise NeonCryptoTamperDetectedError("The encrypted data has been truncated.")
    return data

  def _decrypt_seekable(self, source: BinaryIO, sink: BinaryIO) -> None:
    start = source.tell()
    source.seek(0, io.SEEK_END)
    end = source.tell()
    source.seek(start)
    total = end - start
    if total < MIN_FRAME_SIZE_BYTES:
      raise NeonCryptoTamperDetectedError(
          "The encrypted data has been truncated or was not generated by AesCipher."
        )

    header = self._read_exact(source, _FRAME_HEADER.size)
    magic, iv_length = _FRAME_HEADER.unpack(header)
    if magic != CIPHER_MAGIC:
      raise NeonCryptoTamperDetectedError("The encrypted data was not generated by AesCipher.")
    if iv_length != AES_BLOCK_SIZE_BYTES:
      raise NeonCryptoTamperDetectedError("The encrypted data has been tampered with or is corrupt: Invalid IV length.")
    iv = self._read_exact(source, iv_length)
    ciphertext_length = total - FRAME_OVERHEAD_BYTES
    if ciphertext_length % AES_BLOCK_SIZE_BYTES != 0:
      raise NeonCryptoTamperDetectedError(
          "The encrypted data has been tampered with or is corrupt: Invalid ciphertext length."
        )

    # Pass 1: verify the tag over the entire frame
    mac = HMAC.new(self._hmac_key, digestmod=SHA512)
    mac.update(header)
    mac.update(iv)
    ciphertext_start = source.tell()
    remaining = ciphertext_length
    while remaining > 0:
      chunk = self._read_exact(source, min(STREAM_CHUNK_SIZE, remaining))
      mac.update(chunk)
      remaining -= len(chunk)
    tag = self._read_exact(source, TAG_SIZE_BYTES)
    try:
      mac.verify(tag)
    except ValueError as e:
      raise NeonCryptoTamperDetectedError(
          "The encrypted data has been tampered with or is corrupt: The persisted and computed HMAC hashes don't match."
        ) from e

    # Pass 2: decrypt
    source.seek(ciphertext_start)
    aes = AES.new(self._key, AES.MODE_CBC, iv=iv)
    stripper = _PaddingStripper()
    held = b''
    remaining = ciphertext_length
    while remaining > 0:
      chunk = self._read_exact(source, min(STREAM_CHUNK_SIZE, remaining))
      remaining -= len(chunk)
      plaintext = held + aes.decrypt(chunk)
      if remaining > 0:
        # the final block carries the PKCS7 padding
        held = plaintext[-AES_BLOCK_SIZE_BYTES:]
        plaintext = plaintext[:-AES_BLOCK_SIZE_BYTES]
      else:
        try:
          plaintext = unpad(plaintext, AES_BLOCK_SIZE_BYTES)
        except ValueError as e:
          raise NeonCryptoTamperDetectedError(
              "The encrypted data has been tampered with or is corrupt: Invalid block padding."
            ) from e
      data = stripper.feed(plaintext)
      if data:
        sink.write(data)
    stripper.finish()
    logger.debug("Decrypted frame with %d ciphertext bytes", ciphertext_length)
