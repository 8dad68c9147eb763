#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""MD5, SHA-1, SHA-256 and SHA-512 digests of text, bytes and streams.

When there is no input at all (None, empty text, empty bytes, or a stream that is
already at EOF) the digest is all zeros rather than the digest of an empty message.
This makes "no content" easy to recognize in stored hashes.
"""

from typing import Optional, Union, BinaryIO
from types import ModuleType

from Cryptodome.Hash import MD5, SHA1, SHA256, SHA512

from .constants import STREAM_CHUNK_SIZE

MD5_BYTE_SIZE = MD5.digest_size
"""Size of an MD5 digest in bytes"""

SHA1_BYTE_SIZE = SHA1.digest_size
"""Size of a SHA-1 digest in bytes"""

SHA256_BYTE_SIZE = SHA256.digest_size
"""Size of a SHA-256 digest in bytes"""

SHA512_BYTE_SIZE = SHA512.digest_size
"""Size of a SHA-512 digest in bytes"""

HMAC512_BYTE_SIZE = SHA512.digest_size
"""Size of an HMAC-SHA512 tag in bytes"""

HashInput = Optional[Union[str, bytes, bytearray, BinaryIO]]

def compute_hash_bytes(hash_module: ModuleType, data: HashInput) -> bytes:
  """Compute a digest using one of the Cryptodome.Hash modules.

  Args:
      hash_module (ModuleType): e.g., Cryptodome.Hash.SHA256
      data (HashInput):         None, text (UTF-8 encoded), bytes, or a readable binary stream

  Returns:
      bytes: The digest, or hash_module.digest_size zero bytes if there was no input
  """
  zeros = bytes(hash_module.digest_size)
  if data is None:
    return zeros
  if isinstance(data, str):
    data = data.encode('utf-8')
  if isinstance(data, (bytes, bytearray)):
    if len(data) == 0:
      return zeros
    return hash_module.new(data).digest()
  h = hash_module.new()
  have_data = False
  while True:
    chunk = data.read(STREAM_CHUNK_SIZE)
    if not chunk:
      break
    have_data = True
    h.update(chunk)
  return h.digest() if have_data else zeros

def compute_hash_string(hash_module: ModuleType, data: HashInput) -> str:
  """Like compute_hash_bytes(), but returns lowercase hex."""
  return compute_hash_bytes(hash_module, data).hex()

def compute_md5_bytes(data: HashInput) -> bytes:
  return compute_hash_bytes(MD5, data)

def compute_md5_string(data: HashInput) -> str:
  return compute_hash_string(MD5, data)

def compute_sha1_bytes(data: HashInput) -> bytes:
  return compute_hash_bytes(SHA1, data)

def compute_sha1_string(data: HashInput) -> str:
  return compute_hash_string(SHA1, data)

def compute_sha256_bytes(data: HashInput) -> bytes:
  return compute_hash_bytes(SHA256, data)

def compute_sha256_string(data: HashInput) -> str:
  return compute_hash_string(SHA256, data)

def compute_sha512_bytes(data: HashInput) -> bytes:
  return compute_hash_bytes(SHA512, data)

def compute_sha512_string(data: HashInput) -> str:
  return compute_hash_string(SHA512, data)
