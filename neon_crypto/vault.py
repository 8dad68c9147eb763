#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Password-named, text-safe encrypted documents (similar to Ansible Vault)"""

from typing import Optional, Union, BinaryIO, Tuple

import io
import re
import shutil
import logging
import tempfile
import binascii

from .exceptions import (
    NeonCryptoInvalidArgumentError,
    NeonCryptoTamperDetectedError,
    NeonVaultPasswordNameError,
    NeonVaultPasswordNotFoundError,
    NeonVaultFormatError,
    NeonVaultTamperDetectedError,
  )
from .constants import (
    DEFAULT_KEY_SIZE_BITS,
    DEFAULT_VAULT_MAX_PADDING_BYTES,
    STREAM_CHUNK_SIZE,
    UTF8_BOM,
    VAULT_HEADER_TAG,
    VAULT_HEADER_MAGIC,
    VAULT_HEADER_PREFIX,
    VAULT_HEADER_SEPARATOR,
    VAULT_FORMAT_VERSION,
    VAULT_CIPHER_NAME,
    VAULT_LINE_WIDTH,
  )
from .util import derive_key_from_password
from .aes_cipher import AesCipher, SPOOL_MAX_SIZE_BYTES, validate_max_padding_bytes, read_up_to
from .internal_types import PasswordResolver, BytesOrText

logger = logging.getLogger("neon_crypto.vault")

_HEADER_PREFIX_BYTES = VAULT_HEADER_PREFIX.encode('ascii')

_PEEK_SIZE = len(UTF8_BOM) + len(_HEADER_PREFIX_BYTES)
"""Number of leading bytes needed to recognize a vault document"""

_MAX_HEADER_LINE_BYTES = 4096

_BODY_WHITESPACE = b' \t\r\n\f\v'

_NON_HEX_RE = re.compile(rb'[^0-9a-fA-F]')

_PASSWORD_NAME_PUNCTUATION = frozenset('._-')

def validate_password_name(password_name: Optional[str]) -> str:
  """Ensure that a password name is valid.

  Password names are non-empty and contain only letters, digits, dots, dashes and underscores.
  In particular they never contain path separators or the vault header separator.

  Args:
      password_name (str): The password name.

  Raises:
      NeonVaultPasswordNameError: The name is None, empty, or contains invalid characters

  Returns:
      str: The password name, unchanged.
  """
  if password_name is None or not isinstance(password_name, str) or password_name == '':
    raise NeonVaultPasswordNameError("Password name cannot be empty.")
  for ch in password_name:
    if not (ch.isalnum() or ch in _PASSWORD_NAME_PUNCTUATION):
      raise NeonVaultPasswordNameError(
          f"Password name [{password_name}] contains invalid characters. "
          "Only letters, digits, underscores, dashes and dots are allowed."
        )
  return password_name

def _strip_bom(data: bytes) -> bytes:
  return data[len(UTF8_BOM):] if data.startswith(UTF8_BOM) else data

def _format_header(password_name: str) -> bytes:
  fields = [VAULT_HEADER_TAG, VAULT_HEADER_MAGIC, VAULT_FORMAT_VERSION, VAULT_CIPHER_NAME, password_name]
  return VAULT_HEADER_SEPARATOR.join(fields).encode('utf-8')

def _parse_header(header_line: bytes) -> str:
  """Parse a vault header line, returning the password name"""
  try:
    text = _strip_bom(header_line).decode('utf-8').strip()
  except UnicodeDecodeError as e:
    raise NeonVaultFormatError("Vault header is not valid UTF-8") from e
  parts = text.split(VAULT_HEADER_SEPARATOR)
  if len(parts) != 5 or parts[0] != VAULT_HEADER_TAG or parts[1] != VAULT_HEADER_MAGIC:
    raise NeonVaultFormatError(f"Badly formed vault header: {text}")
  if parts[2] != VAULT_FORMAT_VERSION:
    raise NeonVaultFormatError(f"Unsupported vault format version [{parts[2]}]")
  if parts[3] != VAULT_CIPHER_NAME:
    raise NeonVaultFormatError(f"Unsupported vault cipher [{parts[3]}]")
  try:
    return validate_password_name(parts[4])
  except NeonVaultPasswordNameError as e:
    raise NeonVaultFormatError(f"Vault header has an invalid password name: {e}") from e

def _read_header_line(source: BinaryIO, head: bytes) -> Tuple[bytes, bytes]:
  """Read the rest of the header line, given the bytes already read.

  Returns:
      Tuple[bytes, bytes]: The header line without its line ending, and any bytes that were
                           read beyond it.
  """
  buffer = bytearray(head)
  while True:
    eol = buffer.find(b'\n')
    if eol >= 0:
      return bytes(buffer[:eol]).rstrip(b'\r'), bytes(buffer[eol + 1:])
    if len(buffer) > _MAX_HEADER_LINE_BYTES:
      raise NeonVaultFormatError("Vault header line is too long")
    chunk = source.read(STREAM_CHUNK_SIZE)
    if not chunk:
      # header with no body
      return bytes(buffer).rstrip(b'\r'), b''
    buffer += chunk

class _HexLineWriter:
  """A minimal binary sink that writes its input as fixed-width lines of lowercase hex"""

  def __init__(self, target: BinaryIO, line_ending: bytes, width: int=VAULT_LINE_WIDTH):
    self._target = target
    self._line_ending = line_ending
    self._width = width
    self._pending = bytearray()

  def write(self, data: bytes) -> int:
    self._pending += binascii.hexlify(data)
    n_full = len(self._pending) - len(self._pending) % self._width
    if n_full > 0:
      lines = [bytes(self._pending[i:i + self._width]) for i in range(0, n_full, self._width)]
      self._target.write(self._line_ending.join(lines) + self._line_ending)
      del self._pending[:n_full]
    return len(data)

  def close(self) -> None:
    if len(self._pending) > 0:
      self._target.write(bytes(self._pending) + self._line_ending)
      self._pending = bytearray()

class _HexBodyDecoder:
  """Decodes a vault body, ignoring line breaks, whitespace and hex digit case"""

  def __init__(self, target: BinaryIO):
    self._target = target
    self._carry = b''
    self._n_digits = 0

  def feed(self, data: bytes) -> None:
    digits = data.translate(None, _BODY_WHITESPACE)
    if not digits:
      return
    bad = _NON_HEX_RE.search(digits)
    if bad is not None:
      raise NeonVaultFormatError(f"Vault body contains an invalid hex character: {bad.group(0)!r}")
    self._n_digits += len(digits)
    digits = self._carry + digits
    n_even = len(digits) - len(digits) % 2
    self._target.write(binascii.unhexlify(digits[:n_even]))
    self._carry = digits[n_even:]

  def finish(self) -> None:
    if self._n_digits == 0:
      raise NeonVaultFormatError("Vault body is empty")
    if len(self._carry) != 0:
      raise NeonVaultFormatError("Vault body has an odd number of hex digits")

class NeonVault:
  """Encrypts and decrypts documents using named passwords.

  Applications define one or more named passwords (e.g., "mypassword1" => "GU6qc2vsJgmCWmdL")
  and supply a password resolver: a function that returns the password for a name, raising
  an exception (typically KeyError) if the name is not known. Only the password name is stored
  in an encrypted document, so encrypted documents can be safely committed to source control.

  Encrypted documents are ASCII text formatted like:

      $NEON_VAULT;4c823a36774ca4ac760f31dd8abe7bd3;1.0;AES256;mypassword1
      35a0ba3b100093b2f3c5e1a5ab7db8a7e6ad6b0f9e89f3b0c0c1d3fdbd1f2f0b01d3d0a43f0e8b2d
      ...
      e3b0c44298fc1c14

  The header line identifies the document, the format version, the cipher, and the name of
  the password. The remaining lines hold an AesCipher frame encoded as hex, wrapped at 80
  columns. The key is derived from the password with derive_key_from_password().

  Decryption tolerates LF, CRLF or mixed line endings, upper or lower case hex, and a leading
  UTF-8 byte order mark, since these are commonly introduced by editors and source control.
  Content that does not start with the vault header is not encrypted and is returned as-is,
  so the decrypt methods can be used on any file.

  A wrong password and a tampered document cannot be told apart; both raise
  NeonVaultTamperDetectedError.
  """

  _password_resolver: PasswordResolver
  _line_ending: bytes
  _max_padding_bytes: int

  @staticmethod
  def validate_password_name(password_name: Optional[str]) -> str:
    """Ensure that a password name is valid. See validate_password_name()."""
    return validate_password_name(password_name)

  def __init__(
        self,
        password_resolver: PasswordResolver,
        line_ending: Union[str, bytes]="\n",
        max_padding_bytes: int=DEFAULT_VAULT_MAX_PADDING_BYTES,
      ):
    """Create a vault.

    Args:
        password_resolver (PasswordResolver):
                              A function that returns the password for a password name.
        line_ending (Union[str, bytes], optional):
                              Line ending used when writing encrypted documents; "\\n" or "\\r\\n".
                              Defaults to "\\n".
        max_padding_bytes (int, optional):
                              Maximum random padding added to each document. Defaults to 64.

    Raises:
        NeonCryptoInvalidArgumentError: Invalid parameter
    """
    if password_resolver is None or not callable(password_resolver):
      raise NeonCryptoInvalidArgumentError("password_resolver must be callable")
    if isinstance(line_ending, str):
      line_ending = line_ending.encode('ascii')
    if line_ending not in (b'\n', b'\r\n'):
      raise NeonCryptoInvalidArgumentError(f"Unsupported line ending: {line_ending!r}")
    validate_max_padding_bytes(max_padding_bytes)
    self._password_resolver = password_resolver
    self._line_ending = line_ending
    self._max_padding_bytes = max_padding_bytes

  @property
  def line_ending(self) -> bytes:
    return self._line_ending

  @property
  def max_padding_bytes(self) -> int:
    return self._max_padding_bytes

  def _lookup_password(self, password_name: str) -> str:
    try:
      password = self._password_resolver(password_name)
    except Exception as e:
      raise NeonVaultPasswordNotFoundError(f"Password [{password_name}] could not be found.") from e
    if not isinstance(password, str) or password == '':
      raise NeonVaultPasswordNotFoundError(f"Password [{password_name}] could not be found.")
    return password

  def _create_cipher(self, password_name: str) -> AesCipher:
    password = self._lookup_password(password_name)
    key = derive_key_from_password(password, DEFAULT_KEY_SIZE_BITS)
    return AesCipher(key, max_padding_bytes=self._max_padding_bytes)

  # ---------------------------------------------------------------------------
  # Detection

  @staticmethod
  def is_encrypted(data: BytesOrText) -> bool:
    """Determine whether content is a vault document, checking only the header.

    Never raises for well-formed non-vault content.
    """
    if isinstance(data, str):
      data = data.encode('utf-8')
    if not isinstance(data, (bytes, bytearray)):
      return False
    return _strip_bom(bytes(data[:_PEEK_SIZE])).startswith(_HEADER_PREFIX_BYTES)

  @staticmethod
  def is_encrypted_stream(source: BinaryIO) -> bool:
    """Determine whether a binary stream holds a vault document.

    If the stream is seekable, its position is restored afterwards. Text streams raise
    NeonCryptoInvalidArgumentError.
    """
    seekable = hasattr(source, 'seekable') and source.seekable()
    start = source.tell() if seekable else 0
    head = read_up_to(source, _PEEK_SIZE)
    if seekable:
      source.seek(start)
    return NeonVault.is_encrypted(head)

  @staticmethod
  def is_encrypted_file(path: str) -> bool:
    """Determine whether a file holds a vault document."""
    with open(path, 'rb') as f:
      return NeonVault.is_encrypted_stream(f)

  @staticmethod
  def get_password_name(data: BytesOrText) -> str:
    """Return the password name recorded in the header of a vault document.

    Raises:
        NeonVaultFormatError: data is not a vault document or the header is malformed
    """
    if isinstance(data, str):
      data = data.encode('utf-8')
    if not NeonVault.is_encrypted(data):
      raise NeonVaultFormatError("The data is not a vault document")
    header_line, _ = _read_header_line(io.BytesIO(), bytes(data[:_MAX_HEADER_LINE_BYTES]))
    return _parse_header(header_line)

  # ---------------------------------------------------------------------------
  # Encryption

  def _encrypt_with(self, cipher: AesCipher, source: BinaryIO, target: BinaryIO, password_name: str) -> None:
    target.write(_format_header(password_name) + self._line_ending)
    writer = _HexLineWriter(target, self._line_ending)
    cipher.encrypt_stream(source, writer)  # type: ignore[arg-type]
    writer.close()

  def encrypt_stream(self, source: BinaryIO, target: BinaryIO, password_name: str) -> None:
    """Encrypt a binary stream into a vault document written to another binary stream.

    Raises:
        NeonVaultPasswordNameError:     Invalid password name
        NeonVaultPasswordNotFoundError: The password resolver failed
    """
    password_name = validate_password_name(password_name)
    if source is None or target is None:
      raise NeonCryptoInvalidArgumentError("source and target cannot be None")
    cipher = self._create_cipher(password_name)
    logger.debug("Encrypting stream with password [%s]", password_name)
    self._encrypt_with(cipher, source, target, password_name)

  def encrypt(self, plaintext: BytesOrText, password_name: str) -> bytes:
    """Encrypt bytes, or text encoded as UTF-8, into a vault document.

    Raises:
        NeonVaultPasswordNameError:     Invalid password name
        NeonVaultPasswordNotFoundError: The password resolver failed
    """
    password_name = validate_password_name(password_name)
    if isinstance(plaintext, str):
      plaintext = plaintext.encode('utf-8')
    if not isinstance(plaintext, (bytes, bytearray)):
      raise NeonCryptoInvalidArgumentError("plaintext must be str or bytes")
    target = io.BytesIO()
    self.encrypt_stream(io.BytesIO(bytes(plaintext)), target, password_name)
    return target.getvalue()

  def encrypt_file(self, source_path: str, password_name: str, target_path: Optional[str]=None) -> Optional[bytes]:
    """Encrypt a file.

    Args:
        source_path (str):   The file to encrypt
        password_name (str): The name of the password to encrypt with
        target_path (Optional[str], optional):
                             If provided, the document is written to this file and None is
                             returned. May be the same as source_path. Defaults to None.

    Returns:
        Optional[bytes]: The encrypted document if target_path is None
    """
    password_name = validate_password_name(password_name)
    cipher = self._create_cipher(password_name)
    logger.debug("Encrypting [%s] with password [%s]", source_path, password_name)
    if target_path is None:
      target = io.BytesIO()
      with open(source_path, 'rb') as f:
        self._encrypt_with(cipher, f, target, password_name)
      return target.getvalue()
    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE_BYTES) as spool:
      with open(source_path, 'rb') as f:
        self._encrypt_with(cipher, f, spool, password_name)  # type: ignore[arg-type]
      spool.seek(0)
      with open(target_path, 'wb') as f2:
        shutil.copyfileobj(spool, f2, STREAM_CHUNK_SIZE)
    return None

  # ---------------------------------------------------------------------------
  # Decryption

  def decrypt_stream(self, source: BinaryIO, target: BinaryIO) -> None:
    """Decrypt a binary stream to another binary stream.

    If the source is not a vault document, it is copied to target unchanged.

    Raises:
        NeonCryptoInvalidArgumentError: source is a text stream
        NeonVaultFormatError:           The document is malformed
        NeonVaultPasswordNotFoundError: The password resolver failed
        NeonVaultTamperDetectedError:   The document was tampered with or the password is wrong
    """
    if source is None or target is None:
      raise NeonCryptoInvalidArgumentError("source and target cannot be None")
    head = read_up_to(source, _PEEK_SIZE)
    if not self.is_encrypted(head):
      logger.debug("Source is not a vault document; copying unchanged")
      target.write(head)
      shutil.copyfileobj(source, target, STREAM_CHUNK_SIZE)
      return

    header_line, rest = _read_header_line(source, head)
    password_name = _parse_header(header_line)
    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE_BYTES) as frame:
      decoder = _HexBodyDecoder(frame)  # type: ignore[arg-type]
      decoder.feed(rest)
      while True:
        chunk = source.read(STREAM_CHUNK_SIZE)
        if not chunk:
          break
        decoder.feed(chunk)
      decoder.finish()
      frame.seek(0)

      cipher = self._create_cipher(password_name)
      logger.debug("Decrypting document with password [%s]", password_name)
      try:
        cipher.decrypt_stream(frame, target)  # type: ignore[arg-type]
      except NeonCryptoTamperDetectedError as e:
        raise NeonVaultTamperDetectedError(
            f"The vault document has been tampered with or password [{password_name}] is incorrect."
          ) from e

  def decrypt(self, data: BytesOrText) -> bytes:
    """Decrypt a vault document held in memory.

    If data is not a vault document it is returned unchanged (text is returned UTF-8 encoded).
    """
    if isinstance(data, str):
      data = data.encode('utf-8')
    if not isinstance(data, (bytes, bytearray)):
      raise NeonCryptoInvalidArgumentError("data must be str or bytes")
    target = io.BytesIO()
    self.decrypt_stream(io.BytesIO(bytes(data)), target)
    return target.getvalue()

  def decrypt_to_string(self, data: BytesOrText, encoding: str='utf-8') -> str:
    """Decrypt a vault document whose plaintext is text."""
    return self.decrypt(data).decode(encoding)

  def decrypt_file(self, source_path: str, target_path: Optional[str]=None) -> Optional[bytes]:
    """Decrypt a file (or copy it unchanged if it is not encrypted).

    Args:
        source_path (str): The file to decrypt
        target_path (Optional[str], optional):
                           If provided, the plaintext is written to this file and None is
                           returned. May be the same as source_path. Defaults to None.

    Returns:
        Optional[bytes]: The plaintext if target_path is None
    """
    if target_path is None:
      target = io.BytesIO()
      with open(source_path, 'rb') as f:
        self.decrypt_stream(f, target)
      return target.getvalue()
    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE_BYTES) as spool:
      with open(source_path, 'rb') as f:
        self.decrypt_stream(f, spool)  # type: ignore[arg-type]
      spool.seek(0)
      with open(target_path, 'wb') as f2:
        shutil.copyfileobj(spool, f2, STREAM_CHUNK_SIZE)
    return None
