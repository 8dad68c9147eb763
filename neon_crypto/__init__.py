# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package neon_crypto provides a command-line tool as well as a runtime API for authenticated AES
encryption of bytes, strings and streams, and for NeonVault documents: text-safe encrypted files
that record only the name of the password used to encrypt them, so they can be safely committed
to source control.
"""

from .version import __version__

from .constants import (
    SUPPORTED_KEY_SIZES_BITS,
    DEFAULT_KEY_SIZE_BITS,
    AES_BLOCK_SIZE_BYTES,
    CIPHER_MAGIC,
    DEFAULT_MAX_PADDING_BYTES,
    DEFAULT_VAULT_MAX_PADDING_BYTES,
    MAX_PADDING_BYTES_LIMIT,
    PBKDF2_COUNT,
    VAULT_HEADER_PREFIX,
  )

from .util import (
    generate_key,
    generate_random_bytes,
    derive_key_from_password,
  )

from .hashing import (
    MD5_BYTE_SIZE,
    SHA1_BYTE_SIZE,
    SHA256_BYTE_SIZE,
    SHA512_BYTE_SIZE,
    HMAC512_BYTE_SIZE,
    compute_md5_bytes,
    compute_md5_string,
    compute_sha1_bytes,
    compute_sha1_string,
    compute_sha256_bytes,
    compute_sha256_string,
    compute_sha512_bytes,
    compute_sha512_string,
  )

from .aes_cipher import AesCipher
from .vault import NeonVault, validate_password_name
from .passwords import PasswordFolder, DictPasswordResolver, find_default_password_name
from .config import NeonCryptoConfig
from .internal_types import Jsonable, PasswordResolver
from .exceptions import (
    NeonCryptoError,
    NeonCryptoInvalidArgumentError,
    NeonCryptoTamperDetectedError,
    NeonVaultError,
    NeonVaultPasswordNameError,
    NeonVaultPasswordNotFoundError,
    NeonVaultFormatError,
    NeonVaultTamperDetectedError,
  )
