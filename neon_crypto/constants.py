#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants defined by this package"""

SUPPORTED_KEY_SIZES_BITS = (128, 192, 256)
"""AES key sizes in bits accepted by AesCipher"""

DEFAULT_KEY_SIZE_BITS = 256
"""Default AES key size in bits"""

MAX_DERIVED_KEY_SIZE_BITS = 512
"""Largest key that derive_key_from_password() will produce"""

AES_BLOCK_SIZE_BYTES = 16
"""AES block size, which is also the size of the per-encryption IV"""

CIPHER_MAGIC = 0x3BBAA035
"""32-bit magic number written in plaintext at the start of every AesCipher frame"""

MAX_PADDING_BYTES_LIMIT = 32767
"""Largest max_padding_bytes accepted by AesCipher (padding size is persisted as an int16)"""

DEFAULT_MAX_PADDING_BYTES = 0
"""Default random padding added by AesCipher"""

DEFAULT_VAULT_MAX_PADDING_BYTES = 64
"""Default random padding added to vault documents so that file size does not reveal plaintext size"""

HMAC_HKDF_INFO = b"neon-crypto:hmac:v1"
"""HKDF context used to derive the HMAC-SHA512 key from an AES key"""

PBKDF2_COUNT = 100000
"""Number of PBKDF2-HMAC-SHA512 iterations used to derive a key from a password. This is part
   of the vault file format and must never change."""

PBKDF2_SALT = b"neon-crypto:key-derivation:v1"
"""Fixed, public salt used to derive a key from a password. Keys must be reproducible from the
   password alone, so no random salt is stored. This is part of the vault file format and must
   never change."""

STREAM_CHUNK_SIZE = 64 * 1024
"""Number of bytes read at a time by the streaming encrypt/decrypt methods"""

VAULT_HEADER_TAG = "$NEON_VAULT"
"""First field of the header line of a vault document"""

VAULT_HEADER_MAGIC = "4c823a36774ca4ac760f31dd8abe7bd3"
"""Second field of the header line of a vault document; makes accidental matches very unlikely"""

VAULT_FORMAT_VERSION = "1.0"
"""Vault document format version"""

VAULT_CIPHER_NAME = "AES256"
"""Cipher name recorded in the vault header"""

VAULT_HEADER_SEPARATOR = ";"
"""Separator between vault header fields"""

VAULT_HEADER_PREFIX = VAULT_HEADER_TAG + VAULT_HEADER_SEPARATOR + VAULT_HEADER_MAGIC + VAULT_HEADER_SEPARATOR
"""Any content beginning with this string is considered to be a vault document"""

VAULT_LINE_WIDTH = 80
"""Number of hex digits on each body line of a vault document"""

UTF8_BOM = b"\xef\xbb\xbf"
"""UTF-8 byte order mark that editors sometimes insert at the start of a file"""

PASSWORD_NAME_FILENAME = ".password-name"
"""Name of the file that specifies the default password name for files in a folder tree"""

DEFAULT_PASSWORDS_DIR = "~/.neonforge/passwords"
"""Default folder holding one file per named password"""
