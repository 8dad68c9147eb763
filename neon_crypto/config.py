#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Settings for the neon-crypto command-line tool and its password resolver.

Each setting is taken from the first of these that provides it:

  1. An explicit value (e.g., a command-line option)
  2. A YAML config file holding a mapping with the same keys
  3. An environment variable
  4. A built-in default
"""

from typing import Optional, Dict, Any, cast

import os
import yaml

from .constants import DEFAULT_PASSWORDS_DIR, DEFAULT_VAULT_MAX_PADDING_BYTES
from .exceptions import NeonCryptoInvalidArgumentError
from .aes_cipher import validate_max_padding_bytes
from .vault import validate_password_name
from .passwords import PasswordFolder, find_default_password_name

ENV_PASSWORDS_DIR = 'NEON_CRYPTO_PASSWORDS_DIR'
ENV_PASSWORD_NAME = 'NEON_CRYPTO_PASSWORD_NAME'
ENV_LINE_ENDING = 'NEON_CRYPTO_LINE_ENDING'
ENV_MAX_PADDING_BYTES = 'NEON_CRYPTO_MAX_PADDING_BYTES'

CONFIG_KEYS = ('passwords_dir', 'password_name', 'line_ending', 'max_padding_bytes')

_LINE_ENDINGS: Dict[str, str] = { 'lf': '\n', 'crlf': '\r\n' }

def load_config_file(config_file: str) -> Dict[str, Any]:
  """Load a YAML config file.

  Raises:
      NeonCryptoInvalidArgumentError: The file is not a mapping, or has unknown keys
  """
  with open(config_file, encoding='utf-8') as f:
    config_obj = yaml.safe_load(f)
  if config_obj is None:
    return {}
  if not isinstance(config_obj, dict):
    raise NeonCryptoInvalidArgumentError(f"Config file {config_file} must contain a YAML mapping")
  for k in config_obj:
    if k not in CONFIG_KEYS:
      raise NeonCryptoInvalidArgumentError(f"Unknown property '{k}' in config file {config_file}")
  return cast(Dict[str, Any], config_obj)

class NeonCryptoConfig:
  _passwords_dir: str
  _password_name: Optional[str]
  _line_ending: str
  _max_padding_bytes: int

  def __init__(
        self,
        passwords_dir: Optional[str]=None,
        password_name: Optional[str]=None,
        line_ending: Optional[str]=None,
        max_padding_bytes: Optional[int]=None,
        config_file: Optional[str]=None,
        environ: Optional[Dict[str, str]]=None,
      ):
    """Resolve settings.

    Args:
        passwords_dir (Optional[str], optional):   Folder of named passwords.
        password_name (Optional[str], optional):   Default password name for encryption.
        line_ending (Optional[str], optional):     "lf" or "crlf".
        max_padding_bytes (Optional[int], optional): Random padding for vault documents.
        config_file (Optional[str], optional):     Path of a YAML config file.
        environ (Optional[Dict[str, str]], optional):
                                                   Environment variables. Defaults to os.environ.

    Raises:
        NeonCryptoInvalidArgumentError: A setting has an invalid value
    """
    if environ is None:
      environ = cast(Dict[str, str], os.environ)
    file_config: Dict[str, Any] = {} if config_file is None else load_config_file(config_file)

    def pick(value: Any, key: str, env_var: str) -> Any:
      if value is None:
        value = file_config.get(key, None)
      if value is None:
        value = environ.get(env_var, '')
        if value == '':
          value = None
      return value

    passwords_dir = pick(passwords_dir, 'passwords_dir', ENV_PASSWORDS_DIR)
    if passwords_dir is None:
      passwords_dir = DEFAULT_PASSWORDS_DIR
    if not isinstance(passwords_dir, str):
      raise NeonCryptoInvalidArgumentError(f"Invalid passwords_dir: {passwords_dir!r}")
    self._passwords_dir = os.path.abspath(os.path.expanduser(passwords_dir))

    password_name = pick(password_name, 'password_name', ENV_PASSWORD_NAME)
    if password_name is not None:
      if not isinstance(password_name, str):
        raise NeonCryptoInvalidArgumentError(f"Invalid password_name: {password_name!r}")
      password_name = validate_password_name(password_name)
    self._password_name = password_name

    line_ending = pick(line_ending, 'line_ending', ENV_LINE_ENDING)
    if line_ending is None:
      line_ending = 'lf'
    if not isinstance(line_ending, str) or line_ending.lower() not in _LINE_ENDINGS:
      raise NeonCryptoInvalidArgumentError(f"Invalid line_ending: {line_ending!r}; must be 'lf' or 'crlf'")
    self._line_ending = line_ending.lower()

    max_padding_bytes = pick(max_padding_bytes, 'max_padding_bytes', ENV_MAX_PADDING_BYTES)
    if max_padding_bytes is None:
      max_padding_bytes = DEFAULT_VAULT_MAX_PADDING_BYTES
    if isinstance(max_padding_bytes, str):
      try:
        max_padding_bytes = int(max_padding_bytes.strip())
      except ValueError as e:
        raise NeonCryptoInvalidArgumentError(f"Invalid max_padding_bytes: {max_padding_bytes!r}") from e
    self._max_padding_bytes = validate_max_padding_bytes(max_padding_bytes)

  @property
  def passwords_dir(self) -> str:
    return self._passwords_dir

  @property
  def password_name(self) -> Optional[str]:
    """The configured default password name, if any. See get_password_name()."""
    return self._password_name

  @property
  def line_ending(self) -> str:
    """Either "lf" or "crlf"."""
    return self._line_ending

  @property
  def line_ending_chars(self) -> str:
    return _LINE_ENDINGS[self._line_ending]

  @property
  def max_padding_bytes(self) -> int:
    return self._max_padding_bytes

  def get_password_name(self, path: Optional[str]=None) -> Optional[str]:
    """Return the password name to encrypt with: the configured name if any, otherwise
       the name in the nearest ".password-name" file above path (default: current directory)."""
    if self._password_name is not None:
      return self._password_name
    return find_default_password_name(os.getcwd() if path is None else path)

  def get_password_folder(self) -> PasswordFolder:
    return PasswordFolder(self._passwords_dir)
