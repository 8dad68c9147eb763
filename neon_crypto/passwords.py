#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Password resolvers for NeonVault, and default password name discovery"""

from typing import Optional, List, Mapping, Dict

import os
import logging

from .constants import PASSWORD_NAME_FILENAME, DEFAULT_PASSWORDS_DIR
from .exceptions import NeonCryptoInvalidArgumentError
from .vault import validate_password_name

logger = logging.getLogger("neon_crypto.passwords")

def _check_store_name(password_name: str) -> str:
  password_name = validate_password_name(password_name)
  if password_name in ('.', '..'):
    raise NeonCryptoInvalidArgumentError(f"Password name [{password_name}] cannot be used as a file name")
  return password_name

class DictPasswordResolver:
  """A password resolver backed by an in-memory mapping of password names to passwords."""

  _passwords: Dict[str, str]

  def __init__(self, passwords: Optional[Mapping[str, str]]=None):
    self._passwords = dict(passwords or {})

  def __call__(self, password_name: str) -> str:
    return self._passwords[password_name]

  def __contains__(self, password_name: object) -> bool:
    return password_name in self._passwords

class PasswordFolder:
  """A password resolver backed by a folder holding one file per named password.

  Each file is named after its password and holds the password text. Leading and trailing
  whitespace (including a trailing newline added by an editor) is ignored.
  """

  _folder: str

  def __init__(self, folder: Optional[str]=None):
    """Create a password folder resolver.

    Args:
        folder (Optional[str], optional): Path of the folder. Defaults to ~/.neonforge/passwords.
    """
    if folder is None:
      folder = DEFAULT_PASSWORDS_DIR
    self._folder = os.path.abspath(os.path.expanduser(folder))

  @property
  def folder(self) -> str:
    return self._folder

  def _path(self, password_name: str) -> str:
    return os.path.join(self._folder, _check_store_name(password_name))

  def __call__(self, password_name: str) -> str:
    return self.get(password_name)

  def get(self, password_name: str) -> str:
    """Return the named password.

    Raises:
        KeyError: The password does not exist
    """
    path = self._path(password_name)
    if not os.path.isfile(path):
      raise KeyError(password_name)
    with open(path, encoding='utf-8') as f:
      return f.read().strip()

  def exists(self, password_name: str) -> bool:
    return os.path.isfile(self._path(password_name))

  def set(self, password_name: str, password: str) -> None:
    """Create or replace a named password. The file is readable only by the current user
       on systems that support it."""
    path = self._path(password_name)
    password = password.strip() if isinstance(password, str) else password
    if not isinstance(password, str) or password == '':
      raise NeonCryptoInvalidArgumentError("The password cannot be empty")
    os.makedirs(self._folder, mode=0o700, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
      f.write(password)
    logger.debug("Saved password [%s]", password_name)

  def remove(self, password_name: str) -> None:
    """Remove a named password.

    Raises:
        KeyError: The password does not exist
    """
    path = self._path(password_name)
    if not os.path.isfile(path):
      raise KeyError(password_name)
    os.remove(path)
    logger.debug("Removed password [%s]", password_name)

  def list(self) -> List[str]:
    """Return the sorted names of all passwords in the folder."""
    if not os.path.isdir(self._folder):
      return []
    result: List[str] = []
    for name in os.listdir(self._folder):
      if os.path.isfile(os.path.join(self._folder, name)):
        try:
          validate_password_name(name)
        except ValueError:
          continue
        result.append(name)
    return sorted(result)

def find_default_password_name(path: str) -> Optional[str]:
  """Find the default password name for a file.

  Searches the folder holding path (or path itself, if it is a folder) and then each
  ancestor folder for a ".password-name" file. The first line of the first such file
  found is the default password name. An empty ".password-name" file stops the search.

  Args:
      path (str): A file or folder path

  Returns:
      Optional[str]: The default password name, or None if none was found
  """
  folder = os.path.abspath(path)
  if not os.path.isdir(folder):
    folder = os.path.dirname(folder)
  try:
    while True:
      candidate = os.path.join(folder, PASSWORD_NAME_FILENAME)
      if os.path.isfile(candidate):
        with open(candidate, encoding='utf-8') as f:
          lines = f.read().splitlines()
        password_name = lines[0].strip() if len(lines) > 0 else ''
        if password_name == '':
          return None
        logger.debug("Found default password name [%s] in [%s]", password_name, candidate)
        return password_name
      parent = os.path.dirname(folder)
      if parent == folder:
        return None
      folder = parent
  except PermissionError:
    return None
