#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Command-line interface for neon_crypto package"""


from typing import Optional, Sequence, Union, TextIO, cast

import os
import sys
import json
import logging
import argparse
import colorama # type: ignore[import]
from colorama import Fore, Style
from pygments import highlight, lexers, formatters

# NOTE: this module runs with -m; do not use relative imports
from neon_crypto import (
    NeonVault,
    NeonCryptoConfig,
    PasswordFolder,
    Jsonable,
    NeonCryptoError,
    generate_key,
    validate_password_name,
    __version__ as pkg_version,
  )

def is_colorizable(stream: TextIO) -> bool:
  is_a_tty = hasattr(stream, 'isatty') and stream.isatty()
  return is_a_tty

class CmdExitError(RuntimeError):
  exit_code: int

  def __init__(self, exit_code: int, msg: Optional[str]=None):
    if msg is None:
      msg = f"Command exited with return code {exit_code}"
    super().__init__(msg)
    self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
  pass

class NoExitArgumentParser(argparse.ArgumentParser):
  def exit(self, status=0, message=None):
    if message:
      self._print_message(message, sys.stderr)
    raise ArgparseExitError(status, message)

class CommandHandler:
  _argv: Optional[Sequence[str]]
  _parser: argparse.ArgumentParser
  _args: argparse.Namespace
  _config: Optional[NeonCryptoConfig] = None
  _colorize_stdout: bool = False
  _colorize_stderr: bool = False
  _compact: bool = False
  _raw: bool = False
  _output_file: Optional[str] = None

  def __init__(self, argv: Optional[Sequence[str]]=None):
    self._argv = argv

  def ocolor(self, codes: str) -> str:
    return codes if self._colorize_stdout else ""

  def ecolor(self, codes: str) -> str:
    return codes if self._colorize_stderr else ""

  def write_binary(self, data: bytes) -> None:
    output_file = self._output_file
    if output_file is None:
      sys.stdout.flush()
      bin_stdout = getattr(sys.stdout, 'buffer', None)
      if bin_stdout is None:
        with os.fdopen(sys.stdout.fileno(), "wb", closefd=False) as f:
          f.write(data)
          f.flush()
      else:
        bin_stdout.write(data)
        bin_stdout.flush()
    else:
      with open(output_file, "wb") as f:
        f.write(data)

  def pretty_print(
        self,
        any_value: Union[Jsonable, bytes],
        compact: Optional[bool]=None,
        colorize: Optional[bool]=None,
        raw: Optional[bool]=None,
      ):
    if raw is None:
      raw = self._raw
    raw = raw or isinstance(any_value, (bytes, bytearray))
    if raw:
      if isinstance(any_value, str):
        any_value = any_value.encode('utf-8')
      if isinstance(any_value, (bytes, bytearray)):
        self.write_binary(bytes(any_value))
        return
    value = cast(Jsonable, any_value)

    if compact is None:
      compact = self._compact
    if colorize is None:
      colorize = True

    def emit_to(f: TextIO):
      final_colorize = colorize and ((f is sys.stdout and self._colorize_stdout) or (f is sys.stderr and self._colorize_stderr))

      if compact:
        json_text = json.dumps(value, separators=(',', ':'), sort_keys=True)
      else:
        json_text = json.dumps(value, indent=2, sort_keys=True)
      if final_colorize:
        json_text = highlight(json_text, lexers.JsonLexer(), formatters.TerminalFormatter())  # pylint: disable=no-member
      else:
        json_text += '\n'
      f.write(json_text)

    output_file = self._output_file
    if output_file is None:
      emit_to(sys.stdout)
    else:
      with open(output_file, "w", encoding='utf-8') as f:
        emit_to(f)

  def get_config(self) -> NeonCryptoConfig:
    if self._config is None:
      args = self._args
      self._config = NeonCryptoConfig(
          passwords_dir=args.passwords_dir,
          password_name=getattr(args, 'password_name', None),
          line_ending=getattr(args, 'line_ending', None),
          config_file=args.config_file,
        )
    return self._config

  def get_password_folder(self) -> PasswordFolder:
    return self.get_config().get_password_folder()

  def get_vault(self) -> NeonVault:
    config = self.get_config()
    return NeonVault(
        self.get_password_folder(),
        line_ending=config.line_ending_chars,
        max_padding_bytes=config.max_padding_bytes,
      )

  def read_input(self, value: Optional[str]=None) -> bytes:
    args = self._args
    use_stdin: bool = args.use_stdin
    input_file: Optional[str] = args.input_file
    if use_stdin and not input_file is None:
      raise NeonCryptoError("Only one of --stdin and --input can be provided")
    if value is None:
      if use_stdin:
        stdin = getattr(sys.stdin, 'buffer', sys.stdin)
        data = stdin.read()
        return data.encode('utf-8') if isinstance(data, str) else data
      if input_file is None:
        raise NeonCryptoError("One of value parameter, --stdin, or --input must be provided")
      with open(input_file, 'rb') as f:
        return f.read()
    if use_stdin or not input_file is None:
      raise NeonCryptoError("Only one of value parameter, --stdin, and --input can be provided")
    return value.encode('utf-8')

  def cmd_bare(self) -> int:
    print("A command is required", file=sys.stderr)
    return 1

  def cmd_version(self) -> int:
    self.pretty_print(pkg_version)
    return 0

  def cmd_generate_key(self) -> int:
    bits: int = self._args.bits
    self.pretty_print(generate_key(bits))
    return 0

  def cmd_encrypt(self) -> int:
    args = self._args
    value: Optional[str] = args.value
    plaintext = self.read_input(value)
    config = self.get_config()
    input_file: Optional[str] = args.input_file
    password_name = config.get_password_name(input_file)
    if password_name is None:
      raise NeonCryptoError(
          "A password name must be provided with --password-name, environment variable "
          "NEON_CRYPTO_PASSWORD_NAME, or a .password-name file"
        )
    if NeonVault.is_encrypted(plaintext):
      raise NeonCryptoError("The input is already encrypted")
    vault = self.get_vault()
    self.write_binary(vault.encrypt(plaintext, password_name))
    return 0

  def cmd_decrypt(self) -> int:
    data = self.read_input()
    vault = self.get_vault()
    self.write_binary(vault.decrypt(data))
    return 0

  def cmd_is_encrypted(self) -> int:
    path: str = self._args.path
    result = NeonVault.is_encrypted_file(path)
    self.pretty_print(result)
    return 0 if result else 1

  def cmd_password_bare(self) -> int:
    print("A password subcommand is required", file=sys.stderr)
    return 1

  def cmd_password_set(self) -> int:
    args = self._args
    name: str = validate_password_name(args.name)
    value: Optional[str] = args.value
    generate: bool = args.generate
    if generate:
      if not value is None:
        raise NeonCryptoError("Only one of value parameter and --generate can be provided")
      value = generate_key(256)
    elif value is None:
      raise NeonCryptoError("One of value parameter or --generate must be provided")
    self.get_password_folder().set(name, value)
    return 0

  def cmd_password_get(self) -> int:
    name: str = self._args.name
    try:
      password = self.get_password_folder().get(name)
    except KeyError as e:
      raise NeonCryptoError(f"Password [{name}] does not exist") from e
    self.pretty_print(password)
    return 0

  def cmd_password_rm(self) -> int:
    name: str = self._args.name
    try:
      self.get_password_folder().remove(name)
    except KeyError as e:
      raise NeonCryptoError(f"Password [{name}] does not exist") from e
    return 0

  def cmd_password_ls(self) -> int:
    self.pretty_print(cast(Jsonable, self.get_password_folder().list()))
    return 0

  def run(self) -> int:
    """Run the neon-crypto command-line tool with provided arguments

    Args:
        argv (Optional[Sequence[str]], optional):
            A list of commandline arguments (NOT including the program as argv[0]!),
            or None to use sys.argv[1:]. Defaults to None.

    Returns:
        int: The exit code that would be returned if this were run as a standalone command.
    """
    parser = NoExitArgumentParser(prog='neon-crypto', description="Encrypt and decrypt secrets and NeonVault documents.")


    # ======================= Main command

    self._parser = parser
    parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                        help='Display detailed exception information')
    parser.add_argument('-M', '--monochrome', action='store_true', default=False,
                        help='Output to stdout/stderr in monochrome. Default is to colorize if stream is a compatible terminal')
    parser.add_argument('-c', '--compact', action='store_true', default=False,
                        help='Compact instead of pretty-printed output')
    parser.add_argument('-r', '--raw', action='store_true', default=False,
                        help='''Output raw strings and binary content directly, not json-encoded.
                                Values embedded in structured results are not affected.''')
    parser.add_argument('-o', '--output', dest="output_file", default=None,
                        help='Write output value to the specified file instead of stdout')
    parser.add_argument('-v', '--verbose', action='store_true', default=False,
                        help='Enable debug logging to stderr')
    parser.add_argument('--config-file', '-C', default=None,
                        help='''A YAML document with top-level properties "passwords_dir", "password_name",
                                "line_ending", and/or "max_padding_bytes". Values in this file override
                                environment variables.''')
    parser.add_argument('--passwords-dir', default=None,
                        help='''The folder holding named passwords, one file per password. By default,
                                environment variable NEON_CRYPTO_PASSWORDS_DIR or ~/.neonforge/passwords is used''')
    parser.set_defaults(func=self.cmd_bare)

    subparsers = parser.add_subparsers(
                        title='Commands',
                        description='Valid commands',
                        help='Additional help available with "<command-name> -h"')


    # ======================= version

    parser_version = subparsers.add_parser('version',
                            description='''Display version information. JSON-quoted string. If a raw string is desired, use -r.''')
    parser_version.set_defaults(func=self.cmd_version)

    # ======================= generate-key

    parser_generate_key = subparsers.add_parser('generate-key', description="Generate a random base64-encoded AES key")
    parser_generate_key.add_argument('--bits', type=int, default=256, choices=[128, 192, 256],
                        help='The key size in bits. Default is 256.')
    parser_generate_key.set_defaults(func=self.cmd_generate_key)

    # ======================= encrypt

    parser_encrypt = subparsers.add_parser('encrypt', description="Encrypt a secret or file into a NeonVault document")
    parser_encrypt.add_argument('-p', '--password-name', default=None,
                        help='''The name of the password to encrypt with. By default, environment variable
                                NEON_CRYPTO_PASSWORD_NAME is used, or the nearest .password-name file in the
                                input file's folder or one of its ancestors''')
    parser_encrypt.add_argument('--crlf', dest='line_ending', action='store_const', const='crlf', default=None,
                        help='Use CRLF line endings in the encrypted document')
    parser_encrypt.add_argument('--lf', dest='line_ending', action='store_const', const='lf',
                        help='Use LF line endings in the encrypted document (the default)')
    parser_encrypt.add_argument('--stdin', dest="use_stdin", action='store_true', default=False,
                        help='Read the value from stdin instead of the commandline')
    parser_encrypt.add_argument('-i', '--input', dest="input_file", default=None,
                        help='Read the value from the specified file instead of the commandline')
    parser_encrypt.add_argument('value',
                        nargs='?',
                        default=None,
                        help="""The string to be encrypted. Omit this parameter if --input or --stdin is provided.""")
    parser_encrypt.set_defaults(func=self.cmd_encrypt)

    # ======================= decrypt

    parser_decrypt = subparsers.add_parser('decrypt',
                            description="Decrypt a NeonVault document. Content that is not encrypted is output unchanged.")
    parser_decrypt.add_argument('--stdin', dest="use_stdin", action='store_true', default=False,
                        help='Read the document from stdin')
    parser_decrypt.add_argument('-i', '--input', dest="input_file", default=None,
                        help='Read the document from the specified file')
    parser_decrypt.set_defaults(func=self.cmd_decrypt)

    # ======================= is-encrypted

    parser_is_encrypted = subparsers.add_parser('is-encrypted',
                            description="Determine whether a file is a NeonVault document. Exits with 0 if it is, 1 if not.")
    parser_is_encrypted.add_argument('path', help='The file to check')
    parser_is_encrypted.set_defaults(func=self.cmd_is_encrypted)

    # ======================= password

    parser_password = subparsers.add_parser('password', description="Manage named passwords")
    parser_password.set_defaults(func=self.cmd_password_bare)
    password_subparsers = parser_password.add_subparsers(
                        title='Password commands',
                        description='Valid password commands',
                        help='Additional help available with "password <command-name> -h"')

    parser_password_set = password_subparsers.add_parser('set', description="Create or replace a named password")
    parser_password_set.add_argument('--generate', action='store_true', default=False,
                        help='Generate a random password instead of providing one')
    parser_password_set.add_argument('name', help='The password name')
    parser_password_set.add_argument('value', nargs='?', default=None,
                        help='The password. Omit this parameter if --generate is provided.')
    parser_password_set.set_defaults(func=self.cmd_password_set)

    parser_password_get = password_subparsers.add_parser('get',
                            description="Display a named password. JSON-quoted string. If a raw string is desired, use -r.")
    parser_password_get.add_argument('name', help='The password name')
    parser_password_get.set_defaults(func=self.cmd_password_get)

    parser_password_rm = password_subparsers.add_parser('rm', description="Remove a named password")
    parser_password_rm.add_argument('name', help='The password name')
    parser_password_rm.set_defaults(func=self.cmd_password_rm)

    parser_password_ls = password_subparsers.add_parser('ls', description="List the names of all passwords, as JSON")
    parser_password_ls.set_defaults(func=self.cmd_password_ls)

    # =========================================================

    try:
      args = parser.parse_args(self._argv)
    except ArgparseExitError as ex:
      return ex.exit_code
    traceback: bool = args.traceback
    try:
      self._args = args
      self._raw = args.raw
      self._compact = args.compact
      self._output_file = args.output_file
      verbose: bool = args.verbose
      logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
      monochrome: bool = args.monochrome
      if not monochrome:
        self._colorize_stdout = is_colorizable(sys.stdout)
        self._colorize_stderr = is_colorizable(sys.stderr)
        if self._colorize_stdout or self._colorize_stderr:
          colorama.init(wrap=False)
          if self._colorize_stdout:
            new_stream = colorama.AnsiToWin32(sys.stdout)
            if new_stream.should_wrap():
              sys.stdout = new_stream
          if self._colorize_stderr:
            new_stream = colorama.AnsiToWin32(sys.stderr)
            if new_stream.should_wrap():
              sys.stderr = new_stream
      rc = args.func()
    except Exception as ex:
      if isinstance(ex, CmdExitError):
        rc = ex.exit_code
      else:
        rc = 1
      if rc != 0:
        if traceback:
          raise

        print(f"{self.ecolor(Fore.RED)}neon-crypto: error: {ex}{self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
    return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
  try:
    rc = CommandHandler(argv).run()
  except CmdExitError as ex:
    rc = ex.exit_code
  return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
  sys.exit(run())
