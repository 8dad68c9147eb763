"""
Tests for the neon-crypto command-line tool.
"""
import io
import sys
import json
import base64

import pytest

from neon_crypto import __version__, NeonVault
from neon_crypto.__main__ import run
from neon_crypto.exceptions import NeonCryptoError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
  for var in ('NEON_CRYPTO_PASSWORDS_DIR', 'NEON_CRYPTO_PASSWORD_NAME',
              'NEON_CRYPTO_LINE_ENDING', 'NEON_CRYPTO_MAX_PADDING_BYTES'):
    monkeypatch.delenv(var, raising=False)
  work_dir = tmp_path / "work"
  work_dir.mkdir()
  monkeypatch.chdir(work_dir)

@pytest.fixture
def passwords_dir(tmp_path):
  return str(tmp_path / "passwords")

@pytest.fixture
def cli(passwords_dir):
  def run_cli(*argv):
    return run(['-M', '--passwords-dir', passwords_dir] + list(argv))
  return run_cli

@pytest.fixture
def with_password(cli):
  assert cli('password', 'set', 'pw1', 'GU6qc2vsJgmCWmdL') == 0


class TestBasics:
  def test_version(self, cli, capsys):
    assert cli('version') == 0
    assert capsys.readouterr().out == json.dumps(__version__) + "\n"

  def test_raw_version(self, cli, capsys):
    assert cli('-r', 'version') == 0
    assert capsys.readouterr().out == __version__

  def test_no_command(self, cli, capsys):
    assert cli() == 1
    assert "A command is required" in capsys.readouterr().err

  def test_bad_arguments(self, cli):
    assert cli('no-such-command') == 2

  def test_help(self, cli):
    assert cli('--help') == 0

  @pytest.mark.parametrize("bits", [128, 192, 256])
  def test_generate_key(self, cli, capsys, bits):
    assert cli('-r', 'generate-key', '--bits', str(bits)) == 0
    assert len(base64.b64decode(capsys.readouterr().out)) == bits // 8


class TestPasswordCommands:
  def test_set_get_ls_rm(self, cli, capsys):
    assert cli('password', 'set', 'pw1', 'secret1') == 0
    assert cli('password', 'set', 'pw2', '--generate') == 0
    capsys.readouterr()

    assert cli('-r', 'password', 'get', 'pw1') == 0
    assert capsys.readouterr().out == "secret1"

    assert cli('password', 'get', 'pw2') == 0
    generated = json.loads(capsys.readouterr().out)
    assert len(generated) >= 32

    assert cli('password', 'ls') == 0
    assert json.loads(capsys.readouterr().out) == ["pw1", "pw2"]

    assert cli('password', 'rm', 'pw1') == 0
    assert cli('-c', 'password', 'ls') == 0
    assert capsys.readouterr().out == '["pw2"]\n'

  def test_get_missing(self, cli, capsys):
    assert cli('password', 'get', 'missing') == 1
    assert "neon-crypto: error: Password [missing] does not exist" in capsys.readouterr().err

  def test_set_requires_value(self, cli, capsys):
    assert cli('password', 'set', 'pw1') == 1
    assert cli('password', 'set', 'pw1', 'value', '--generate') == 1

  def test_invalid_name(self, cli, capsys):
    assert cli('password', 'set', 'bad!name', 'value') == 1
    assert "neon-crypto: error:" in capsys.readouterr().err

  def test_password_without_subcommand(self, cli):
    assert cli('password') == 1


@pytest.mark.usefixtures("with_password")
class TestEncryptDecrypt:
  def test_value_round_trip(self, cli, tmp_path, capsys):
    encrypted = tmp_path / "secret.vault"
    assert cli('-o', str(encrypted), 'encrypt', '-p', 'pw1', 'Hello World!') == 0
    doc = encrypted.read_bytes()
    assert NeonVault.get_password_name(doc) == "pw1"

    assert cli('is-encrypted', str(encrypted)) == 0
    assert capsys.readouterr().out == "true\n"

    decrypted = tmp_path / "secret.txt"
    assert cli('-o', str(decrypted), 'decrypt', '-i', str(encrypted)) == 0
    assert decrypted.read_bytes() == b"Hello World!"

  def test_decrypt_to_stdout(self, cli, tmp_path, capsys):
    encrypted = tmp_path / "secret.vault"
    assert cli('-o', str(encrypted), 'encrypt', '-p', 'pw1', 'to stdout') == 0
    capsys.readouterr()
    assert cli('decrypt', '-i', str(encrypted)) == 0
    assert capsys.readouterr().out == "to stdout"

  def test_password_name_file(self, cli, tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / ".password-name").write_text("pw1\n")
    source = project / "secrets.yaml"
    source.write_bytes(b"key: value\n")
    encrypted = tmp_path / "secrets.vault"
    assert cli('-o', str(encrypted), 'encrypt', '-i', str(source)) == 0
    assert NeonVault.get_password_name(encrypted.read_bytes()) == "pw1"

  def test_password_name_from_environment(self, cli, tmp_path, monkeypatch):
    monkeypatch.setenv('NEON_CRYPTO_PASSWORD_NAME', 'pw1')
    encrypted = tmp_path / "secret.vault"
    assert cli('-o', str(encrypted), 'encrypt', 'from env') == 0
    assert NeonVault.get_password_name(encrypted.read_bytes()) == "pw1"

  def test_no_password_name(self, cli, capsys):
    assert cli('encrypt', 'value') == 1
    assert "A password name must be provided" in capsys.readouterr().err

  def test_unknown_password(self, cli, capsys):
    assert cli('encrypt', '-p', 'pw2', 'value') == 1
    assert "neon-crypto: error:" in capsys.readouterr().err

  def test_crlf(self, cli, tmp_path):
    encrypted = tmp_path / "secret.vault"
    assert cli('-o', str(encrypted), 'encrypt', '-p', 'pw1', '--crlf', 'x' * 200) == 0
    doc = encrypted.read_bytes()
    assert b"\r\n" in doc
    assert doc.count(b"\r\n") == doc.count(b"\n")

  def test_stdin(self, cli, tmp_path, monkeypatch):
    monkeypatch.setattr(sys, 'stdin', io.TextIOWrapper(io.BytesIO(b"from stdin\x00\xff")))
    encrypted = tmp_path / "secret.vault"
    assert cli('-o', str(encrypted), 'encrypt', '-p', 'pw1', '--stdin') == 0
    monkeypatch.setattr(sys, 'stdin', io.TextIOWrapper(io.BytesIO(encrypted.read_bytes())))
    decrypted = tmp_path / "secret.bin"
    assert cli('-o', str(decrypted), 'decrypt', '--stdin') == 0
    assert decrypted.read_bytes() == b"from stdin\x00\xff"

  def test_conflicting_inputs(self, cli, tmp_path):
    source = tmp_path / "source.txt"
    source.write_text("x")
    assert cli('encrypt', '-p', 'pw1', '-i', str(source), 'value') == 1
    assert cli('encrypt', '-p', 'pw1') == 1
    assert cli('decrypt', '--stdin', '-i', str(source)) == 1

  def test_already_encrypted(self, cli, tmp_path):
    encrypted = tmp_path / "secret.vault"
    assert cli('-o', str(encrypted), 'encrypt', '-p', 'pw1', 'x') == 0
    assert cli('encrypt', '-p', 'pw1', '-i', str(encrypted)) == 1

  def test_decrypt_plaintext_passthrough(self, cli, tmp_path):
    plain = tmp_path / "plain.txt"
    plain.write_bytes(b"not encrypted\r\n")
    output = tmp_path / "out.txt"
    assert cli('-o', str(output), 'decrypt', '-i', str(plain)) == 0
    assert output.read_bytes() == b"not encrypted\r\n"

  def test_is_encrypted_plaintext(self, cli, tmp_path, capsys):
    plain = tmp_path / "plain.txt"
    plain.write_bytes(b"not encrypted")
    assert cli('is-encrypted', str(plain)) == 1
    assert capsys.readouterr().out == "false\n"

  def test_tampered_document(self, cli, tmp_path, capsys):
    encrypted = tmp_path / "secret.vault"
    assert cli('-o', str(encrypted), 'encrypt', '-p', 'pw1', 'x') == 0
    doc = encrypted.read_bytes().rstrip()
    encrypted.write_bytes(doc[:-1] + (b'1' if doc[-1:] == b'0' else b'0') + b"\n")
    assert cli('decrypt', '-i', str(encrypted)) == 1
    assert "tampered with" in capsys.readouterr().err

  def test_traceback(self, passwords_dir):
    with pytest.raises(NeonCryptoError):
      run(['--traceback', '--passwords-dir', passwords_dir, 'encrypt', 'value'])


class TestConfigFile:
  def test_config_file(self, passwords_dir, tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"passwords_dir: {passwords_dir}\npassword_name: pw1\nline_ending: crlf\n")
    assert run(['--passwords-dir', passwords_dir, 'password', 'set', 'pw1', 'secret']) == 0
    encrypted = tmp_path / "secret.vault"
    assert run(['-C', str(config_file), '-o', str(encrypted), 'encrypt', 'configured']) == 0
    doc = encrypted.read_bytes()
    assert NeonVault.get_password_name(doc) == "pw1"
    assert b"\r\n" in doc

  def test_bad_config_file(self, tmp_path, capsys):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("line_ending: cr\n")
    assert run(['-C', str(config_file), 'password', 'ls']) == 1
    assert "line_ending" in capsys.readouterr().err
