"""
Tests for password resolvers and default password name discovery.
"""
import os
import stat
import sys

import pytest

from neon_crypto.passwords import PasswordFolder, DictPasswordResolver, find_default_password_name
from neon_crypto.vault import NeonVault
from neon_crypto.exceptions import NeonCryptoInvalidArgumentError, NeonVaultPasswordNameError


@pytest.fixture
def folder(tmp_path):
  return PasswordFolder(str(tmp_path / "passwords"))


class TestPasswordFolder:
  def test_set_and_get(self, folder):
    folder.set("pw1", "GU6qc2vsJgmCWmdL")
    assert folder.get("pw1") == "GU6qc2vsJgmCWmdL"
    assert folder("pw1") == "GU6qc2vsJgmCWmdL"
    assert folder.exists("pw1")

  def test_surrounding_whitespace_ignored(self, folder):
    os.makedirs(folder.folder)
    with open(os.path.join(folder.folder, "pw1"), "w", encoding='utf-8') as f:
      f.write("  secret\n")
    assert folder.get("pw1") == "secret"

  def test_replace(self, folder):
    folder.set("pw1", "first")
    folder.set("pw1", "second")
    assert folder.get("pw1") == "second"

  def test_missing_is_key_error(self, folder):
    with pytest.raises(KeyError):
      folder.get("missing")
    assert not folder.exists("missing")

  def test_remove(self, folder):
    folder.set("pw1", "secret")
    folder.remove("pw1")
    assert not folder.exists("pw1")
    with pytest.raises(KeyError):
      folder.remove("pw1")

  def test_list(self, folder):
    assert folder.list() == []
    folder.set("zeta", "z")
    folder.set("alpha", "a")
    os.makedirs(os.path.join(folder.folder, "subdir"))
    with open(os.path.join(folder.folder, "not valid!"), "w", encoding='utf-8') as f:
      f.write("ignored")
    assert folder.list() == ["alpha", "zeta"]

  @pytest.mark.skipif(sys.platform == 'win32', reason="POSIX file modes")
  def test_private_file_mode(self, folder):
    folder.set("pw1", "secret")
    mode = stat.S_IMODE(os.stat(os.path.join(folder.folder, "pw1")).st_mode)
    assert mode & 0o077 == 0

  @pytest.mark.parametrize("name", ["bad/name", "../escape", "", None])
  def test_invalid_names(self, folder, name):
    with pytest.raises(NeonVaultPasswordNameError):
      folder.get(name)

  @pytest.mark.parametrize("name", [".", ".."])
  def test_dot_names_rejected(self, folder, name):
    with pytest.raises(NeonCryptoInvalidArgumentError):
      folder.set(name, "secret")

  def test_empty_password_rejected(self, folder):
    with pytest.raises(NeonCryptoInvalidArgumentError):
      folder.set("pw1", "   ")

  def test_default_folder(self, monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert PasswordFolder().folder == os.path.join(str(tmp_path), ".neonforge", "passwords")

  def test_as_vault_resolver(self, folder):
    folder.set("pw1", "folder password")
    vault = NeonVault(folder)
    assert vault.decrypt_to_string(vault.encrypt("from folder", "pw1")) == "from folder"


class TestDictPasswordResolver:
  def test_lookup(self):
    resolver = DictPasswordResolver({'pw1': "secret"})
    assert resolver("pw1") == "secret"
    assert "pw1" in resolver
    assert "pw2" not in resolver
    with pytest.raises(KeyError):
      resolver("pw2")

  def test_copies_mapping(self):
    passwords = {'pw1': "secret"}
    resolver = DictPasswordResolver(passwords)
    passwords['pw2'] = "later"
    assert "pw2" not in resolver


class TestFindDefaultPasswordName:
  def test_nearest_file_wins(self, tmp_path):
    (tmp_path / ".password-name").write_text("outer\n")
    inner = tmp_path / "a" / "b"
    inner.mkdir(parents=True)
    (tmp_path / "a" / ".password-name").write_text("  inner  \nsecond line\n")
    target = inner / "secrets.yaml"
    target.write_text("x")
    assert find_default_password_name(str(target)) == "inner"
    assert find_default_password_name(str(inner)) == "inner"
    assert find_default_password_name(str(tmp_path / "other.txt")) == "outer"

  def test_empty_file_stops_search(self, tmp_path):
    (tmp_path / ".password-name").write_text("outer\n")
    inner = tmp_path / "inner"
    inner.mkdir()
    (inner / ".password-name").write_text("")
    assert find_default_password_name(str(inner / "file.txt")) is None

  def test_nonexistent_path_uses_parent_folder(self, tmp_path):
    (tmp_path / ".password-name").write_text("pw1")
    assert find_default_password_name(str(tmp_path / "missing" / "file.txt")) == "pw1"
