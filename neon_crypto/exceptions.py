#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class NeonCryptoError(Exception):
  """Base class for all error exceptions defined by this package."""
  #pass

class NeonCryptoInvalidArgumentError(NeonCryptoError, ValueError):
  """Exception indicating that a call was made with malformed parameters. Raised before
     any cryptographic work is done."""
  #pass

class NeonCryptoTamperDetectedError(NeonCryptoError):
  """Exception indicating that encrypted data failed integrity verification. The data was
     corrupted, truncated, not produced by AesCipher, or the wrong key was used."""
  #pass

class NeonVaultError(NeonCryptoError):
  """Base class for errors raised by NeonVault."""
  #pass

class NeonVaultPasswordNameError(NeonVaultError, NeonCryptoInvalidArgumentError):
  """Exception indicating that a password name is empty or contains invalid characters."""
  #pass

class NeonVaultPasswordNotFoundError(NeonVaultError):
  """Exception indicating that the password resolver could not provide the named password."""
  #pass

class NeonVaultFormatError(NeonVaultError):
  """Exception indicating that a vault document is malformed."""
  #pass

class NeonVaultTamperDetectedError(NeonVaultError, NeonCryptoTamperDetectedError):
  """Exception indicating that a vault document could not be decrypted, either because it
     was tampered with or because the password is wrong. The two cases cannot be told apart."""
  #pass
