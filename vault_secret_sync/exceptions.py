# -*- coding: utf-8 -*-

class SecretSyncError(Exception):
    """Base Error class."""


class VaultAuthorizationError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "Not authorized against vault {} error {}"

    def __init__(self, vault, error):
        super(VaultAuthorizationError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(vault,
                                                                                       str(error)))
        self._vault = vault
        self._error = error

    @property
    def vault(self):
        return self._vault

    @property
    def error(self):
        return self._error


class SecretNotFound(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "Secret {} not found in state {}"

    def __init__(self, secret_name, state="active"):
        super(SecretNotFound, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(secret_name, state))
        self._secret_name = secret_name

    @property
    def secret_name(self):
        return self._secret_name


class SecretConflict(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "Secret {} conflicts with existing vault state " \
                           "(likely a soft-deleted remnant that was not purged) error {}"

    def __init__(self, secret_name, error):
        super(SecretConflict, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(secret_name,
                                                                              str(error)))
        self._secret_name = secret_name
        self._error = error

    @property
    def secret_name(self):
        return self._secret_name

    @property
    def error(self):
        return self._error


class TransientVaultError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "Vault operation {} on secret {} failed error {}"

    def __init__(self, operation, secret_name, error):
        super(TransientVaultError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(operation,
                                                                                   secret_name,
                                                                                   str(error)))
        self._operation = operation
        self._secret_name = secret_name
        self._error = error

    @property
    def operation(self):
        return self._operation

    @property
    def secret_name(self):
        return self._secret_name

    @property
    def error(self):
        return self._error


class ConfigurationError(SecretSyncError):
    """Desired state document or vault settings are unusable."""


class SecretAccessDenied(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "Vault refused {} on secret {} error {}"

    def __init__(self, operation, secret_name, error):
        super(SecretAccessDenied, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(operation,
                                                                                  secret_name,
                                                                                  str(error)))
        self._operation = operation
        self._secret_name = secret_name
        self._error = error

    @property
    def operation(self):
        return self._operation

    @property
    def secret_name(self):
        return self._secret_name

    @property
    def error(self):
        return self._error


class SecretDisabled(SecretAccessDenied):
    """The secret exists and is active but disabled so its value cannot be read."""
