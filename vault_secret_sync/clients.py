# -*- coding: utf-8 -*-

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager

import google.auth
import google.auth.exceptions
import google_crc32c
from azure.core.exceptions import ClientAuthenticationError, HttpResponseError, \
    ResourceNotFoundError, ServiceRequestError
from azure.identity import AzureCliCredential, DefaultAzureCredential
from azure.keyvault.secrets import SecretClient
from google.api_core import exceptions
from google.cloud import secretmanager, secretmanager_v1
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, \
    stop_after_attempt, wait_exponential

from .exceptions import SecretAccessDenied, SecretConflict, SecretDisabled, SecretNotFound, \
    TransientVaultError, VaultAuthorizationError
from .models import SecretMetadata, SecretState, VaultSecret

"""
Vault clients used by the reconciler and inspector.

A vault holds named secrets where every name is, at any instant, in exactly one of
three states

absent       - nothing holds the name, a create will succeed
active       - the name has a current readable value
soft-deleted - the name was deleted but is retained and recoverable, a create under
               the name is refused until the remnant is purged

VaultClient is the abstract strategy both components are written against. Concrete
clients translate provider SDK errors into the package exception taxonomy so callers
only ever see

SecretNotFound          - expected absence, used as control flow
SecretConflict          - create refused, usually a soft-deleted remnant
SecretAccessDenied      - one secret refused an operation, SecretDisabled when the
                          secret is active but disabled
TransientVaultError     - anything else going wrong with a single call
VaultAuthorizationError - the session is not usable at all, fatal
"""

LIST_ALL = "*"


class VaultClient(ABC):
    """Abstract Base Class for a soft-delete protected secrets vault.

    Implementations must never cache state between calls; the reconciler relies on
    every query reflecting the vault as it is now.
    """

    @property
    @abstractmethod
    def vault_name(self):
        """Human readable identifier of the vault for logs and reports."""

    @abstractmethod
    def list_secret_names(self):
        """Returns the names of all active secrets."""

    @abstractmethod
    def list_secret_metadata(self):
        """Returns SecretMetadata for all active secrets without reading any value."""

    @abstractmethod
    def get_active(self, name):
        """Returns a VaultSecret for an active secret or raises SecretNotFound."""

    @abstractmethod
    def get_soft_deleted(self, name):
        """Returns SecretMetadata for a soft-deleted secret or raises SecretNotFound."""

    @abstractmethod
    def set_secret(self, name, value):
        """Creates or overwrites an active secret.

        Raises SecretConflict if a soft-deleted remnant holds the name.
        """

    @abstractmethod
    def delete_secret(self, name):
        """Moves an active secret to the soft-deleted state."""

    @abstractmethod
    def purge_secret(self, name):
        """Permanently removes a soft-deleted secret freeing its name."""

    def secret_state(self, name):
        """Asks the vault which state a name is in right now."""
        try:
            self.get_active(name)
            return SecretState.ACTIVE
        except SecretDisabled:
            return SecretState.ACTIVE
        except SecretNotFound:
            pass
        try:
            self.get_soft_deleted(name)
            return SecretState.SOFT_DELETED
        except SecretNotFound:
            return SecretState.ABSENT

    def check_access(self):
        """Fails fast with VaultAuthorizationError if the session cannot be used."""
        self.list_secret_names()


def _is_disabled_secret_error(error):
    """Key Vault answers reads of a disabled secret with 403 and inner code SecretDisabled."""
    odata = getattr(error, "error", None)
    inner = getattr(odata, "innererror", None) or {}
    if isinstance(inner, dict) and inner.get("code") == "SecretDisabled":
        return True
    message = getattr(error, "message", None) or str(error)
    return "disabled secret" in message.lower()


def _tags_from_mapping(mapping):
    if not mapping:
        return frozenset()
    return frozenset(f"{key}={value}" for key, value in mapping.items())


class AzureKeyVaultClient(VaultClient):
    """VaultClient backed by Azure Key Vault.

    Key Vault with soft-delete enabled maps directly onto the three vault states.
    Credentials come from ``DefaultAzureCredential`` unless a tenant is given, in
    which case the operator's Azure CLI login scoped to that tenant is used.

    Args:
        vault_url (str): e.g. https://my-vault.vault.azure.net/
        tenant_id (str, optional): Entra tenant to authorize against.
        subscription_id (str, optional): Subscription holding the vault. Only used
            for reporting, secret operations are not subscription scoped.
        credential (optional): Any azure-identity credential, overrides the above.
        client (SecretClient, optional): Prebuilt SDK client, mainly for tests.
    """

    def __init__(self, vault_url, tenant_id=None, subscription_id=None, credential=None,
                 client=None):
        self._vault_url = vault_url
        self._tenant_id = tenant_id
        self._subscription_id = subscription_id
        self._credential = credential
        self._client = client

    @property
    def vault_name(self):
        return self._vault_url

    @property
    def subscription_id(self):
        return self._subscription_id

    @property
    def client(self):
        if self._client is None:
            if self._credential is None:
                if self._tenant_id:
                    self._credential = AzureCliCredential(tenant_id=self._tenant_id)
                else:
                    self._credential = DefaultAzureCredential()
            self._client = SecretClient(vault_url=self._vault_url, credential=self._credential)
        return self._client

    @contextmanager
    def _translate_errors(self, operation, name, state="active"):
        try:
            yield
        except ResourceNotFoundError:
            raise SecretNotFound(name, state) from None
        except ClientAuthenticationError as e:
            raise VaultAuthorizationError(self.vault_name, e) from e
        except HttpResponseError as e:
            # a 403 on a single secret says nothing about the session
            if e.status_code == 401 or (e.status_code == 403 and name == LIST_ALL):
                raise VaultAuthorizationError(self.vault_name, e) from e
            if e.status_code == 403:
                if _is_disabled_secret_error(e):
                    raise SecretDisabled(operation, name, e) from e
                raise SecretAccessDenied(operation, name, e) from e
            if e.status_code == 409:
                raise SecretConflict(name, e) from e
            raise TransientVaultError(operation, name, e) from e
        except ServiceRequestError as e:
            raise TransientVaultError(operation, name, e) from e

    @staticmethod
    def _metadata(properties):
        return SecretMetadata(
            name=properties.name,
            content_type=properties.content_type,
            enabled=bool(properties.enabled),
            created=properties.created_on,
            updated=properties.updated_on,
            tags=_tags_from_mapping(properties.tags),
        )

    def list_secret_names(self):
        with self._translate_errors("list", LIST_ALL):
            return [properties.name for properties in self.client.list_properties_of_secrets()]

    def list_secret_metadata(self):
        # listing returns properties only, values are never transferred
        with self._translate_errors("list", LIST_ALL):
            return [self._metadata(properties)
                    for properties in self.client.list_properties_of_secrets()]

    def get_active(self, name):
        with self._translate_errors("get", name):
            secret = self.client.get_secret(name)
        return VaultSecret(metadata=self._metadata(secret.properties), value=secret.value)

    def get_soft_deleted(self, name):
        with self._translate_errors("get-deleted", name, state="soft-deleted"):
            deleted = self.client.get_deleted_secret(name)
        return self._metadata(deleted.properties)

    def set_secret(self, name, value):
        with self._translate_errors("set", name):
            self.client.set_secret(name, value)

    def delete_secret(self, name):
        with self._translate_errors("delete", name):
            # poller completes once the secret is queryable as deleted
            self.client.begin_delete_secret(name).wait()

    def purge_secret(self, name):
        with self._translate_errors("purge", name, state="soft-deleted"):
            self.client.purge_deleted_secret(name)


class GCPSecretManagerClient(VaultClient):
    """VaultClient backed by Google Cloud Secret Manager.

    Secret Manager has no soft delete of whole secrets so the vault states are mapped
    onto secret version states, in the same spirit as rolling back by disabling
    versions

    active       - the secret has at least one ENABLED version, the newest enabled
                   version is the value
    soft-deleted - the secret resource exists, has DISABLED versions and no
                   ENABLED version. It is recoverable by enabling a version.
    absent       - no secret resource, or one that has never held a version

    delete disables every enabled version, purge deletes the secret resource.
    Setting a value on a soft-deleted secret is refused with SecretConflict so the
    provider behaves the same way a soft-delete protected vault does.

    The credentials need "roles/secretmanager.admin" on the project as secrets are
    created and deleted as well as versions added, disabled and accessed.
    """

    def __init__(self, project_id=None, _credentials_callback=None):
        self._project_id = project_id
        self._credentials_callback = _credentials_callback
        self.ns = threading.local()

    @property
    def credentials(self):
        if not hasattr(self.ns, "_credentials"):
            try:
                if self._credentials_callback is not None:
                    _credentials, _project_id = self._credentials_callback()
                else:
                    _credentials, _project_id = google.auth.default()
            except google.auth.exceptions.DefaultCredentialsError as e:
                raise VaultAuthorizationError(self._project_id or "gcp", e) from e
            self.ns._credentials = _credentials
            if self._project_id is None:
                self._project_id = _project_id
        return self.ns._credentials

    @property
    def _client(self):
        if not hasattr(self.ns, "client"):
            self.ns.client = secretmanager.SecretManagerServiceClient(
                credentials=self.credentials
            )
        return self.ns.client

    @property
    def project_id(self):
        if self._project_id is None:
            # populated as a side effect of resolving default credentials
            _ = self.credentials
        return self._project_id

    @property
    def vault_name(self):
        return f"projects/{self.project_id}"

    def _secret_path(self, name):
        return f"projects/{self.project_id}/secrets/{name}"

    @contextmanager
    def _translate_errors(self, operation, name, state="active"):
        try:
            yield
        except exceptions.NotFound:
            raise SecretNotFound(name, state) from None
        except (exceptions.PermissionDenied, exceptions.Unauthenticated) as e:
            raise VaultAuthorizationError(self.vault_name, e) from e
        except (exceptions.AlreadyExists, exceptions.FailedPrecondition) as e:
            raise SecretConflict(name, e) from e
        except (exceptions.GoogleAPIError, google.auth.exceptions.TransportError) as e:
            raise TransientVaultError(operation, name, e) from e

    def _versions(self, name):
        request = secretmanager_v1.ListSecretVersionsRequest(
            parent=self._secret_path(name),
            filter="state!=DESTROYED"
        )
        page_result = self._client.list_secret_versions(request=request)
        return sorted(page_result, key=lambda d: d.create_time)

    @staticmethod
    def _enabled(versions):
        return [version for version in versions
                if version.state == secretmanager_v1.SecretVersion.State.ENABLED]

    def _metadata(self, secret, latest=None):
        annotations = dict(secret.annotations) if secret.annotations else {}
        return SecretMetadata(
            name=secret.name.rsplit("/", 1)[-1],
            content_type=annotations.get("content_type"),
            enabled=latest is not None,
            created=secret.create_time,
            updated=latest.create_time if latest is not None else secret.create_time,
            tags=_tags_from_mapping(dict(secret.labels) if secret.labels else None),
        )

    def _active_secrets(self):
        with self._translate_errors("list", LIST_ALL):
            secrets = list(self._client.list_secrets(request={"parent": self.vault_name}))
        for secret in secrets:
            name = secret.name.rsplit("/", 1)[-1]
            try:
                with self._translate_errors("list", name):
                    enabled = self._enabled(self._versions(name))
            except SecretNotFound:
                # deleted between listing secrets and listing its versions
                logging.getLogger(__name__).debug(f"Secret {name} vanished while listing")
                continue
            if enabled:
                yield secret, enabled[-1]

    def list_secret_names(self):
        return [self._metadata(secret).name for secret, _ in self._active_secrets()]

    def list_secret_metadata(self):
        return [self._metadata(secret, latest) for secret, latest in self._active_secrets()]

    def get_active(self, name):
        with self._translate_errors("get", name):
            secret = self._client.get_secret(request={"name": self._secret_path(name)})
            enabled = self._enabled(self._versions(name))
            if not enabled:
                raise SecretNotFound(name, "active")
            latest = enabled[-1]
            request = secretmanager_v1.AccessSecretVersionRequest(name=latest.name)
            payload = self._client.access_secret_version(request).payload.data
        return VaultSecret(metadata=self._metadata(secret, latest), value=payload.decode("utf-8"))

    def _is_soft_deleted(self, name):
        versions = self._versions(name)
        return bool(versions) and not self._enabled(versions)

    def get_soft_deleted(self, name):
        with self._translate_errors("get-deleted", name, state="soft-deleted"):
            secret = self._client.get_secret(request={"name": self._secret_path(name)})
            if not self._is_soft_deleted(name):
                raise SecretNotFound(name, "soft-deleted")
        return self._metadata(secret)

    def set_secret(self, name, value):
        with self._translate_errors("set", name):
            try:
                self._client.get_secret(request={"name": self._secret_path(name)})
            except exceptions.NotFound:
                self._client.create_secret(
                    request={
                        "parent": self.vault_name,
                        "secret_id": name,
                        "secret": {"replication": {"automatic": {}}},
                    }
                )
            versions = self._versions(name)
            previous = self._enabled(versions)
            if versions and not previous:
                raise SecretConflict(name, "secret has only disabled versions")

            data = value.encode("utf8")
            crc32c = google_crc32c.Checksum()
            crc32c.update(data)
            self._client.add_secret_version(
                request={
                    "parent": self._secret_path(name),
                    "payload": {"data": data, "data_crc32c": int(crc32c.hexdigest(), 16)},
                }
            )
            # the new version is the value, older ones stop being readable
            for version in previous:
                self._client.disable_secret_version(request={"name": version.name})

    def delete_secret(self, name):
        with self._translate_errors("delete", name):
            enabled = self._enabled(self._versions(name))
            if not enabled:
                raise SecretNotFound(name, "active")
            for version in enabled:
                self._client.disable_secret_version(request={"name": version.name})

    def purge_secret(self, name):
        with self._translate_errors("purge", name, state="soft-deleted"):
            if not self._is_soft_deleted(name):
                raise SecretNotFound(name, "soft-deleted")
            self._client.delete_secret(request={"name": self._secret_path(name)})


class RetryingVaultClient(VaultClient):
    """Wraps another VaultClient retrying calls that fail with TransientVaultError.

    Retries are bounded and exponential. Not found, conflict and authorization
    errors are never retried. The reconciler itself attempts each create once, this
    wrapper is how an operator opts in to retrying individual calls.
    """

    def __init__(self, vault, attempts=3, multiplier=1.0, max_wait=10.0):
        assert attempts >= 1, "Need at least one attempt"
        self._vault = vault
        self._attempts = attempts
        self._multiplier = multiplier
        self._max_wait = max_wait

    @property
    def vault(self):
        return self._vault

    @property
    def vault_name(self):
        return self._vault.vault_name

    def _call(self, fn, *args):
        retryer = Retrying(
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=self._multiplier, max=self._max_wait),
            retry=retry_if_exception_type(TransientVaultError),
            before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
            reraise=True,
        )
        return retryer(fn, *args)

    def list_secret_names(self):
        return self._call(self._vault.list_secret_names)

    def list_secret_metadata(self):
        return self._call(self._vault.list_secret_metadata)

    def get_active(self, name):
        return self._call(self._vault.get_active, name)

    def get_soft_deleted(self, name):
        return self._call(self._vault.get_soft_deleted, name)

    def set_secret(self, name, value):
        return self._call(self._vault.set_secret, name, value)

    def delete_secret(self, name):
        return self._call(self._vault.delete_secret, name)

    def purge_secret(self, name):
        return self._call(self._vault.purge_secret, name)
