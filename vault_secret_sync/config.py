# -*- coding: utf-8 -*-
"""Desired state documents and vault settings.

A desired state document is utf-8 encoded json of the form

{
    "secrets": [
        {"name": "string", "value": "string"},          # literal value
        {"name": "string", "value_from_env": "VAR"}     # value read from the environment
    ],
    "legacy_names": ["string", ...]                     # optional, names to retire
}

It is read from a local path or from cloud storage with a gs://bucket/object uri so
values do not need to live on the operator's machine.
"""

import json
import os
import re
from dataclasses import dataclass
from typing import Optional

import google.auth
import google.auth.exceptions
from google.api_core import exceptions
from google.cloud import storage

from .exceptions import ConfigurationError
from .models import DesiredSecret

PROVIDERS = ("azure", "gcp")
GCS_URI = re.compile(r"gs://([^/]+)/(.+)")
TRUTHY = ("1", "true", "yes", "on")


@dataclass
class VaultSettings:
    provider: str
    vault: str
    tenant_id: Optional[str] = None
    subscription_id: Optional[str] = None
    sample_values: bool = False

    @property
    def vault_url(self):
        """Azure vault url, a bare vault name is expanded to the public cloud url."""
        if self.vault.startswith("https://"):
            return self.vault if self.vault.endswith("/") else self.vault + "/"
        return f"https://{self.vault}.vault.azure.net/"

    @classmethod
    def from_sources(cls, provider=None, vault=None, tenant_id=None, subscription_id=None,
                     sample_values=None, environ=None):
        """Explicit arguments win, the environment fills anything not given."""
        environ = os.environ if environ is None else environ
        provider = (provider or environ.get("VAULT_PROVIDER") or "azure").lower()
        if provider not in PROVIDERS:
            raise ConfigurationError(f"Unknown vault provider {provider} expected one of "
                                     f"{', '.join(PROVIDERS)}")
        vault = vault or environ.get("VAULT_NAME")
        if not vault and provider == "azure":
            raise ConfigurationError("A vault name or url is required (--vault or VAULT_NAME)")
        if sample_values is None:
            sample_values = environ.get("VAULT_SAMPLE_VALUES", "").lower() in TRUTHY
        return cls(
            provider=provider,
            vault=vault,
            tenant_id=tenant_id or environ.get("AZURE_TENANT_ID"),
            subscription_id=subscription_id or environ.get("AZURE_SUBSCRIPTION_ID"),
            sample_values=sample_values,
        )


def load_document(source, _credentials_callback=None):
    """Reads a json document from a local path or a gs:// uri."""
    match = GCS_URI.fullmatch(source)
    try:
        if match:
            if _credentials_callback is not None:
                credentials, _project_id = _credentials_callback()
            else:
                credentials, _project_id = google.auth.default()
            client = storage.Client(credentials=credentials)
            bucket = client.get_bucket(match.group(1))
            blob = bucket.get_blob(match.group(2))
            if blob is None:
                raise ConfigurationError(f"Desired state object {source} does not exist")
            return json.loads(blob.download_as_bytes().decode("utf-8"))
        with open(source, "rt", encoding="utf-8") as fh:
            return json.load(fh)
    except OSError as e:
        raise ConfigurationError(f"Unable to read desired state {source}: {e}") from e
    except (exceptions.GoogleAPIError, google.auth.exceptions.GoogleAuthError) as e:
        raise ConfigurationError(f"Unable to fetch desired state {source}: {e}") from e
    except (json.decoder.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Desired state {source} is not valid JSON: {e}") from None


def parse_desired_state(document, environ=None):
    """Turns a desired state document into (desired secrets, legacy names)."""
    environ = os.environ if environ is None else environ
    if not isinstance(document, dict) or not isinstance(document.get("secrets"), list):
        raise ConfigurationError("Desired state must be an object with a secrets list")

    desired = []
    for index, item in enumerate(document["secrets"]):
        if not isinstance(item, dict) or not item.get("name"):
            raise ConfigurationError(f"Secret entry {index} has no name")
        name = item["name"]
        if "value" in item:
            value = item["value"]
        elif "value_from_env" in item:
            variable = item["value_from_env"]
            if variable not in environ:
                raise ConfigurationError(f"Secret {name} refers to unset environment "
                                         f"variable {variable}")
            value = environ[variable]
        else:
            raise ConfigurationError(f"Secret {name} needs value or value_from_env")
        if not isinstance(value, str):
            raise ConfigurationError(f"Secret {name} value must be a string")
        desired.append(DesiredSecret(name=name, value=value))

    legacy_names = document.get("legacy_names", [])
    if not isinstance(legacy_names, list) or not all(isinstance(n, str) for n in legacy_names):
        raise ConfigurationError("legacy_names must be a list of strings")
    return desired, list(legacy_names)


def load_desired_state(source, environ=None, _credentials_callback=None):
    return parse_desired_state(load_document(source, _credentials_callback), environ)
