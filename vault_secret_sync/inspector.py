# -*- coding: utf-8 -*-
"""Reports on secrets already stored in a vault.

Secrets are put in reporting buckets purely from their names. Values are only read
when sampling is requested and then only their shape is kept, the edge sample is a
deliberately partial disclosure to help debug structure and is never enough to
rebuild a secret of realistic length.
"""

import logging
import re

import pytz

from .exceptions import SecretSyncError, VaultAuthorizationError
from .models import ClassificationBucket, SecretReportEntry, ValueShape

CONNECTION_STRING_KEYWORDS = ("connection", "conn", "db", "database", "sql")
API_KEY_OR_TOKEN_KEYWORDS = ("key", "token", "secret")
ENDPOINT_KEYWORDS = ("url", "endpoint", "uri")

# first match wins
VALUE_SHAPES = (
    ("sql-connection-string", re.compile(r"Server=.*Database=.*", re.IGNORECASE | re.DOTALL)),
    ("storage-connection-string", re.compile(r"DefaultEndpointsProtocol=.*", re.DOTALL)),
    ("base64-or-key", re.compile(r"[A-Za-z0-9+/=]{20,}")),
    ("url", re.compile(r"https://.*", re.DOTALL)),
    ("guid", re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-"
                        r"[0-9a-fA-F]{12}")),
    ("json", re.compile(r"\{.*\}", re.DOTALL)),
)
UNKNOWN_SHAPE = "unknown"


def _matches_any(name, keywords):
    return any(keyword in name for keyword in keywords)


def classify_name(name):
    """Buckets a secret name by case-insensitive keyword match.

    Connection strings exclude API key/token, endpoint can combine with either.
    """
    lowered = name.lower()
    buckets = []
    is_connection = _matches_any(lowered, CONNECTION_STRING_KEYWORDS)
    if is_connection:
        buckets.append(ClassificationBucket.CONNECTION_STRING)
    if not is_connection and _matches_any(lowered, API_KEY_OR_TOKEN_KEYWORDS):
        buckets.append(ClassificationBucket.API_KEY_OR_TOKEN)
    if _matches_any(lowered, ENDPOINT_KEYWORDS):
        buckets.append(ClassificationBucket.ENDPOINT)
    if not buckets:
        buckets.append(ClassificationBucket.UNCLASSIFIED)
    return buckets


def edge_sample(value):
    length = len(value)
    if length <= 10:
        return ""
    n = 3 if length <= 50 else 5
    return f"{value[:n]}...{value[-n:]}"


def describe_value_shape(value):
    detected = UNKNOWN_SHAPE
    for shape, pattern in VALUE_SHAPES:
        if pattern.fullmatch(value):
            detected = shape
            break
    return ValueShape(detected_type=detected, length=len(value), edge_sample=edge_sample(value))


def to_utc(moment):
    """Timezone aware UTC datetime, naive datetimes are taken to already be UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return pytz.utc.localize(moment)
    return moment.astimezone(pytz.utc)


def summarize(entries):
    """Counts entries per bucket, every bucket is present even when zero."""
    counts = {bucket: 0 for bucket in ClassificationBucket}
    for entry in entries:
        for bucket in entry.buckets:
            counts[bucket] += 1
    return counts


class SecretInspector:
    def __init__(self, vault, logger=None):
        self._vault = vault
        self._logger = logger or logging.getLogger(__name__)

    @property
    def vault(self):
        return self._vault

    def inspect(self, sample_values=False, updated_before=None):
        """Lists and classifies every active secret.

        Only metadata is listed unless values are sampled, so without sampling no
        secret value ever leaves the vault.

        Args:
            sample_values (bool): Also read each value and describe its shape.
            updated_before (datetime, optional): Only report secrets last updated
                before this moment.

        Returns:
            list of SecretReportEntry sorted by name. Secrets whose value could not
            be read while sampling are left out with a warning logged.
        """
        cutoff = to_utc(updated_before)
        entries = []
        for metadata in sorted(self._vault.list_secret_metadata(), key=lambda m: m.name):
            name = metadata.name
            if cutoff is not None:
                updated = to_utc(metadata.updated)
                if updated is None or updated >= cutoff:
                    continue

            shape = None
            if sample_values:
                try:
                    secret = self._vault.get_active(name)
                except VaultAuthorizationError:
                    raise
                except SecretSyncError as e:
                    self._logger.warning(f"Skipping {name}: {e}")
                    continue
                metadata = secret.metadata
                shape = describe_value_shape(secret.value)
                del secret
            entries.append(SecretReportEntry(metadata=metadata,
                                             buckets=classify_name(name),
                                             value_shape=shape))
        self._logger.info(f"Inspected {len(entries)} secret(s) in {self._vault.vault_name}")
        return entries


def inspect(vault, sample_values=False, updated_before=None):
    return SecretInspector(vault).inspect(sample_values=sample_values,
                                          updated_before=updated_before)
