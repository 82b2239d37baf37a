# -*- coding: utf-8 -*-
"""Value types shared by the reconciler and the inspector.

Vault state itself is never modelled as a cache here; a ``SecretState`` is only
ever the answer to a single question asked of the vault just before acting.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, List, Optional, Set


class SecretState(enum.Enum):
    ABSENT = "absent"
    ACTIVE = "active"
    SOFT_DELETED = "soft-deleted"


class ClassificationBucket(enum.Enum):
    CONNECTION_STRING = "connection-string"
    API_KEY_OR_TOKEN = "api-key-or-token"
    ENDPOINT = "endpoint"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class DesiredSecret:
    name: str
    value: str

    def __repr__(self):
        # values are secret material, keep them out of logs and tracebacks
        return f"DesiredSecret(name={self.name!r}, value=<{len(self.value)} chars>)"


@dataclass
class SecretMetadata:
    name: str
    content_type: Optional[str] = None
    enabled: bool = True
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    tags: FrozenSet[str] = frozenset()


@dataclass
class VaultSecret:
    metadata: SecretMetadata
    value: str

    @property
    def name(self):
        return self.metadata.name

    def __repr__(self):
        return f"VaultSecret(metadata={self.metadata!r}, value=<redacted>)"


@dataclass
class OperationResult:
    """Outcome of one vault call for one name: success when ``error`` is None."""
    name: str
    operation: str
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None


@dataclass
class FailedSecret:
    name: str
    error_message: str


@dataclass
class ReconcileReport:
    legacy_removed: int = 0
    purged: int = 0
    updated: int = 0
    created: int = 0
    failed: List[FailedSecret] = field(default_factory=list)
    verified: int = 0
    missing_after_verify: Set[str] = field(default_factory=set)

    def record_failure(self, result):
        self.failed.append(FailedSecret(name=result.name,
                                        error_message=f"{result.operation}: {result.error}"))

    @property
    def failed_names(self):
        return [failure.name for failure in self.failed]

    @property
    def succeeded(self):
        return not self.failed and not self.missing_after_verify


@dataclass
class PlannedAction:
    phase: str
    name: str
    action: str


@dataclass
class ValueShape:
    detected_type: str
    length: int
    edge_sample: str = ""


@dataclass
class SecretReportEntry:
    metadata: SecretMetadata
    buckets: List[ClassificationBucket]
    value_shape: Optional[ValueShape] = None

    @property
    def name(self):
        return self.metadata.name
