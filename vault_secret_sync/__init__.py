# -*- coding: utf-8 -*-
"""vault_secret_sync

Keep a small declared set of secrets in a soft-delete protected vault in the desired
state, and report on what a vault already holds without disclosing values.

"""

from __future__ import absolute_import

from vault_secret_sync.exceptions import SecretSyncError, \
    VaultAuthorizationError, \
    SecretNotFound, \
    SecretConflict, \
    TransientVaultError, \
    ConfigurationError, \
    SecretAccessDenied, \
    SecretDisabled
from vault_secret_sync.models import DesiredSecret, \
    SecretState, \
    SecretMetadata, \
    VaultSecret, \
    ClassificationBucket, \
    OperationResult, \
    FailedSecret, \
    ReconcileReport, \
    PlannedAction, \
    ValueShape, \
    SecretReportEntry
from vault_secret_sync.clients import VaultClient, \
    AzureKeyVaultClient, \
    GCPSecretManagerClient, \
    RetryingVaultClient
from vault_secret_sync.reconciler import SecretReconciler, reconcile, plan
from vault_secret_sync.inspector import SecretInspector, \
    inspect, \
    classify_name, \
    describe_value_shape, \
    summarize
from vault_secret_sync.config import VaultSettings, load_desired_state, parse_desired_state
from ._version import __version__

__all__ = ["__version__",
           "SecretSyncError",
           "VaultAuthorizationError",
           "SecretNotFound",
           "SecretConflict",
           "TransientVaultError",
           "ConfigurationError",
           "SecretAccessDenied",
           "SecretDisabled",
           "DesiredSecret",
           "SecretState",
           "SecretMetadata",
           "VaultSecret",
           "ClassificationBucket",
           "OperationResult",
           "FailedSecret",
           "ReconcileReport",
           "PlannedAction",
           "ValueShape",
           "SecretReportEntry",
           "VaultClient",
           "AzureKeyVaultClient",
           "GCPSecretManagerClient",
           "RetryingVaultClient",
           "SecretReconciler",
           "reconcile",
           "plan",
           "SecretInspector",
           "inspect",
           "classify_name",
           "describe_value_shape",
           "summarize",
           "VaultSettings",
           "load_desired_state",
           "parse_desired_state"]
