# -*- coding: utf-8 -*-
"""Drives a soft-delete protected vault to a declared set of secrets.

The work is done in ordered phases. Each phase finishes for every name before the
next one starts as later phases assume earlier ones cleared conflicting state.

legacy retirement - active legacy names are deleted, never purged
purge             - desired names held by a soft-deleted remnant are purged
clear             - desired names already active are deleted then purged
create            - every desired name is set exactly once
verify            - active names are re-listed and compared with the desired set

Vault state is re-queried before acting in each phase, nothing is carried between
phases apart from the counts in the report. Failures on one name are recorded in
the report and never stop other names being processed. Only a
VaultAuthorizationError ends a run early.
"""

import logging
import time
from collections.abc import Mapping

from .exceptions import SecretSyncError, VaultAuthorizationError
from .models import DesiredSecret, OperationResult, PlannedAction, ReconcileReport, \
    SecretState

PHASE_LEGACY = "legacy"
PHASE_PURGE = "purge"
PHASE_CLEAR = "clear"
PHASE_CREATE = "create"


def normalise_desired(desired):
    """Accepts DesiredSecrets or a name to value mapping and rejects duplicate names."""
    if isinstance(desired, Mapping):
        desired = [DesiredSecret(name=name, value=value) for name, value in desired.items()]
    desired = list(desired)
    seen = set()
    for secret in desired:
        if secret.name in seen:
            raise ValueError(f"Secret {secret.name} is declared more than once")
        seen.add(secret.name)
    return desired


class SecretReconciler:
    """Reconciles one vault against desired secrets.

    Args:
        vault (VaultClient): Already authorized vault client.
        settle_timeout (float): Upper bound in seconds on waiting for deletes and
            purges to become visible before moving on to the next phase.
        settle_interval (float): Seconds between polls while settling.
        logger (logging.Logger, optional): Where progress is reported.
        sleep (callable, optional): Injected for tests, defaults to ``time.sleep``.
        clock (callable, optional): Monotonic clock, defaults to ``time.monotonic``.
    """

    def __init__(self, vault, settle_timeout=60.0, settle_interval=2.0, logger=None,
                 sleep=time.sleep, clock=time.monotonic):
        assert settle_timeout >= 0.0, "settle_timeout cannot be negative"
        assert settle_interval > 0.0, "settle_interval must be positive"
        self._vault = vault
        self._settle_timeout = settle_timeout
        self._settle_interval = settle_interval
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._clock = clock

    @property
    def vault(self):
        return self._vault

    def _attempt(self, operation, name, fn, *args):
        """Runs one vault call for one name turning any failure into a result."""
        try:
            fn(*args)
        except VaultAuthorizationError:
            raise
        except SecretSyncError as e:
            return OperationResult(name=name, operation=operation, error=str(e))
        except Exception as e:
            self._logger.exception(f"Unexpected error during {operation} of {name}")
            return OperationResult(name=name, operation=operation,
                                   error=f"{type(e).__name__}: {e}")
        return OperationResult(name=name, operation=operation)

    def _query_state(self, name, unknown=None, operation="state"):
        """Current vault state of a name, None if unknown.

        The failure is kept in ``unknown``, keyed by name, when a dict is passed.
        """
        try:
            return self._vault.secret_state(name)
        except VaultAuthorizationError:
            raise
        except SecretSyncError as e:
            self._logger.error(f"Could not determine state of {name}: {e}")
            if unknown is not None:
                unknown.setdefault(name, OperationResult(name=name, operation=operation,
                                                         error=str(e)))
            return None

    def _split_legacy(self, desired, legacy_names):
        desired_names = {secret.name for secret in desired}
        legacy = []
        for name in legacy_names:
            if name in desired_names:
                self._logger.warning(f"Legacy name {name} is also desired, not retiring it")
                continue
            if name not in legacy:
                legacy.append(name)
        return legacy

    def _settle(self, names, settled, description):
        """Polls until ``settled(name, state)`` holds for every name or the timeout passes.

        Returns True when everything settled.
        """
        pending = list(names)
        if not pending:
            return True
        deadline = self._clock() + self._settle_timeout
        self._logger.info(f"Waiting for {len(pending)} secret(s) to be {description}")
        while True:
            still_pending = []
            for name in pending:
                try:
                    state = self._vault.secret_state(name)
                except VaultAuthorizationError:
                    raise
                except SecretSyncError as e:
                    self._logger.debug(f"State check of {name} failed while settling: {e}")
                    still_pending.append(name)
                    continue
                if not settled(name, state):
                    still_pending.append(name)
            pending = still_pending
            if not pending:
                return True
            if self._clock() >= deadline:
                self._logger.warning(
                    f"Timed out after {self._settle_timeout}s waiting for "
                    f"{', '.join(pending)} to be {description}")
                return False
            self._sleep(self._settle_interval)

    def retire_legacy(self, legacy_names, report):
        unknown = {}
        for name in legacy_names:
            state = self._query_state(name, unknown, operation="legacy-state")
            if name in unknown:
                # no later phase looks at legacy names again
                report.record_failure(unknown[name])
            if state is not SecretState.ACTIVE:
                self._logger.debug(f"Legacy secret {name} is {state.value if state else 'unknown'}")
                continue
            result = self._attempt("legacy-delete", name, self._vault.delete_secret, name)
            if result.ok:
                report.legacy_removed += 1
                self._logger.info(f"Retired legacy secret {name}")
            else:
                report.record_failure(result)
                self._logger.error(f"Failed to retire legacy secret {name}: {result.error}")

    def purge_remnants(self, desired, report, unknown=None):
        purged = []
        for secret in desired:
            state = self._query_state(secret.name, unknown, operation="purge-state")
            if state is not SecretState.SOFT_DELETED:
                continue
            result = self._attempt("purge", secret.name, self._vault.purge_secret, secret.name)
            if result.ok:
                report.purged += 1
                purged.append(secret.name)
                self._logger.info(f"Purged soft-deleted secret {secret.name}")
            else:
                report.record_failure(result)
                self._logger.error(f"Failed to purge soft-deleted secret {secret.name}: "
                                   f"{result.error}")
        self._settle(purged, lambda name, state: state is SecretState.ABSENT, "purged")

    def clear_active(self, desired, report, unknown=None):
        """Deletes and purges desired names that are already active.

        Returns the names cleared, they are replacements rather than new secrets.
        """
        cleared = []
        purge_failed = set()
        for secret in desired:
            state = self._query_state(secret.name, unknown, operation="clear-state")
            if state is not SecretState.ACTIVE:
                continue
            result = self._attempt("delete", secret.name, self._vault.delete_secret, secret.name)
            if not result.ok:
                report.record_failure(result)
                self._logger.error(f"Failed to delete existing secret {secret.name}: "
                                   f"{result.error}")
                continue
            report.updated += 1
            cleared.append(secret.name)
            result = self._attempt("purge", secret.name, self._vault.purge_secret, secret.name)
            if result.ok:
                self._logger.info(f"Cleared existing secret {secret.name}")
            else:
                # create of this name will now fail and be reported there
                purge_failed.add(secret.name)
                self._logger.warning(f"Deleted but could not purge {secret.name}: {result.error}")

        def settled(name, state):
            if name in purge_failed:
                return state is not SecretState.ACTIVE
            return state is SecretState.ABSENT

        self._settle(cleared, settled, "cleared")
        return set(cleared)

    def create(self, desired, replaced, report):
        for secret in desired:
            result = self._attempt("create", secret.name, self._vault.set_secret,
                                   secret.name, secret.value)
            if result.ok:
                if secret.name not in replaced:
                    report.created += 1
                self._logger.info(f"Set secret {secret.name}")
            else:
                report.record_failure(result)
                self._logger.error(f"Failed to set secret {secret.name}: {result.error}")

    def verify(self, desired, report):
        try:
            listed = set(self._vault.list_secret_names())
        except VaultAuthorizationError:
            raise
        except SecretSyncError as e:
            self._logger.error(f"Could not list secrets to verify: {e}")
            listed = set()
        for secret in desired:
            if secret.name in listed:
                report.verified += 1
            else:
                report.missing_after_verify.add(secret.name)
                self._logger.warning(f"Secret {secret.name} is not active after reconcile")

    def record_unknown_states(self, unknown, report):
        """Records state query failures for names that did not end up active.

        A name that converged anyway, or already has a failure recorded, gets no
        extra entry.
        """
        failed = set(report.failed_names)
        for name, result in unknown.items():
            if name in report.missing_after_verify and name not in failed:
                report.record_failure(result)

    def reconcile(self, desired, legacy_names=()):
        """Brings the vault to the desired state.

        Args:
            desired: DesiredSecrets or a mapping of name to value.
            legacy_names: Names to retire from active use.

        Returns:
            ReconcileReport: counts per outcome and every per-name failure.

        Raises:
            VaultAuthorizationError: The vault session is unusable.
            ValueError: A name is declared twice.
        """
        desired = normalise_desired(desired)
        legacy = self._split_legacy(desired, legacy_names)
        report = ReconcileReport()

        self._vault.check_access()
        self._logger.info(f"Reconciling {len(desired)} secret(s) and {len(legacy)} legacy "
                          f"name(s) in {self._vault.vault_name}")

        unknown = {}
        self.retire_legacy(legacy, report)
        self.purge_remnants(desired, report, unknown)
        replaced = self.clear_active(desired, report, unknown)
        self.create(desired, replaced, report)
        self.verify(desired, report)
        self.record_unknown_states(unknown, report)

        self._logger.info(
            f"Reconcile finished legacy_removed={report.legacy_removed} purged={report.purged} "
            f"updated={report.updated} created={report.created} failed={len(report.failed)} "
            f"verified={report.verified} missing={len(report.missing_after_verify)}")
        return report

    def plan(self, desired, legacy_names=()):
        """Describes what reconcile would do against the vault as it is now.

        Nothing is changed. Names whose state cannot be read are planned as
        "unknown".
        """
        desired = normalise_desired(desired)
        legacy = self._split_legacy(desired, legacy_names)
        self._vault.check_access()
        actions = []
        for name in legacy:
            state = self._query_state(name)
            if state is SecretState.ACTIVE:
                actions.append(PlannedAction(PHASE_LEGACY, name, "delete"))
            elif state is None:
                actions.append(PlannedAction(PHASE_LEGACY, name, "unknown"))
        for secret in desired:
            state = self._query_state(secret.name)
            if state is SecretState.SOFT_DELETED:
                actions.append(PlannedAction(PHASE_PURGE, secret.name, "purge"))
            elif state is SecretState.ACTIVE:
                actions.append(PlannedAction(PHASE_CLEAR, secret.name, "delete and purge"))
            elif state is None:
                actions.append(PlannedAction(PHASE_CLEAR, secret.name, "unknown"))
        for secret in desired:
            actions.append(PlannedAction(PHASE_CREATE, secret.name, "set"))
        return actions


def reconcile(vault, desired, legacy_names=(), **kwargs):
    """Convenience wrapper around ``SecretReconciler(vault, **kwargs).reconcile``."""
    return SecretReconciler(vault, **kwargs).reconcile(desired, legacy_names)


def plan(vault, desired, legacy_names=(), **kwargs):
    return SecretReconciler(vault, **kwargs).plan(desired, legacy_names)
