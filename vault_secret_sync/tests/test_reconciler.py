# -*- coding: utf-8 -*-
"""
Tests for reconciling a vault against desired secrets using an in memory vault.

"""

import logging
import unittest

from vault_secret_sync import *
from vault_secret_sync.tests.fakes import FakeClock, FakeVaultClient


def setup_module():
    logging.basicConfig(level=logging.DEBUG)


class TestSecretReconciler(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()

    def reconciler(self, vault, **kwargs):
        kwargs.setdefault("settle_timeout", 10.0)
        kwargs.setdefault("settle_interval", 1.0)
        return SecretReconciler(vault, sleep=self.clock.sleep, clock=self.clock, **kwargs)

    def test_create_into_empty_vault_then_replace(self):
        vault = FakeVaultClient()
        reconciler = self.reconciler(vault)

        report = reconciler.reconcile({"A": "Server=x;Database=devFoo;"})
        self.assertEqual(report.created, 1)
        self.assertEqual(report.updated, 0)
        self.assertEqual(report.purged, 0)
        self.assertEqual(report.failed, [])
        self.assertEqual(report.verified, 1)
        self.assertTrue(report.succeeded)
        self.assertEqual(vault.get_active("A").value, "Server=x;Database=devFoo;")

        report = reconciler.reconcile({"A": "Server=x;Database=devBar;"})
        self.assertEqual(report.updated, 1)
        self.assertEqual(report.created, 0)
        self.assertEqual(report.failed, [])
        self.assertEqual(vault.get_active("A").value, "Server=x;Database=devBar;")

    def test_rerun_converges_to_same_state(self):
        desired = [DesiredSecret("ConnectionStrings--Dev--Orders", "Server=a;Database=orders;"),
                   DesiredSecret("ConnectionStrings--Dev--Billing", "Server=a;Database=billing;"),
                   DesiredSecret("EncryptionPassphrase", "correct horse battery staple")]
        vault = FakeVaultClient(active={"Legacy--Orders": "old"})
        reconciler = self.reconciler(vault)

        first = reconciler.reconcile(desired, ["Legacy--Orders"])
        values_after_first = {s.name: vault.value_of(s.name) for s in desired}

        second = reconciler.reconcile(desired, ["Legacy--Orders"])
        values_after_second = {s.name: vault.value_of(s.name) for s in desired}

        self.assertEqual(values_after_first, values_after_second)
        self.assertEqual(first.missing_after_verify, set())
        self.assertEqual(second.missing_after_verify, set())
        self.assertEqual(second.legacy_removed, 0)
        self.assertEqual(second.purged, 0)
        self.assertEqual(second.updated, len(desired))
        self.assertEqual(second.failed, [])

    def test_failure_on_one_name_is_isolated(self):
        vault = FakeVaultClient()
        vault.fail("set", "X")
        desired = {"A": "1", "X": "2", "B": "3"}

        report = self.reconciler(vault).reconcile(desired)

        self.assertEqual(report.failed_names, ["X"])
        self.assertIn("simulated service error", report.failed[0].error_message)
        self.assertEqual(report.created, 2)
        self.assertEqual(vault.value_of("A"), "1")
        self.assertEqual(vault.value_of("B"), "3")
        self.assertEqual(report.missing_after_verify, {"X"})
        self.assertEqual(vault.operations("set").count("X"), 1)

    def test_unexpected_error_is_isolated(self):
        vault = FakeVaultClient()
        vault.fail("set", "X", RuntimeError("boom"))

        report = self.reconciler(vault).reconcile({"X": "2", "B": "3"})

        self.assertEqual(report.failed_names, ["X"])
        self.assertIn("RuntimeError: boom", report.failed[0].error_message)
        self.assertEqual(vault.value_of("B"), "3")

    def test_unreadable_state_is_not_a_failure_when_name_converges(self):
        vault = FakeVaultClient()
        vault.fail("get", "X")

        report = self.reconciler(vault).reconcile({"X": "v", "B": "b"})

        self.assertEqual(report.failed, [])
        self.assertTrue(report.succeeded)
        self.assertEqual(report.created, 2)
        self.assertEqual(vault.value_of("X"), "v")

    def test_unreadable_state_recorded_once_when_name_is_missing(self):
        vault = FakeVaultClient()
        vault.fail("get", "X")
        vault.hidden_from_list.add("X")

        report = self.reconciler(vault).reconcile({"X": "v"})

        self.assertEqual(report.failed_names, ["X"])
        self.assertIn("purge-state", report.failed[0].error_message)
        self.assertEqual(report.missing_after_verify, {"X"})

    def test_unreadable_state_merged_with_create_failure(self):
        vault = FakeVaultClient()
        vault.fail("get", "X")
        vault.fail("set", "X")

        report = self.reconciler(vault).reconcile({"X": "v"})

        self.assertEqual(report.failed_names, ["X"])
        self.assertIn("create", report.failed[0].error_message)

    def test_unreadable_legacy_state_is_recorded(self):
        vault = FakeVaultClient(active={"Old": "legacy"})
        vault.fail("get", "Old")

        report = self.reconciler(vault).reconcile({"A": "1"}, ["Old"])

        self.assertEqual(report.failed_names, ["Old"])
        self.assertIn("legacy-state", report.failed[0].error_message)
        self.assertEqual(report.legacy_removed, 0)

    def test_disabled_secret_counts_as_active(self):
        vault = FakeVaultClient(active={"A": "old"})
        vault.disabled.add("A")

        report = self.reconciler(vault).reconcile({"A": "new"})

        self.assertEqual(report.updated, 1)
        self.assertEqual(report.created, 0)
        self.assertEqual(report.failed, [])
        self.assertEqual(vault.value_of("A"), "new")

    def test_soft_deleted_remnant_is_purged_before_create(self):
        vault = FakeVaultClient(soft_deleted=["A"])

        report = self.reconciler(vault).reconcile({"A": "fresh"})

        self.assertEqual(report.purged, 1)
        self.assertEqual(report.created, 1)
        self.assertEqual(report.failed, [])
        self.assertEqual(vault.secret_state("A"), SecretState.ACTIVE)
        self.assertEqual(vault.value_of("A"), "fresh")

    def test_waits_for_purge_to_settle(self):
        vault = FakeVaultClient(soft_deleted=["A"], purge_lag=2)

        report = self.reconciler(vault).reconcile({"A": "fresh"})

        self.assertEqual(report.failed, [])
        self.assertEqual(vault.value_of("A"), "fresh")
        self.assertEqual(self.clock.sleeps, [1.0, 1.0])

    def test_settle_timeout_surfaces_conflict_on_create(self):
        vault = FakeVaultClient(soft_deleted=["A"], purge_lag=100)

        report = self.reconciler(vault, settle_timeout=5.0).reconcile({"A": "fresh"})

        self.assertEqual(report.purged, 1)
        self.assertEqual(report.failed_names, ["A"])
        self.assertIn("soft-deleted remnant", report.failed[0].error_message)
        self.assertEqual(report.missing_after_verify, {"A"})
        self.assertLessEqual(self.clock.now, 6.0)

    def test_purge_refused_after_delete_is_reported_on_create(self):
        vault = FakeVaultClient(active={"A": "old"}, purge_protected=True)

        report = self.reconciler(vault).reconcile({"A": "new"})

        self.assertEqual(report.updated, 1)
        self.assertEqual(report.failed_names, ["A"])
        self.assertTrue(report.failed[0].error_message.startswith("create:"))
        self.assertEqual(vault.secret_state("A"), SecretState.SOFT_DELETED)

    def test_legacy_names_are_retired_not_purged(self):
        vault = FakeVaultClient(active={"Old--Conn": "x", "A": "old"})

        report = self.reconciler(vault).reconcile({"A": "new"}, ["Old--Conn", "Never--Existed"])

        self.assertEqual(report.legacy_removed, 1)
        self.assertNotIn("Old--Conn", vault.list_secret_names())
        self.assertEqual(vault.secret_state("Old--Conn"), SecretState.SOFT_DELETED)
        self.assertNotIn("Old--Conn", vault.operations("purge"))
        self.assertEqual(report.failed, [])

    def test_legacy_name_that_is_also_desired_is_kept(self):
        vault = FakeVaultClient()

        report = self.reconciler(vault).reconcile({"A": "1"}, ["A"])

        self.assertEqual(report.legacy_removed, 0)
        self.assertEqual(vault.value_of("A"), "1")

    def test_legacy_delete_failure_does_not_abort(self):
        vault = FakeVaultClient(active={"Old": "x"})
        vault.fail("delete", "Old")

        report = self.reconciler(vault).reconcile({"A": "1"}, ["Old"])

        self.assertEqual(report.failed_names, ["Old"])
        self.assertTrue(report.failed[0].error_message.startswith("legacy-delete:"))
        self.assertEqual(vault.value_of("A"), "1")

    def test_phases_run_in_order(self):
        vault = FakeVaultClient(active={"Old": "x", "B": "old"}, soft_deleted=["A"])

        self.reconciler(vault).reconcile({"A": "1", "B": "2", "C": "3"}, ["Old"])

        mutations = [(op, name) for op, name in vault.calls
                     if op in ("delete", "purge", "set")]
        self.assertEqual(mutations, [("delete", "Old"),
                                     ("purge", "A"),
                                     ("delete", "B"),
                                     ("purge", "B"),
                                     ("set", "A"),
                                     ("set", "B"),
                                     ("set", "C")])

    def test_verification_reports_names_missing_from_listing(self):
        vault = FakeVaultClient()
        vault.hidden_from_list.add("B")

        report = self.reconciler(vault).reconcile({"A": "1", "B": "2"})

        self.assertEqual(report.failed, [])
        self.assertEqual(report.verified, 1)
        self.assertEqual(report.missing_after_verify, {"B"})
        self.assertFalse(report.succeeded)

    def test_unauthorized_vault_aborts_before_any_phase(self):
        vault = FakeVaultClient(active={"Old": "x"})
        vault.deny_access()

        with self.assertRaises(VaultAuthorizationError):
            self.reconciler(vault).reconcile({"A": "1"}, ["Old"])
        self.assertEqual(vault.operations("delete"), [])
        self.assertEqual(vault.operations("set"), [])

    def test_authorization_lost_mid_run_aborts(self):
        vault = FakeVaultClient()
        vault.fail("set", "A", VaultAuthorizationError("fake-vault", "token expired"))

        with self.assertRaises(VaultAuthorizationError):
            self.reconciler(vault).reconcile({"A": "1", "B": "2"})

    def test_duplicate_desired_names_rejected(self):
        vault = FakeVaultClient()
        with self.assertRaises(ValueError):
            self.reconciler(vault).reconcile([DesiredSecret("A", "1"), DesiredSecret("A", "2")])
        self.assertEqual(vault.calls, [])

    def test_plan_describes_without_changing(self):
        vault = FakeVaultClient(active={"B": "old", "Old": "l"}, soft_deleted=["A"])

        actions = plan(vault, {"A": "1", "B": "2", "C": "3"}, ["Old", "Gone"],
                       sleep=self.clock.sleep, clock=self.clock)

        self.assertEqual([(a.phase, a.name, a.action) for a in actions],
                         [("legacy", "Old", "delete"),
                          ("purge", "A", "purge"),
                          ("clear", "B", "delete and purge"),
                          ("create", "A", "set"),
                          ("create", "B", "set"),
                          ("create", "C", "set")])
        for operation in ("set", "delete", "purge"):
            self.assertEqual(vault.operations(operation), [])

    def test_desired_secret_repr_hides_value(self):
        self.assertNotIn("hunter2", repr(DesiredSecret("A", "hunter2")))
