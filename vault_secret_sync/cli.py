# -*- coding: utf-8 -*-
"""Operator entry points ``vault-secret-sync`` and ``vault-secret-inspect``.

Exit codes: 0 everything converged, 1 some secrets failed or are missing after
verify, 2 the run could not start (bad configuration, not authorized or the vault
could not be listed).
"""

import argparse
import logging
import sys

from .clients import AzureKeyVaultClient, GCPSecretManagerClient, RetryingVaultClient
from .config import PROVIDERS, VaultSettings, load_desired_state
from .exceptions import ConfigurationError, SecretSyncError
from .inspector import SecretInspector
from .reconciler import SecretReconciler
from .reporting import format_inspection, format_plan, format_reconcile_report, \
    parse_timestamp

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_UNUSABLE = 2

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def build_vault(settings, retries=0):
    if settings.provider == "gcp":
        vault = GCPSecretManagerClient(project_id=settings.vault)
    else:
        vault = AzureKeyVaultClient(settings.vault_url,
                                    tenant_id=settings.tenant_id,
                                    subscription_id=settings.subscription_id)
    if retries > 0:
        vault = RetryingVaultClient(vault, attempts=retries + 1)
    return vault


def _add_vault_arguments(parser):
    parser.add_argument("--provider", choices=PROVIDERS,
                        help="Vault provider, defaults to VAULT_PROVIDER or azure")
    parser.add_argument("--vault",
                        help="Key Vault name or url, or GCP project id. Defaults to VAULT_NAME")
    parser.add_argument("--tenant-id", help="Azure tenant, defaults to AZURE_TENANT_ID")
    parser.add_argument("--subscription-id",
                        help="Azure subscription, defaults to AZURE_SUBSCRIPTION_ID")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def _configure_logging(verbose):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    if not verbose:
        # sdk http logging is noisy at info
        logging.getLogger("azure").setLevel(logging.WARNING)


def sync_parser():
    parser = argparse.ArgumentParser(
        prog="vault-secret-sync",
        description="Reconcile a vault against a desired state document.")
    parser.add_argument("--config", required=True,
                        help="Desired state json, a local path or gs://bucket/object")
    _add_vault_arguments(parser)
    parser.add_argument("--retries", type=int, default=0,
                        help="Retries for each vault call that fails transiently")
    parser.add_argument("--settle-timeout", type=float, default=60.0,
                        help="Seconds to wait for deletes and purges to complete")
    parser.add_argument("--settle-interval", type=float, default=2.0,
                        help="Seconds between state polls while waiting")
    parser.add_argument("--dry-run", action="store_true",
                        help="Only show what would be done")
    return parser


def inspect_parser():
    parser = argparse.ArgumentParser(
        prog="vault-secret-inspect",
        description="Report on the secrets held in a vault.")
    _add_vault_arguments(parser)
    parser.add_argument("--sample-values", action="store_true", default=None,
                        help="Describe value shapes, defaults to VAULT_SAMPLE_VALUES")
    parser.add_argument("--updated-before",
                        help="Only report secrets last updated before this ISO timestamp")
    return parser


def sync_main(argv=None, out=None):
    args = sync_parser().parse_args(argv)
    out = out or sys.stdout
    _configure_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        settings = VaultSettings.from_sources(args.provider, args.vault, args.tenant_id,
                                              args.subscription_id)
        desired, legacy_names = load_desired_state(args.config)
        reconciler = SecretReconciler(build_vault(settings, args.retries),
                                      settle_timeout=args.settle_timeout,
                                      settle_interval=args.settle_interval)
        if args.dry_run:
            print(format_plan(reconciler.plan(desired, legacy_names)), file=out)
            return EXIT_OK
        report = reconciler.reconcile(desired, legacy_names)
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_UNUSABLE
    except SecretSyncError as e:
        logger.error(f"Vault unusable: {e}")
        return EXIT_UNUSABLE

    print(format_reconcile_report(report), file=out)
    return EXIT_OK if report.succeeded else EXIT_PARTIAL


def inspect_main(argv=None, out=None):
    args = inspect_parser().parse_args(argv)
    out = out or sys.stdout
    _configure_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        settings = VaultSettings.from_sources(args.provider, args.vault, args.tenant_id,
                                              args.subscription_id, args.sample_values)
        updated_before = parse_timestamp(args.updated_before) if args.updated_before else None
        entries = SecretInspector(build_vault(settings)).inspect(
            sample_values=settings.sample_values, updated_before=updated_before)
    except (ConfigurationError, ValueError, OverflowError) as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_UNUSABLE
    except SecretSyncError as e:
        logger.error(f"Vault unusable: {e}")
        return EXIT_UNUSABLE

    print(format_inspection(entries, sample_values=settings.sample_values), file=out)
    return EXIT_OK


def sync_entry():
    sys.exit(sync_main())


def inspect_entry():
    sys.exit(inspect_main())
