# -*- coding: utf-8 -*-
"""vault_secret_sync a module for keeping declared secrets in a soft-delete protected vault.

This module reconciles a vault against a small declared set of secrets, purging soft-deleted
remnants and retiring legacy names, and reports on the secrets a vault holds without
disclosing their values.

"""

import setuptools
import re
from io import open

VERSIONFILE="vault_secret_sync/_version.py"
verstrline = open(VERSIONFILE, "rt").read()
VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    verstr = mo.group(1)
else:
    raise RuntimeError("Unable to find version string in %s." % (VERSIONFILE,))

with open("README.md", "r", encoding='utf-8') as fh:
    long_description = fh.read()

setuptools.setup(
    name='vault_secret_sync',
    version=verstr,
    author="Mike Moore",
    author_email="z_z_zebra@yahoo.com",
    description="Reconcile declared secrets into a soft-delete protected vault and report on what it holds",
    long_description_content_type="text/markdown",
    long_description=long_description,
    packages=setuptools.find_packages(exclude=["*.tests", "*.tests.*"]),
    python_requires=">=3.8",
    extras_require={
        "test": ["pytest"],
    },
    include_package_data=True,
    license="MIT",
    entry_points={
        "console_scripts": [
            "vault-secret-sync=vault_secret_sync.cli:sync_entry",
            "vault-secret-inspect=vault_secret_sync.cli:inspect_entry",
        ],
    },
    install_requires=[
        "google-cloud-secret-manager~=2.0",
        "google-cloud-storage>1.0,<4.0",
        "google-crc32c~=1.0",
        "azure-keyvault-secrets~=4.0",
        "azure-identity~=1.0",
        "tenacity>=8.0",
        "tabulate>=0.9",
        "python-dateutil~=2.0",
        "pytz>=2022.0"
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],

)
