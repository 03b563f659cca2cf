################################################################################
# HUBVAULT
#
# @file:        setup.py
# @module:      setup
# @description: Setuptools configuration and CLI packaging for HubVault.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Four console scripts: hubvault plus the backup/restore/update shortcuts
# - restic and docker compose are runtime binaries, not Python dependencies
################################################################################

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description (optional)
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

setup(
    name="hubvault",
    version="1.0.0",
    description="Backup, restore and update lifecycle for a Docker Compose hub using restic",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="HubVault Contributors",
    author_email="",
    url="https://github.com/hubvault/hubvault",
    project_urls={
        "Source": "https://github.com/hubvault/hubvault",
        "Issues": "https://github.com/hubvault/hubvault/issues",
    },
    license="MIT",

    packages=find_packages(exclude=("tests*", "docs*", "examples*")),
    include_package_data=True,
    zip_safe=False,

    python_requires=">=3.10",

    install_requires=[
        "psutil>=5.9.0",
        "typer>=0.12.0",
        "rich>=13.0.0",
        "pydantic>=2.0.0",
        "docker>=7.0.0",
        "apprise>=1.6.0",
        "httpx>=0.27.0",
    ],

    extras_require={
        "systemd": [
            # Optional: nur auf Linux sinnvoll verfügbar
            "systemd-python>=234",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
            "black>=22.0.0",
            "flake8>=4.0.0",
            "mypy>=0.950",
        ],
    },

    entry_points={
        "console_scripts": [
            "hubvault=hubvault.cli.main:cli_main",
            "hubvault-backup=hubvault.cli.backup:cli_main",
            "hubvault-restore=hubvault.cli.restore:cli_main",
            "hubvault-update=hubvault.cli.update:cli_main",
        ],
    },

    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Archiving :: Backup",
        "Topic :: System :: Systems Administration",
        "Topic :: Utilities",
    ],

    keywords="docker compose backup restic restore update tailscale adguard",
)
