"""
deskpm - Package manager for desktop software

Installs, updates and removes software packages described in repository
XML files, featuring:
- Dependency planning with version ranges and cycle detection
- SQLite catalog and installed-state database
- Serial install/uninstall pipeline with locking and cleanup
- CLI with short aliases
"""

__version__ = "0.1.0"
__author__ = "deskpm contributors"
