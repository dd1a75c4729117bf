"""Core modules for deskpm"""

from .compression import decompress_bytes
from .context import PackageContext
from .database import PackageDatabase
from .errors import ErrorKind, PackageError
from .job import Job
from .operations import PackageOperations
from .resolver import Plan, Planner
from .version import Dependency, Version

__all__ = [
    'decompress_bytes', 'PackageContext', 'PackageDatabase',
    'ErrorKind', 'PackageError', 'Job', 'PackageOperations', 'Plan',
    'Planner', 'Dependency', 'Version',
]
