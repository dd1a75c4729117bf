"""
Main CLI entry point for deskpm

Provides a CLI with short aliases:
- deskpm install / deskpm i
- deskpm remove / deskpm erase / deskpm e
- deskpm update / deskpm u
- deskpm list / deskpm l
- deskpm info / deskpm show
- deskpm repo import
- deskpm check-dir
"""

import argparse
import signal
import sys
import time
from typing import Optional, Tuple

from .. import __version__
from ..core.database import PackageDatabase
from ..core.errors import ErrorKind, PackageError
from ..core.version import Version


def check_dependencies() -> list:
    """Check for required Python modules.

    Returns:
        List of (package, purpose) tuples for missing modules (empty if all OK)
    """
    missing = []

    # Check zstandard (required for .zst repositories and archives)
    try:
        import zstandard  # noqa: F401
    except ImportError:
        missing.append(('zstandard', 'zstd decompression'))

    return missing


def print_missing_dependencies(missing: list):
    """Print error message for missing dependencies."""
    print("ERROR: Missing required Python modules:\n", file=sys.stderr)
    for pkg, purpose in missing:
        print(f"  - {pkg} ({purpose})", file=sys.stderr)
    print("\nInstall with:", file=sys.stderr)
    print(f"  pip install {' '.join(pkg for pkg, _ in missing)}", file=sys.stderr)


class AliasedSubParsersAction(argparse._SubParsersAction):
    """Custom action to support command aliases in argparse."""

    def add_parser(self, name, **kwargs):
        aliases = kwargs.pop('aliases', [])
        parser = super().add_parser(name, **kwargs)

        # Register aliases
        for alias in aliases:
            self._name_parser_map[alias] = parser

        return parser


CLOSE_TYPES = ('window', 'kill', 'both')


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with all commands and aliases."""

    parser = argparse.ArgumentParser(
        prog='deskpm',
        description='Package manager for desktop software',
        epilog='Use "deskpm <command> --help" for command-specific help.'
    )

    parser.add_argument(
        '--version', '-V',
        action='version',
        version=f'deskpm {__version__}'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose output'
    )
    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Quiet output (no progress display)'
    )
    parser.add_argument(
        '--nocolor',
        action='store_true',
        help='Disable colored output'
    )
    parser.add_argument(
        '--close-type',
        choices=sorted(CLOSE_TYPES),
        default='window',
        help='How to stop running programs before removing them (default: window)'
    )

    # Parent parser for display options (inherited by subparsers)
    display_parent = argparse.ArgumentParser(add_help=False)
    display_parent.add_argument(
        '--json',
        action='store_true',
        help='JSON output for scripting'
    )
    display_parent.add_argument(
        '--flat',
        action='store_true',
        help='Flat output (one item per line, parsable)'
    )

    # Parent parser for commands that change the system
    change_parent = argparse.ArgumentParser(add_help=False)
    change_parent.add_argument(
        '--auto', '-y',
        action='store_true',
        help='No confirmation'
    )
    change_parent.add_argument(
        '--test',
        action='store_true',
        help='Dry run (only show the plan)'
    )

    # Register custom action for aliases
    parser.register('action', 'parsers', AliasedSubParsersAction)

    subparsers = parser.add_subparsers(
        dest='command',
        title='commands',
        metavar='<command>'
    )

    # =========================================================================
    # install / i
    # =========================================================================
    install_parser = subparsers.add_parser(
        'install', aliases=['i'],
        help='Install packages',
        parents=[display_parent, change_parent]
    )
    install_parser.add_argument(
        'packages', nargs='+',
        help='Packages to install (NAME or NAME@VERSION)'
    )
    install_parser.add_argument(
        '--dir',
        help='Installation directory for the (first) package'
    )

    # =========================================================================
    # remove / erase / e
    # =========================================================================
    remove_parser = subparsers.add_parser(
        'remove', aliases=['erase', 'e'],
        help='Remove packages',
        parents=[display_parent, change_parent]
    )
    remove_parser.add_argument(
        'packages', nargs='+',
        help='Packages to remove (NAME or NAME@VERSION)'
    )

    # =========================================================================
    # update / u
    # =========================================================================
    update_parser = subparsers.add_parser(
        'update', aliases=['u', 'up'],
        help='Update packages to their newest versions',
        parents=[display_parent, change_parent]
    )
    update_parser.add_argument(
        'packages', nargs='*',
        help='Packages to update'
    )
    update_parser.add_argument(
        '--all', '-a',
        action='store_true',
        help='Update every installed package'
    )
    update_parser.add_argument(
        '--keep-directories', '-k',
        action='store_true',
        help='Install new versions into the directories of the old ones'
    )

    # =========================================================================
    # list / l
    # =========================================================================
    list_parser = subparsers.add_parser(
        'list', aliases=['l'],
        help='List packages',
        parents=[display_parent]
    )
    list_parser.add_argument(
        'filter', nargs='?', default='installed',
        choices=['installed', 'updates', 'all'],
        help='What to list (default: installed)'
    )

    # =========================================================================
    # info / show
    # =========================================================================
    info_parser = subparsers.add_parser(
        'info', aliases=['show'],
        help='Show package details',
        parents=[display_parent]
    )
    info_parser.add_argument(
        'package',
        help='Full or short package name'
    )

    # =========================================================================
    # repo
    # =========================================================================
    repo_parser = subparsers.add_parser(
        'repo',
        help='Manage the package catalog'
    )
    repo_subparsers = repo_parser.add_subparsers(
        dest='repo_command',
        metavar='<subcommand>'
    )
    repo_import = repo_subparsers.add_parser(
        'import',
        help='Import a repository XML file (optionally compressed)'
    )
    repo_import.add_argument(
        'files', nargs='+',
        help='Repository files'
    )
    repo_import.add_argument(
        '--clear',
        action='store_true',
        help='Remove all catalog entries first'
    )
    repo_import.add_argument(
        '--keep-existing',
        action='store_true',
        help='Do not replace entries that are already in the catalog'
    )
    repo_subparsers.add_parser(
        'info',
        help='Show catalog statistics'
    )

    # =========================================================================
    # check-dir
    # =========================================================================
    check_dir_parser = subparsers.add_parser(
        'check-dir',
        help='Check whether a directory can be used for installations'
    )
    check_dir_parser.add_argument(
        'directory',
        help='Directory to check'
    )

    return parser


# =============================================================================
# Helpers
# =============================================================================

def parse_package_spec(spec: str) -> Tuple[str, Optional[Version]]:
    """Split "NAME@VERSION" into name and version.

    Raises:
        PackageError: INVALID if the version cannot be parsed
    """
    if '@' not in spec:
        return spec, None
    name, version = spec.split('@', 1)
    try:
        return name, Version(version)
    except ValueError as e:
        raise PackageError(ErrorKind.INVALID, str(e))


def get_close_type(args):
    from ..core.hooks import CloseType
    value = getattr(args, 'close_type', 'window') or 'window'
    if value == 'kill':
        return CloseType.KILL_PROCESS
    if value == 'both':
        return CloseType.CLOSE_WINDOW | CloseType.KILL_PROCESS
    return CloseType.CLOSE_WINDOW


def make_context(db: PackageDatabase):
    """Context backed by the database for catalog and installed state."""
    from ..core.config import get_cache_dir
    from ..core.context import PackageContext
    from ..core.download import Downloader
    from ..core.installed import InstalledPackages

    return PackageContext(
        catalog=db,
        installed=InstalledPackages(db),
        downloader=Downloader(cache_dir=get_cache_dir()),
    )


def _confirm(question: str) -> bool:
    try:
        answer = input(f"\n{question} [Y/n] ")
    except EOFError:
        print("\nAborted")
        return False
    return answer.strip().lower() not in ('n', 'no')


def run_operations(args, ctx, ops) -> int:
    """Execute operations on a worker thread while showing progress.

    Ctrl+C cancels the job; the current step finishes first.
    """
    from . import colors, display
    from ..core.job import Job
    from ..core.operations import PackageOperations

    job = Job("Processing")
    progress = display.JobProgressDisplay()
    operations = PackageOperations(ctx)

    original_handler = signal.getsignal(signal.SIGINT)

    def sigint_handler(signum, frame):
        print("\n\nInterrupt requested - finishing current step...", file=sys.stderr)
        job.cancel()

    signal.signal(signal.SIGINT, sigint_handler)
    start = time.time()
    try:
        thread = operations.process_in_background(job, ops, get_close_type(args))
        while thread.is_alive():
            thread.join(0.1)
            if not args.quiet:
                progress.update(job)
    finally:
        signal.signal(signal.SIGINT, original_handler)
        progress.finish()

    if not job.is_completed():
        print(colors.error("Error: processing stopped unexpectedly, see the log"))
        return 1
    if job.error is not None:
        print(colors.error(f"Error: {job.error_message}"))
        return 130 if job.error.kind == ErrorKind.CANCELLED else 1

    if not args.quiet:
        print(colors.success(f"Done in {display.format_duration(time.time() - start)}"))
    return 0


def execute_plan(args, ctx, plan) -> int:
    """Show a plan, ask for confirmation and run it."""
    from . import colors, display

    if not plan.success:
        if getattr(args, 'json', False):
            display.print_json({'success': False, 'error': plan.error_message,
                                'operations': []})
        else:
            print(colors.error(f"Error: {plan.error_message}"))
        return 1

    if getattr(args, 'json', False):
        display.print_json({'success': True, 'error': '',
                            'operations': [op.to_dict() for op in plan.operations]})
        if args.test or not plan.operations:
            return 0
    elif not plan.operations:
        print("Nothing to do")
        return 0
    else:
        installs = sum(1 for op in plan.operations if op.install)
        removals = len(plan.operations) - installs
        print(colors.bold(f"{colors.count(installs)} to install, "
                          f"{colors.count(removals)} to remove:"))
        for line in display.format_operations(plan.operations):
            print(line)

    if args.test:
        print(colors.dim("\n(dry run - nothing was changed)"))
        return 0

    if not args.auto and not getattr(args, 'json', False) and not _confirm("Proceed?"):
        return 1

    return run_operations(args, ctx, plan.operations)


# =============================================================================
# Commands
# =============================================================================

def cmd_install(args, db: PackageDatabase) -> int:
    """Handle install command."""
    from . import colors
    from ..core.resolver import Planner

    ctx = make_context(db)
    planner = Planner(ctx)

    pvs = []
    try:
        for spec in args.packages:
            name, version = parse_package_spec(spec)
            package = planner.find_one_package(name)
            if version is not None:
                pv = db.find_package_version(package.name, version)
            else:
                pv = planner.find_newest_installable_package_version(package.name)
            if pv is None:
                raise PackageError(ErrorKind.NOT_FOUND,
                                   f"No installable version found for {spec}")
            if ctx.installed.is_installed(pv.package, pv.version):
                print(colors.warning(f"{pv} is already installed"))
            pvs.append(pv)
    except PackageError as e:
        print(colors.error(f"Error: {e}"))
        return 1

    return execute_plan(args, ctx, planner.plan_installations(pvs, where=args.dir or ""))


def cmd_remove(args, db: PackageDatabase) -> int:
    """Handle remove command."""
    from . import colors
    from ..core.resolver import Planner

    ctx = make_context(db)
    planner = Planner(ctx)

    pvs = []
    try:
        for spec in args.packages:
            name, version = parse_package_spec(spec)
            package = planner.find_one_package(name)
            if version is None:
                installed = ctx.installed.get_by_package(package.name)
                if not installed:
                    raise PackageError(ErrorKind.NOT_FOUND,
                                       f"{package.title} is not installed")
                if len(installed) > 1:
                    versions = ", ".join(str(ipv.version) for ipv in installed)
                    raise PackageError(
                        ErrorKind.INVALID,
                        f"Several versions of {package.title} are installed ({versions}). "
                        f"Use {package.name}@VERSION")
                version = installed[0].version
            pv = planner.resolve_package_version(package.name, version)
            if pv is None:
                raise PackageError(ErrorKind.NOT_FOUND, f"Unknown package version: {spec}")
            pvs.append(pv)
    except PackageError as e:
        print(colors.error(f"Error: {e}"))
        return 1

    return execute_plan(args, ctx, planner.plan_removals(pvs))


def cmd_update(args, db: PackageDatabase) -> int:
    """Handle update command."""
    from . import colors
    from ..core.resolver import Planner

    ctx = make_context(db)
    planner = Planner(ctx)

    if args.all:
        packages = [newest.package for _, newest in planner.find_updates()]
        if not packages:
            print(colors.success("All packages are up to date."))
            return 0
    elif args.packages:
        try:
            packages = [planner.find_one_package(name).name for name in args.packages]
        except PackageError as e:
            print(colors.error(f"Error: {e}"))
            return 1
    else:
        print(colors.error("No packages given (use --all to update everything)"))
        return 1

    plan = planner.plan_updates(packages, install=False,
                                keep_directories=args.keep_directories)
    return execute_plan(args, ctx, plan)


def cmd_list(args, db: PackageDatabase) -> int:
    """Handle list command."""
    from . import colors, display
    from ..core.resolver import Planner

    ctx = make_context(db)
    planner = Planner(ctx)
    filter_type = getattr(args, 'filter', 'installed')

    if filter_type == 'installed':
        rows = [[ipv.package, str(ipv.version), ipv.directory]
                for ipv in ctx.installed.get_all()]
        summary = f"{len(rows)} packages installed"

    elif filter_type == 'updates':
        rows = [[ipv.package, str(ipv.version), str(newest.version)]
                for ipv, newest in planner.find_updates()]
        if not rows and display.get_mode() == display.DisplayMode.COLUMNS:
            print(colors.success("All packages are up to date."))
            return 0
        summary = f"{len(rows)} packages can be updated"

    else:
        installed = {ipv.package for ipv in ctx.installed.get_all()}
        rows = []
        for package in db.list_packages():
            newest = planner.find_newest_installable_package_version(package.name)
            marker = "[i]" if package.name in installed else "   "
            rows.append([marker, package.name, str(newest.version) if newest else "-",
                         package.title])
        summary = f"{len(rows)} packages ({len(installed)} installed)"

    for line in display.format_table(rows):
        print(line)
    if display.get_mode() == display.DisplayMode.COLUMNS:
        print(f"\n{summary}")
    return 0


def cmd_info(args, db: PackageDatabase) -> int:
    """Handle info command."""
    from . import colors, display
    from ..core.resolver import Planner

    ctx = make_context(db)
    planner = Planner(ctx)
    try:
        package = planner.find_one_package(args.package)
    except PackageError as e:
        print(colors.error(f"Error: {e}"))
        return 1

    versions = db.find_package_versions(package.name)

    if display.get_mode() == display.DisplayMode.JSON:
        display.print_json({
            'name': package.name,
            'title': package.title,
            'url': package.url,
            'license': package.license,
            'categories': package.categories,
            'description': package.description,
            'versions': [{
                'version': str(pv.version),
                'installed': ctx.installed.is_installed(pv.package, pv.version),
                'dependencies': [str(d) for d in pv.dependencies],
            } for pv in versions],
        })
        return 0

    print(f"{colors.bold(package.title)} ({package.name})")
    if package.url:
        print(f"  URL:        {package.url}")
    if package.license:
        print(f"  License:    {package.license}")
    if package.categories:
        print(f"  Categories: {', '.join(package.categories)}")
    if package.description:
        print(f"\n  {package.description}")

    print(f"\n{colors.bold('Versions:')}")
    for pv in reversed(versions):
        ipv = ctx.installed.find(pv.package, pv.version)
        line = f"  {pv.version}"
        if ipv is not None:
            line += colors.success(f" [installed in {ipv.directory}]")
        print(line)
        for dep in pv.dependencies:
            print(colors.dim(f"      requires {planner.dependency_to_string(dep)}"))
    return 0


def cmd_repo_import(args, db: PackageDatabase) -> int:
    """Handle repo import command."""
    from . import colors
    from ..core.repository import Repository

    repositories = []
    for path in args.files:
        repo = Repository()
        try:
            repo.load(path)
        except (PackageError, OSError, ValueError) as e:
            print(colors.error(f"Error loading {path}: {e}"))
            return 1
        repositories.append(repo)

    if args.clear:
        db.clear_catalog()

    total = 0
    for path, repo in zip(args.files, repositories):
        count = db.save_repository(repo, replace=not args.keep_existing)
        total += count
        if not args.quiet:
            print(f"  {path}: {colors.count(len(repo.packages))} packages, "
                  f"{colors.count(count)} versions")

    print(colors.success(f"Imported {total} package versions"))
    return 0


def cmd_repo_info(args, db: PackageDatabase) -> int:
    """Handle repo info command."""
    stats = db.get_catalog_stats()
    print(f"Database:         {db.db_path}")
    print(f"Packages:         {stats['packages']}")
    print(f"Package versions: {stats['versions']}")
    return 0


def cmd_check_dir(args, db: PackageDatabase) -> int:
    """Handle check-dir command."""
    from . import colors
    from ..core.resolver import Planner

    err = Planner(make_context(db)).check_installation_directory(args.directory)
    if err:
        print(colors.error(err))
        return 1
    print(colors.success(f"{args.directory} can be used"))
    return 0


def main(argv=None) -> int:
    """Main CLI entry point."""
    # Check required dependencies first
    missing = check_dependencies()
    if missing:
        print_missing_dependencies(missing)
        return 1

    parser = create_parser()
    args = parser.parse_args(argv)

    # Configure logging based on verbose flag
    if getattr(args, 'verbose', False):
        import logging
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(name)s - %(levelname)s - %(message)s',
            stream=sys.stderr
        )

    # Initialize color support
    from . import colors
    colors.init(nocolor=getattr(args, 'nocolor', False))

    # Initialize display mode
    from . import display
    if getattr(args, 'json', False):
        display.init(mode='json')
    elif getattr(args, 'flat', False):
        display.init(mode='flat')
    else:
        display.init(mode='columns')

    if not args.command:
        parser.print_help()
        return 1

    # Open database for command execution
    db = PackageDatabase()

    try:
        # Route to command handler
        if args.command in ('install', 'i'):
            return cmd_install(args, db)

        elif args.command in ('remove', 'erase', 'e'):
            return cmd_remove(args, db)

        elif args.command in ('update', 'u', 'up'):
            return cmd_update(args, db)

        elif args.command in ('list', 'l'):
            return cmd_list(args, db)

        elif args.command in ('info', 'show'):
            return cmd_info(args, db)

        elif args.command == 'repo':
            if args.repo_command == 'import':
                return cmd_repo_import(args, db)
            return cmd_repo_info(args, db)

        elif args.command == 'check-dir':
            return cmd_check_dir(args, db)

        parser.print_help()
        return 1

    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130

    except Exception as e:
        if args.verbose:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {e}")
        return 1

    finally:
        db.close()


if __name__ == '__main__':
    sys.exit(main())
