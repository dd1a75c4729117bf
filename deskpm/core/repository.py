"""
In-memory package repository

Loads the repository XML format:

    <root>
        <spec-version>3</spec-version>
        <package name="org.example.Editor">
            <title>Example Editor</title>
            <category>Development/Editors</category>
        </package>
        <version name="2.1" package="org.example.Editor" type="zip">
            <url>https://example.org/editor-2.1.zip</url>
            <hash-sum type="SHA-256">3b1f...</hash-sum>
            <dependency package="org.example.Runtime">
                <versions>[1.0, 2.0)</versions>
            </dependency>
            <important-file path="bin/editor" title="Editor"/>
        </version>
    </root>

Repository files may be compressed (gzip, xz, bzip2, zstd).
"""

import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Union
from xml.etree import ElementTree

from .catalog import Catalog
from .compression import decompress_bytes
from .errors import ErrorKind, PackageError
from .models import (
    DetectFile, Download, HashType, ImportantFile, Package, PackageType,
    PackageVersion, validate_full_package_name,
)
from .version import Dependency, Version

logger = logging.getLogger(__name__)

# Repository format versions >= this one are not understood
UNSUPPORTED_SPEC_VERSION = Version("4")

HASH_TYPES = {
    'SHA-1': HashType.SHA1,
    'SHA1': HashType.SHA1,
    'SHA-256': HashType.SHA256,
    'SHA256': HashType.SHA256,
}


def _invalid(message: str) -> PackageError:
    return PackageError(ErrorKind.INVALID, message)


def _text(elem: ElementTree.Element, tag: str) -> str:
    child = elem.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def check_spec_version(spec_version: str):
    """Reject repository formats this code does not understand.

    Raises:
        PackageError: INVALID for unparsable or too new versions
    """
    try:
        version = Version(spec_version)
    except ValueError:
        raise _invalid(f"Invalid repository specification version: {spec_version}")
    if version >= UNSUPPORTED_SPEC_VERSION:
        raise _invalid(f"Incompatible repository specification version: {spec_version}. "
                       f"Please update deskpm")


def check_category(category: str) -> str:
    """Normalize a category path like " Development / Editors ".

    Raises:
        PackageError: INVALID for empty categories or sub-categories
    """
    c = category.strip()
    if not c:
        raise _invalid("Empty category tag")
    parts = [p.strip() for p in c.split('/')]
    if any(not p for p in parts):
        raise _invalid("Empty sub-category")
    return '/'.join(parts)


def parse_package(elem: ElementTree.Element) -> Package:
    """Create a Package from a <package> element."""
    name = (elem.get('name') or '').strip()
    err = validate_full_package_name(name)
    if err:
        raise _invalid(f"Error in attribute 'name' in <package>: {err}")

    package = Package(
        name=name,
        title=_text(elem, 'title'),
        url=_text(elem, 'url'),
        description=_text(elem, 'description'),
        license=_text(elem, 'license'),
        icon=_text(elem, 'icon'),
    )

    if package.icon and not package.icon.startswith(('http://', 'https://')):
        raise _invalid(f"Invalid icon URL for {package.title}: {package.icon}")

    for cat_elem in elem.findall('category'):
        try:
            category = check_category(cat_elem.text or '')
        except PackageError as e:
            raise _invalid(f"Error in category tag for {package.title}: {e}")
        if category in package.categories:
            raise _invalid(f"More than one <category> {category} for {package.title}")
        package.categories.append(category)

    return package


def parse_package_version(elem: ElementTree.Element) -> PackageVersion:
    """Create a PackageVersion from a <version> element."""
    package = (elem.get('package') or '').strip()
    err = validate_full_package_name(package)
    if err:
        raise _invalid(f"Error in attribute 'package' in <version>: {err}")

    try:
        version = Version(elem.get('name') or '1.0')
    except ValueError as e:
        raise _invalid(f"Error in attribute 'name' in <version> for {package}: {e}")

    type_name = (elem.get('type') or 'zip').strip()
    try:
        pkg_type = PackageType(type_name)
    except ValueError:
        raise _invalid(f"Wrong value for the attribute 'type' for {package} {version}: {type_name}")

    download = Download(url=_text(elem, 'url'))
    sha1 = _text(elem, 'sha1')
    hash_elem = elem.find('hash-sum')
    if hash_elem is not None:
        hash_name = (hash_elem.get('type') or 'SHA-256').upper()
        if hash_name not in HASH_TYPES:
            raise _invalid(f"Unknown hash sum type for {package} {version}: {hash_name}")
        download.hash_type = HASH_TYPES[hash_name]
        download.hash_sum = (hash_elem.text or '').strip().lower()
    elif sha1:
        download.hash_type = HashType.SHA1
        download.hash_sum = sha1.lower()

    if download.url and not download.is_valid():
        raise _invalid(f"Not a valid download URL for {package} {version}: {download.url}")

    pv = PackageVersion(package=package, version=version, download=download,
                        type=pkg_type, msi_guid=_text(elem, 'msi-guid').lower())

    for dep_elem in elem.findall('dependency'):
        dep_package = (dep_elem.get('package') or '').strip()
        err = validate_full_package_name(dep_package)
        if err:
            raise _invalid(f"Error in attribute 'package' in <dependency> for {pv}: {err}")
        try:
            dep = Dependency.parse(dep_package, _text(dep_elem, 'versions'))
        except ValueError as e:
            raise _invalid(f"Error in <dependency> for {pv}: {e}")
        pv.dependencies.append(dep)

    for file_elem in elem.findall('important-file'):
        path = (file_elem.get('path') or '').strip()
        if not path:
            raise _invalid(f"Empty 'path' attribute value for <important-file> for {pv}")
        pv.important_files.append(ImportantFile(path=path, title=(file_elem.get('title') or '').strip()))

    for detect_elem in elem.findall('detect-file'):
        pv.detect_files.append(DetectFile(path=_text(detect_elem, 'path'),
                                          sha1=_text(detect_elem, 'sha1').lower()))

    return pv


class Repository(Catalog):
    """Catalog held in memory, usually loaded from repository XML files."""

    def __init__(self):
        self.packages: List[Package] = []
        self.package_versions: List[PackageVersion] = []
        self._package2versions: Dict[str, List[PackageVersion]] = defaultdict(list)

    # =========================================================================
    # Building
    # =========================================================================

    def add_package(self, package: Package) -> bool:
        """Add a package. Returns False if one with the same name exists."""
        if self._find_package(package.name) is not None:
            return False
        self.packages.append(package)
        return True

    def add_package_version(self, pv: PackageVersion) -> bool:
        """Add a package version. Returns False for duplicates."""
        if self._find_package_version(pv.package, pv.version) is not None:
            return False
        self.package_versions.append(pv)
        self._package2versions[pv.package].append(pv)
        return True

    def load_string(self, xml: Union[str, bytes]) -> int:
        """Load packages and versions from repository XML.

        Returns:
            Number of package versions added

        Raises:
            PackageError: INVALID if the document is malformed
        """
        try:
            root = ElementTree.fromstring(xml)
        except ElementTree.ParseError as e:
            line, column = e.position
            raise _invalid(f"XML parsing failed at line {line}, column {column}: {e}")

        spec_version = _text(root, 'spec-version')
        if spec_version:
            check_spec_version(spec_version)

        added = 0
        for elem in root:
            if elem.tag == 'package':
                if not self.add_package(parse_package(elem)):
                    logger.debug(f"Ignoring duplicate package {elem.get('name')}")
            elif elem.tag == 'version':
                if self.add_package_version(parse_package_version(elem)):
                    added += 1
                else:
                    logger.debug(f"Ignoring duplicate version {elem.get('package')} {elem.get('name')}")

        # Versions may reference packages that have no <package> entry
        for name in list(self._package2versions):
            if self._find_package(name) is None:
                self.packages.append(Package(name=name))

        logger.info(f"Loaded {added} package versions, {len(self.packages)} packages total")
        return added

    def load(self, path: Union[str, Path]) -> int:
        """Load a (possibly compressed) repository file."""
        path = Path(path)
        try:
            data = decompress_bytes(path.read_bytes())
        except OSError as e:
            raise _invalid(f"Cannot open {path}: {e}")
        return self.load_string(data)

    # =========================================================================
    # Catalog queries
    # =========================================================================

    def _find_package(self, name: str) -> Optional[Package]:
        for p in self.packages:
            if p.name == name:
                return p
        return None

    def _find_package_version(self, package: str, version: Version) -> Optional[PackageVersion]:
        for pv in self._package2versions.get(package, []):
            if pv.version == version:
                return pv
        return None

    def find_package(self, name: str) -> Optional[Package]:
        p = self._find_package(name)
        return p.clone() if p else None

    def find_package_versions(self, package: str) -> List[PackageVersion]:
        pvs = sorted(self._package2versions.get(package, []), key=lambda pv: pv.version)
        return [pv.clone() for pv in pvs]

    def find_package_version(self, package: str, version: Version) -> Optional[PackageVersion]:
        pv = self._find_package_version(package, version)
        return pv.clone() if pv else None

    def find_packages_by_short_name(self, short_name: str) -> List[Package]:
        return [p.clone() for p in self.packages if p.get_short_name() == short_name]
