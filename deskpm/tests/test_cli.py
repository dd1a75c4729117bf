"""Tests for CLI"""

import json
import zipfile

import pytest

from deskpm.cli.main import create_parser, get_close_type, main, parse_package_spec
from deskpm.core import config
from deskpm.core.errors import PackageError
from deskpm.core.hooks import CloseType
from deskpm.core.version import Version


class TestParser:
    """Tests for argument parser."""

    def test_version_flag(self):
        parser = create_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(['--version'])

    def test_install_command(self):
        parser = create_parser()
        args = parser.parse_args(['install', 'org.example.Editor', 'Runtime@1.5'])
        assert args.command == 'install'
        assert args.packages == ['org.example.Editor', 'Runtime@1.5']

    def test_install_alias(self):
        parser = create_parser()
        args = parser.parse_args(['i', 'Editor'])
        assert args.command == 'i'
        assert args.packages == ['Editor']

    def test_install_with_flags(self):
        parser = create_parser()
        args = parser.parse_args(['install', '-y', '--test', '--dir', '/opt/ed', 'Editor'])
        assert args.auto is True
        assert args.test is True
        assert args.dir == '/opt/ed'

    def test_remove_aliases(self):
        parser = create_parser()
        for alias in ('remove', 'erase', 'e'):
            args = parser.parse_args([alias, 'Editor'])
            assert args.command == alias

    def test_update_command(self):
        parser = create_parser()
        args = parser.parse_args(['update', '--all', '-k'])
        assert args.all is True
        assert args.keep_directories is True
        assert args.packages == []

    def test_list_filter(self):
        parser = create_parser()
        assert parser.parse_args(['list']).filter == 'installed'
        assert parser.parse_args(['l', 'updates']).filter == 'updates'

    def test_repo_import(self):
        parser = create_parser()
        args = parser.parse_args(['repo', 'import', 'a.xml', 'b.xml.gz', '--clear'])
        assert args.repo_command == 'import'
        assert args.files == ['a.xml', 'b.xml.gz']
        assert args.clear is True

    def test_close_type(self):
        parser = create_parser()
        assert get_close_type(parser.parse_args(['list'])) == CloseType.CLOSE_WINDOW
        both = get_close_type(parser.parse_args(['--close-type', 'both', 'list']))
        assert both == CloseType.CLOSE_WINDOW | CloseType.KILL_PROCESS


class TestPackageSpec:

    def test_name_only(self):
        assert parse_package_spec("Editor") == ("Editor", None)

    def test_with_version(self):
        assert parse_package_spec("Editor@2.1") == ("Editor", Version("2.1"))

    def test_bad_version(self):
        with pytest.raises(PackageError):
            parse_package_spec("Editor@x.y")


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Isolated base directory with a repository of two zip packages."""
    monkeypatch.setenv(config.ENV_BASE_DIR, str(tmp_path / "base"))
    monkeypatch.delenv(config.ENV_INSTALL_ROOT, raising=False)
    config.reset_cache()

    archives = tmp_path / "archives"
    archives.mkdir()
    versions = []
    for package, version, dep in (
            ("org.example.Runtime", "1.5", None),
            ("org.example.Editor", "1.0", ("org.example.Runtime", "[1.0, 2.0)")),
            ("org.example.Editor", "2.0", ("org.example.Runtime", "[1.0, 2.0)"))):
        archive = archives / f"{package}-{version}.zip"
        with zipfile.ZipFile(archive, 'w') as zf:
            zf.writestr("README", f"{package} {version}\n")
        dep_xml = ""
        if dep:
            dep_xml = (f'<dependency package="{dep[0]}">'
                       f'<versions>{dep[1]}</versions></dependency>')
        versions.append(f'<version name="{version}" package="{package}">'
                        f'<url>{archive.as_uri()}</url>{dep_xml}</version>')

    repo = tmp_path / "repository.xml"
    repo.write_text(
        "<root><spec-version>3</spec-version>"
        '<package name="org.example.Editor"><title>Example Editor</title></package>'
        + "".join(versions) + "</root>"
    )
    yield tmp_path, repo
    config.reset_cache()


class TestCommands:
    """End-to-end command runs against a temporary base directory."""

    def test_install_list_remove(self, workspace, capsys):
        tmp_path, repo = workspace
        apps = tmp_path / "base" / "apps"

        assert main(['-q', 'repo', 'import', str(repo)]) == 0
        assert main(['-q', 'install', '-y', 'Editor@1.0']) == 0
        assert (apps / "Editor" / "README").is_file()
        assert (apps / "Runtime" / "README").is_file()

        capsys.readouterr()
        assert main(['list', '--json']) == 0
        rows = json.loads(capsys.readouterr().out)
        assert [row[0] for row in rows] == ["org.example.Editor", "org.example.Runtime"]

        assert main(['-q', 'remove', '-y', 'Runtime']) == 0
        assert not (apps / "Editor").exists()
        assert not (apps / "Runtime").exists()

    def test_update(self, workspace):
        tmp_path, repo = workspace
        apps = tmp_path / "base" / "apps"

        main(['-q', 'repo', 'import', str(repo)])
        assert main(['-q', 'install', '-y', 'Editor@1.0']) == 0
        assert main(['-q', 'update', '-y', 'Editor']) == 0
        assert (apps / "Editor" / "README").read_text() == "org.example.Editor 2.0\n"

    def test_dry_run(self, workspace, capsys):
        tmp_path, repo = workspace
        main(['-q', 'repo', 'import', str(repo)])
        capsys.readouterr()

        assert main(['install', '--test', '--json', 'Editor']) == 0
        out = json.loads(capsys.readouterr().out)
        assert out['success'] is True
        assert [op['package'] for op in out['operations']] == \
            ["org.example.Runtime", "org.example.Editor"]
        assert not (tmp_path / "base" / "apps").exists()

    def test_unknown_package(self, workspace, capsys):
        _, repo = workspace
        main(['-q', 'repo', 'import', str(repo)])
        assert main(['install', '-y', 'Nothing']) == 1
        assert "Unknown package" in capsys.readouterr().out

    def test_check_dir(self, workspace, capsys):
        tmp_path, _ = workspace
        assert main(['check-dir', str(tmp_path)]) == 0
        assert main(['check-dir', str(tmp_path / "missing")]) == 1
