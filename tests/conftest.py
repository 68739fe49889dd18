"""
Shared fixtures: ZIP builders and a small distribution laid out on disk.

The distribution fixture mirrors a real installation:

    dist/
        distribution.json
        config/config.json
        public/
            index.php, obsolete.php, application/Module.php (core 1.9.0)
            config/, files/, logs/          preserved subtrees
            modules/alpha (1.1)
            themes/default (1.0, not in the manifest)
"""

import json
import logging
import zipfile
from pathlib import Path
from types import SimpleNamespace

import pytest

from distupdates.utils.index import LOGGER_NAME


def core_module_php(version):
    return ("<?php\nnamespace Omeka;\n\nclass Module\n{\n"
            f"    const VERSION = '{version}';\n}}\n").encode()


def component_ini(name, version):
    return f'[info]\nname = "{name}"\nversion = "{version}"\n'.encode()


def snapshot(directory):
    """Map every path under directory to its bytes (None for directories)."""
    root = Path(directory)
    return {
        path.relative_to(root).as_posix(): None if path.is_dir() else path.read_bytes()
        for path in sorted(root.rglob("*"))
    }


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True


@pytest.fixture
def make_zip(tmp_path):
    """Build a ZIP under tmp_path/archives; a None value makes a directory entry."""
    archive_dir = tmp_path / "archives"

    def _make(name, entries):
        archive_dir.mkdir(exist_ok=True)
        path = archive_dir / name
        with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
            for member, data in entries.items():
                if data is None:
                    zf.writestr(member.rstrip("/") + "/", b"")
                else:
                    zf.writestr(member, data)
        return path

    return _make


@pytest.fixture
def corrupt_zip(tmp_path):
    archive_dir = tmp_path / "archives"
    archive_dir.mkdir(exist_ok=True)
    path = archive_dir / "corrupt.zip"
    path.write_bytes(b"this is not a zip archive")
    return path


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


@pytest.fixture
def distribution(tmp_path, make_zip):
    root = tmp_path / "dist"
    public = root / "public"

    _write(public / "index.php", b"<?php // 1.9.0\n")
    _write(public / "obsolete.php", b"<?php // removed in 2.0.0\n")
    _write(public / "application" / "Module.php", core_module_php("1.9.0"))
    _write(public / "config" / "local.config.php", b"<?php return ['site' => 'kept'];\n")
    _write(public / "files" / "original" / "photo.jpg", b"\xff\xd8\xff\xe0 jpeg bytes")
    _write(public / "logs" / "application.log", b"old log line\n")
    _write(public / "modules" / "alpha" / "config" / "module.ini", component_ini("Alpha", "1.1"))
    _write(public / "modules" / "alpha" / "Module.php", b"<?php // alpha 1.1\n")
    _write(public / "modules" / "alpha" / "removed_in_1_2.php", b"<?php // gone after update\n")
    _write(public / "themes" / "default" / "config" / "theme.ini", component_ini("Default", "1.0"))

    archives = SimpleNamespace(
        core=make_zip("core-2.0.0.zip", {
            "omeka-s/": None,
            "omeka-s/index.php": b"<?php // 2.0.0\n",
            "omeka-s/application/Module.php": core_module_php("2.0.0"),
            "omeka-s/vendor/autoload.php": b"<?php // autoload\n",
            "omeka-s/config/database.ini": b'user = ""\n',
            "omeka-s/modules/": None,
        }),
        alpha=make_zip("alpha-1.2.zip", {
            "alpha/": None,
            "alpha/config/module.ini": component_ini("Alpha", "1.2"),
            "alpha/Module.php": b"<?php // alpha 1.2\n",
        }),
        beta=make_zip("beta-3.0.zip", {
            "beta/config/module.ini": component_ini("Beta", "3.0"),
            "beta/Module.php": b"<?php // beta 3.0\n",
        }),
        dusk=make_zip("dusk-0.5.zip", {
            "dusk/config/theme.ini": component_ini("Dusk", "0.5"),
            "dusk/view/layout.phtml": b"<html></html>\n",
        }),
    )

    manifest_data = {
        "core": {"version": "2.0.0", "url": archives.core.as_uri()},
        "modules": [
            {"name": "alpha", "version": "1.2", "url": archives.alpha.as_uri()},
            {"name": "beta", "version": "3.0", "url": archives.beta.as_uri()},
        ],
        "themes": [],
    }
    manifest_path = root / "distribution.json"
    manifest_path.write_text(json.dumps(manifest_data))

    config_data = {
        "admin": {"email": "admin@example.com", "password": "secret"},
        "updater": {"scratch_dir": "scratch"},
    }
    config_path = root / "config" / "config.json"
    config_path.parent.mkdir(parents=True)
    config_path.write_text(json.dumps(config_data))

    def write_manifest(data):
        manifest_path.write_text(json.dumps(data))

    def write_config(data):
        config_path.write_text(json.dumps(data))

    return SimpleNamespace(
        root=root,
        public=public,
        archives=archives,
        manifest_data=manifest_data,
        manifest_path=manifest_path,
        config_path=config_path,
        scratch=root / "scratch",
        write_manifest=write_manifest,
        write_config=write_config,
    )
