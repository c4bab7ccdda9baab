"""
Shared test fixtures and configuration.

Every run-level test works against fake host adapters (package
managers, sudo, display server, command runner) and the real local
filesystem under ``tmp_path``.
"""

import textwrap
from pathlib import Path

import pytest

from pdkconverge.adapters.mock import (
    FakeDisplayServer,
    FakePackageManager,
    FakePrivilegeBroker,
    FakeRunner,
)
from pdkconverge.adapters.registry import AdapterRegistry
from pdkconverge.adapters.shell.filesystem import LocalFilesystem
from pdkconverge.core.reliability.retry import RetryPolicy


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Three attempts, no waiting."""
    return RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=0.0)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def privilege() -> FakePrivilegeBroker:
    return FakePrivilegeBroker()


@pytest.fixture
def display() -> FakeDisplayServer:
    return FakeDisplayServer()


@pytest.fixture
def ports(privilege: FakePrivilegeBroker) -> FakePackageManager:
    """A working MacPorts with nothing installed."""
    return FakePackageManager("macports", privilege=privilege)


@pytest.fixture
def registry(runner, privilege, display, ports) -> AdapterRegistry:
    reg = AdapterRegistry(
        filesystem=LocalFilesystem(),
        runner=runner,
        privilege=privilege,
        display=display,
    )
    reg.register(ports)
    return reg


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Stand-in home directory for user files."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def pdk_prefix(tmp_path: Path) -> Path:
    return tmp_path / "pdk"


def settings_yaml(tmp_path: Path, home: Path, prefix: Path) -> str:
    """Settings block pointing every path into ``tmp_path``."""
    return textwrap.dedent(f"""\
        settings:
          pdk: sky130A
          default_prefix: {prefix}
          search_paths:
            - {home}/eda/pdks
            - {home}/eda
          config_dir: {home}/.config/sky130
          workdir: {tmp_path}/work
          log_dir: {tmp_path}/logs
        """)


@pytest.fixture
def write_manifest(tmp_path: Path, home: Path, pdk_prefix: Path):
    """Write a manifest with the shared settings and the given resources YAML."""

    def _write(resources: str, name: str = "manifest.yml") -> Path:
        body = "version: 1\nname: test\n"
        body += settings_yaml(tmp_path, home, pdk_prefix)
        body += "resources:\n" + textwrap.indent(textwrap.dedent(resources), "  ")
        path = tmp_path / name
        path.write_text(body)
        return path

    return _write


@pytest.fixture
def make_pdk():
    """Create a fake installed PDK under ``prefix/share/pdk``; returns the root."""

    def _make(prefix: Path, pdk: str = "sky130A") -> Path:
        root = prefix / "share" / "pdk"
        rc = root / pdk / "libs.tech" / "magic" / f"{pdk}.magicrc"
        rc.parent.mkdir(parents=True)
        rc.write_text("# magicrc\n")
        return root

    return _make
