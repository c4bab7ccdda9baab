"""
Tests for resource handlers — probe / install / remove / repair per kind.
"""

import os
import stat
from pathlib import Path

import pytest

from pdkconverge.core.context import RunContext
from pdkconverge.core.errors import ExternalToolFailure, PermissionDenied
from pdkconverge.core.models.probe import ProbeStatus
from pdkconverge.core.models.resource import DesiredState, ManagedResource, ResourceKind
from pdkconverge.core.resources import handler_for
from pdkconverge.core.resources.base import run_commands

BEGIN = "# BEGIN SKY130 ENV"
END = "# END SKY130 ENV"
BODY = 'export PDK_ROOT="/opt/pdk/share/pdk"'


@pytest.fixture
def ctx(registry, tmp_path: Path, fast_retry) -> RunContext:
    return RunContext(
        registry=registry,
        variables={"workdir": str(tmp_path / "work")},
        retry=fast_retry,
        sleep=lambda s: None,
    )


def resource(kind, identifier, *, present=True, content=None, marker=None, **options) -> ManagedResource:
    needs_sudo = options.pop("needs_sudo", False)
    return ManagedResource(
        name=options.pop("name", "r"),
        kind=kind,
        identifier=str(identifier),
        needs_sudo=needs_sudo,
        desired=DesiredState(
            state="present" if present else "absent", content=content, marker=marker,
        ),
        options=options,
    )


def backups_of(path: Path) -> list[Path]:
    return sorted(path.parent.glob(path.name + ".bak.*"))


# ── Env blocks ───────────────────────────────────────────────────────


class TestEnvBlock:
    def _block(self, path, present=True):
        return resource(
            ResourceKind.ENV_BLOCK, path, present=present, content=BODY,
            legacy_patterns=[r"^\s*export\s+PDK_ROOT="],
        )

    def test_probe_missing_file(self, ctx, home):
        probe = handler_for(ResourceKind.ENV_BLOCK).probe(self._block(home / ".zshrc"), ctx)
        assert probe.status == ProbeStatus.ABSENT

    def test_install_backs_up_once_then_idempotent(self, ctx, home):
        rc = home / ".zshrc"
        rc.write_text("alias ll='ls -l'\n")
        handler = handler_for(ResourceKind.ENV_BLOCK)
        r = self._block(rc)

        handler.install(r, ctx)
        first = rc.read_bytes()
        assert handler.probe(r, ctx).is_present
        assert len(backups_of(rc)) == 1
        assert backups_of(rc)[0].read_text() == "alias ll='ls -l'\n"
        assert ctx.backups == backups_of(rc)

        handler.install(r, ctx)
        assert rc.read_bytes() == first
        assert len(backups_of(rc)) == 1

    def test_new_file_needs_no_backup(self, ctx, home):
        rc = home / ".zprofile"
        handler_for(ResourceKind.ENV_BLOCK).install(self._block(rc), ctx)
        assert rc.read_text() == f"{BEGIN}\n{BODY}\n{END}\n"
        assert backups_of(rc) == []

    def test_duplicate_blocks_are_divergent_and_repaired(self, ctx, home):
        rc = home / ".zshrc"
        rc.write_text(f"{BEGIN}\nexport PDK=a\n{END}\n{BEGIN}\nexport PDK=b\n{END}\n")
        handler = handler_for(ResourceKind.ENV_BLOCK)
        r = self._block(rc)
        probe = handler.probe(r, ctx)
        assert probe.status == ProbeStatus.DIVERGENT
        assert probe.detail == "2 blocks"

        handler.repair(r, ctx)
        assert rc.read_text().count(BEGIN) == 1
        assert handler.probe(r, ctx).is_present

    def test_legacy_export_is_stray(self, ctx, home):
        rc = home / ".zshrc"
        rc.write_text('export PDK_ROOT="/old"\n')
        probe = handler_for(ResourceKind.ENV_BLOCK).probe(self._block(rc), ctx)
        assert probe.status == ProbeStatus.DIVERGENT
        assert probe.detail == "stray lines outside the block"

    def test_remove_keeps_user_lines(self, ctx, home):
        rc = home / ".zshrc"
        rc.write_text(f"echo hi\n\n{BEGIN}\n{BODY}\n{END}\n")
        handler = handler_for(ResourceKind.ENV_BLOCK)
        r = self._block(rc, present=False)
        handler.remove(r, ctx)
        assert rc.read_text() == "echo hi\n"
        assert handler.probe(r, ctx).is_absent
        assert len(backups_of(rc)) == 1


# ── Config files ─────────────────────────────────────────────────────


class TestConfigFile:
    def test_full_content(self, ctx, home):
        path = home / ".config" / "sky130" / "rc_wrapper.tcl"
        handler = handler_for(ResourceKind.CONFIG_FILE)
        r = resource(ResourceKind.CONFIG_FILE, path, content="source x\n")
        assert handler.probe(r, ctx).is_absent
        handler.install(r, ctx)
        assert path.read_text() == "source x\n"
        assert handler.probe(r, ctx).is_present

        path.write_text("edited\n")
        probe = handler.probe(r, ctx)
        assert probe.status == ProbeStatus.DIVERGENT
        assert probe.detail == "content differs"

    def test_append_mode(self, ctx, home):
        path = home / ".spiceinit"
        path.write_text("set color0=white")
        handler = handler_for(ResourceKind.CONFIG_FILE)
        r = resource(
            ResourceKind.CONFIG_FILE, path, content="set ngbehavior=hsa\nset ng_nomodcheck\n",
            marker="ngbehavior", mode="append", user_owned=True,
        )
        assert handler.probe(r, ctx).status == ProbeStatus.DIVERGENT

        handler.install(r, ctx)
        assert path.read_text() == "set color0=white\nset ngbehavior=hsa\nset ng_nomodcheck\n"
        assert len(backups_of(path)) == 1

        handler.install(r, ctx)
        assert path.read_text().count("ngbehavior") == 1
        assert handler.probe(r, ctx).is_present

    def test_foreign_file_is_never_removed(self, ctx, home):
        path = home / ".magicrc"
        path.write_text("# my own magicrc\n")
        handler = handler_for(ResourceKind.CONFIG_FILE)
        r = resource(
            ResourceKind.CONFIG_FILE, path, present=False,
            owned_marker="SKY130A magicrc not found. Check PDK_ROOT.",
        )
        probe = handler.probe(r, ctx)
        assert probe.is_absent
        assert probe.evidence["foreign"] is True
        handler.remove(r, ctx)
        assert path.exists()

    def test_owned_file_removed_with_backup(self, ctx, home):
        path = home / ".magicrc"
        path.write_text('puts "SKY130A magicrc not found. Check PDK_ROOT."\n')
        r = resource(
            ResourceKind.CONFIG_FILE, path, present=False, user_owned=True,
            owned_marker="SKY130A magicrc not found. Check PDK_ROOT.",
        )
        handler_for(ResourceKind.CONFIG_FILE).remove(r, ctx)
        assert not path.exists()
        assert len(backups_of(path)) == 1


# ── Launchers ────────────────────────────────────────────────────────


class TestLauncher:
    SCRIPT = "#!/usr/bin/env bash\nexec magic \"$@\"\n"

    def test_install_user_writable(self, ctx, tmp_path: Path):
        path = tmp_path / "bin" / "magic-sky130"
        handler = handler_for(ResourceKind.LAUNCHER)
        r = resource(ResourceKind.LAUNCHER, path, content=self.SCRIPT, file_mode="755")
        handler.install(r, ctx)
        assert path.read_text() == self.SCRIPT
        assert stat.S_IMODE(path.stat().st_mode) == 0o755
        assert handler.probe(r, ctx).is_present

    def test_not_executable_is_divergent(self, ctx, tmp_path: Path):
        path = tmp_path / "magic-sky130"
        path.write_text(self.SCRIPT)
        os.chmod(path, 0o644)
        probe = handler_for(ResourceKind.LAUNCHER).probe(
            resource(ResourceKind.LAUNCHER, path, content=self.SCRIPT), ctx,
        )
        assert probe.status == ProbeStatus.DIVERGENT
        assert probe.detail == "not executable"

    def test_install_with_sudo(self, ctx, privilege, tmp_path: Path):
        path = tmp_path / "usr" / "local" / "bin" / "magic-sky130"
        r = resource(
            ResourceKind.LAUNCHER, path, content=self.SCRIPT, file_mode="755", needs_sudo=True,
        )
        handler_for(ResourceKind.LAUNCHER).install(r, ctx)
        assert privilege.commands[0] == ["install", "-d", "-m", "755", str(path.parent)]
        assert privilege.commands[1][:3] == ["install", "-m", "755"]
        assert privilege.commands[1][-1] == str(path)

    def test_install_with_sudo_refused(self, ctx, privilege, tmp_path: Path):
        privilege.grant = False
        r = resource(
            ResourceKind.LAUNCHER, tmp_path / "magic-sky130", content=self.SCRIPT, needs_sudo=True,
        )
        with pytest.raises(PermissionDenied):
            handler_for(ResourceKind.LAUNCHER).install(r, ctx)


# ── Directories ──────────────────────────────────────────────────────


class TestDirectory:
    def test_marker_missing_is_divergent(self, ctx, tmp_path: Path):
        path = tmp_path / "pdk" / "sky130A"
        path.mkdir(parents=True)
        r = resource(ResourceKind.DIRECTORY, path, marker="libs.tech/magic/sky130A.magicrc")
        probe = handler_for(ResourceKind.DIRECTORY).probe(r, ctx)
        assert probe.status == ProbeStatus.DIVERGENT

    def test_build_commands_run_in_workdir(self, ctx, runner, privilege, tmp_path: Path):
        r = resource(
            ResourceKind.DIRECTORY, tmp_path / "pdk",
            install_commands=[
                {"run": "mkdir -p /opt/pdk", "sudo": True},
                "git clone https://example.invalid/open_pdks.git",
                ["make", "-j4"],
            ],
        )
        handler_for(ResourceKind.DIRECTORY).install(r, ctx)
        assert (tmp_path / "work").is_dir()
        assert privilege.commands == [["/bin/bash", "-c", "mkdir -p /opt/pdk"]]
        assert runner.calls == [
            ["/bin/bash", "-c", "git clone https://example.invalid/open_pdks.git"],
            ["make", "-j4"],
        ]

    def test_build_stops_at_first_failure(self, ctx, runner, tmp_path: Path):
        runner.on("configure", returncode=2, output="checking for magic... no")
        r = resource(
            ResourceKind.DIRECTORY, tmp_path / "pdk",
            install_commands=["./configure", "make"],
        )
        with pytest.raises(ExternalToolFailure, match="checking for magic... no"):
            handler_for(ResourceKind.DIRECTORY).install(r, ctx)
        assert not runner.ran("make")

    def test_plain_directory_created_and_removed(self, ctx, tmp_path: Path):
        path = tmp_path / "cache"
        handler = handler_for(ResourceKind.DIRECTORY)
        handler.install(resource(ResourceKind.DIRECTORY, path), ctx)
        assert path.is_dir()
        (path / "file").write_text("x")
        handler.remove(resource(ResourceKind.DIRECTORY, path, present=False), ctx)
        assert not path.exists()

    def test_remove_with_sudo(self, ctx, privilege, tmp_path: Path):
        path = tmp_path / "pdk" / "sky130A"
        r = resource(ResourceKind.DIRECTORY, path, present=False, needs_sudo=True)
        handler_for(ResourceKind.DIRECTORY).remove(r, ctx)
        assert privilege.commands == [["rm", "-rf", str(path)]]


# ── Packages and managers ────────────────────────────────────────────


class TestPackage:
    def test_probe_present(self, ctx, ports):
        ports.installed["magic"] = "8.3.500_0"
        probe = handler_for(ResourceKind.PACKAGE).probe(
            resource(ResourceKind.PACKAGE, "magic", manager="macports"), ctx,
        )
        assert probe.is_present
        assert probe.version == "8.3.500_0"

    def test_name_match_is_exact(self, ctx, ports):
        ports.installed["Magic"] = "1"
        probe = handler_for(ResourceKind.PACKAGE).probe(
            resource(ResourceKind.PACKAGE, "magic", manager="macports"), ctx,
        )
        assert probe.is_absent

    def test_manager_missing_reads_absent(self, ctx, ports):
        ports.present = False
        probe = handler_for(ResourceKind.PACKAGE).probe(
            resource(ResourceKind.PACKAGE, "magic", manager="macports"), ctx,
        )
        assert probe.is_absent
        assert probe.detail == "macports not installed"

    def test_unregistered_manager_reads_absent(self, ctx):
        probe = handler_for(ResourceKind.PACKAGE).probe(
            resource(ResourceKind.PACKAGE, "xschem", manager="homebrew"), ctx,
        )
        assert probe.is_absent

    def test_version_mismatch_is_divergent(self, ctx, ports):
        ports.installed["magic"] = "8.3.400"
        r = ManagedResource(
            name="magic", kind=ResourceKind.PACKAGE, identifier="magic",
            desired=DesiredState(version="8.3.500"),
        )
        probe = handler_for(ResourceKind.PACKAGE).probe(r, ctx)
        assert probe.status == ProbeStatus.DIVERGENT
        assert probe.detail == "version 8.3.400, want 8.3.500"

    def test_install_forwards_options(self, ctx, ports):
        seen = {}
        original = ports.install

        def spy(package, **options):
            seen.update(options)
            original(package, **options)

        ports.install = spy
        r = resource(
            ResourceKind.PACKAGE, "magic", manager="macports",
            variants=["+x11"], enforce_variants=True, unrelated="x",
        )
        handler_for(ResourceKind.PACKAGE).install(r, ctx)
        assert seen == {"variants": ["+x11"], "enforce_variants": True}
        assert "magic" in ports.installed


class TestPackageManager:
    def test_bootstrap_when_missing(self, ctx, ports):
        ports.present = False
        handler = handler_for(ResourceKind.PACKAGE_MANAGER)
        r = resource(ResourceKind.PACKAGE_MANAGER, "macports")
        assert handler.probe(r, ctx).is_absent
        handler.install(r, ctx)
        assert ports.calls("bootstrap") == ["macports"]
        assert handler.probe(r, ctx).is_present

    def test_not_ready_is_divergent_and_repaired(self, ctx, ports):
        ports.ready = False
        handler = handler_for(ResourceKind.PACKAGE_MANAGER)
        r = resource(ResourceKind.PACKAGE_MANAGER, "macports")
        assert handler.probe(r, ctx).status == ProbeStatus.DIVERGENT
        handler.repair(r, ctx)
        assert ports.calls("repair") == ["macports"]
        assert handler.probe(r, ctx).is_present

    def test_never_removed(self, ctx):
        with pytest.raises(ExternalToolFailure):
            handler_for(ResourceKind.PACKAGE_MANAGER).remove(
                resource(ResourceKind.PACKAGE_MANAGER, "macports", present=False), ctx,
            )


# ── Display server ───────────────────────────────────────────────────


class TestDisplayServer:
    def test_install_runs_commands_then_restarts(self, ctx, display, privilege, runner):
        display.installed = False
        display.reachable = False
        runner.on("installer", effect=lambda: setattr(display, "installed", True))
        r = resource(
            ResourceKind.DISPLAY_SERVER, "XQuartz",
            install_commands=["curl -fL -o XQuartz.pkg https://example.invalid/x.pkg",
                              {"run": "installer -pkg XQuartz.pkg -target /", "sudo": True}],
        )
        # The fake broker records elevated commands without running them
        privilege.run_elevated = lambda cmd, cwd=None: runner.run(cmd)
        handler_for(ResourceKind.DISPLAY_SERVER).install(r, ctx)
        assert display.installed
        assert display.call_log == ["restart"]

    def test_unreachable_is_divergent_and_repair_resets(self, ctx, display):
        display.reachable = False
        handler = handler_for(ResourceKind.DISPLAY_SERVER)
        r = resource(ResourceKind.DISPLAY_SERVER, "XQuartz")
        assert handler.probe(r, ctx).status == ProbeStatus.DIVERGENT
        handler.repair(r, ctx)
        assert display.call_log == ["reset_preferences", "restart"]
        assert handler.probe(r, ctx).is_present


# ── Smoke tests ──────────────────────────────────────────────────────


class TestSmokeTest:
    def test_expected_output_present(self, ctx, runner):
        runner.on("magic", output=">>> smoke: tech=sky130A")
        r = resource(ResourceKind.SMOKE_TEST, "headless", command="magic -dnull", expect=">>> smoke")
        assert handler_for(ResourceKind.SMOKE_TEST).probe(r, ctx).is_present

    def test_expected_output_missing(self, ctx, runner):
        runner.on("magic", output="Error: tech not found")
        r = resource(ResourceKind.SMOKE_TEST, "headless", command="magic -dnull", expect=">>> smoke")
        probe = handler_for(ResourceKind.SMOKE_TEST).probe(r, ctx)
        assert probe.status == ProbeStatus.DIVERGENT
        assert "missing" in probe.detail

    def test_failing_command(self, ctx, runner):
        runner.on("magic", returncode=1, output="couldn't open display")
        r = resource(ResourceKind.SMOKE_TEST, "gui", command="magic -d X11", expect=">>> smoke")
        probe = handler_for(ResourceKind.SMOKE_TEST).probe(r, ctx)
        assert probe.detail == "exit 1: couldn't open display"

    def test_gui_repair_resets_display(self, ctx, display):
        r = resource(ResourceKind.SMOKE_TEST, "gui", command="magic", gui=True)
        handler_for(ResourceKind.SMOKE_TEST).repair(r, ctx)
        assert display.call_log == ["reset_preferences", "restart"]

    def test_headless_repair_touches_nothing(self, ctx, display):
        r = resource(ResourceKind.SMOKE_TEST, "headless", command="magic")
        handler_for(ResourceKind.SMOKE_TEST).repair(r, ctx)
        assert display.call_log == []

    def test_check_is_left_to_verify(self, ctx, display):
        r = resource(ResourceKind.SMOKE_TEST, "gui", command="magic", gui=True)
        handler = handler_for(ResourceKind.SMOKE_TEST)
        assert handler.check_only
        handler.install(r, ctx)
        assert display.call_log == []


# ── Command helper ───────────────────────────────────────────────────


class TestRunCommands:
    def test_mixed_entries(self, ctx, runner, privilege):
        run_commands(ctx, ["echo a", ["echo", "b"], {"run": "echo c", "sudo": True}], label="t")
        assert [c[-1] for c in runner.calls] == ["echo a", "b"]
        assert privilege.commands == [["/bin/bash", "-c", "echo c"]]

    def test_elevated_default_with_override(self, ctx, runner, privilege):
        run_commands(ctx, ["echo a", {"run": "echo b", "sudo": False}], label="t", elevated=True)
        assert privilege.commands == [["/bin/bash", "-c", "echo a"]]
        assert runner.calls == [["/bin/bash", "-c", "echo b"]]
