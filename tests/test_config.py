"""
Tests for config loading, template rendering and the resource catalog.
"""

from pathlib import Path

import pytest

from pdkconverge.core.config.loader import (
    DEFAULT_MANIFEST,
    MANIFEST_ENV,
    ConfigError,
    find_manifest,
    load_manifest,
)
from pdkconverge.core.config.templating import (
    builtin_variables,
    render_template,
    render_value,
    shell_export_line,
)
from pdkconverge.core.engine import envblock
from pdkconverge.core.models.probe import InstallRoot
from pdkconverge.core.models.resource import ResourceKind
from pdkconverge.core.services.catalog import (
    base_variables,
    build_resources,
    env_block_body,
    run_variables,
)

# ── Loader ───────────────────────────────────────────────────────────


class TestLoader:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_manifest(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yml"
        path.write_text("resources: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_manifest(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_manifest(path)

    def test_schema_error(self, tmp_path: Path):
        path = tmp_path / "schema.yml"
        path.write_text("resources:\n  - name: x\n    kind: bogus\n    identifier: x\n")
        with pytest.raises(ConfigError, match="Invalid manifest"):
            load_manifest(path)

    def test_duplicate_names(self, write_manifest):
        path = write_manifest("""\
            - {name: a, kind: package, identifier: a}
            - {name: a, kind: package, identifier: b}
            """)
        with pytest.raises(ConfigError, match="Duplicate"):
            load_manifest(path)

    def test_unknown_dependency(self, write_manifest):
        path = write_manifest("""\
            - {name: a, kind: package, identifier: a, depends_on: [ghost]}
            """)
        with pytest.raises(ConfigError, match="unknown resource 'ghost'"):
            load_manifest(path)

    def test_find_manifest_precedence(self, tmp_path: Path, monkeypatch):
        explicit = tmp_path / "explicit.yml"
        monkeypatch.setenv(MANIFEST_ENV, str(tmp_path / "env.yml"))
        assert find_manifest(explicit) == explicit
        assert find_manifest() == tmp_path / "env.yml"
        monkeypatch.delenv(MANIFEST_ENV)
        assert find_manifest() == DEFAULT_MANIFEST

    def test_bundled_manifest_loads(self, monkeypatch):
        monkeypatch.delenv(MANIFEST_ENV, raising=False)
        manifest = load_manifest()
        names = {d.name for d in manifest.resources}
        assert {"macports", "port-magic", "pdk", "env-zshrc", "magic-launcher"} <= names
        assert manifest.settings.pdk == "sky130A"

    def test_bundled_manifest_renders_both_flows(self, monkeypatch):
        monkeypatch.delenv(MANIFEST_ENV, raising=False)
        manifest = load_manifest()
        root = InstallRoot(path="/opt/pdk/share/pdk", prefix="/opt/pdk", source="default", found=False)
        variables = run_variables(manifest.settings, root)
        install = build_resources(manifest, "install", variables)
        uninstall = build_resources(manifest, "uninstall", variables)
        assert any(r.name == "smoke-headless" for r in install)
        assert not any(r.name == "smoke-headless" for r in uninstall)
        assert all(not r.depends_on for r in uninstall)
        pdk = next(r for r in install if r.name == "pdk")
        assert pdk.identifier == "/opt/pdk/share/pdk/sky130A"

    @pytest.fixture
    def bundled(self, monkeypatch):
        monkeypatch.delenv(MANIFEST_ENV, raising=False)
        manifest = load_manifest()
        root = InstallRoot(path="/opt/pdk/share/pdk", prefix="/opt/pdk", source="default", found=False)
        variables = run_variables(manifest.settings, root)

        def _flow(flow):
            return {r.name: r for r in build_resources(manifest, flow, variables)}

        return _flow

    def test_bundled_command_line_tools_come_first(self, bundled):
        install = bundled("install")
        clt = install["xcode-clt"]
        assert clt.kind == ResourceKind.DIRECTORY
        assert clt.root
        assert clt.identifier == "/Library/Developer/CommandLineTools"
        assert "xcode-clt" in install["macports"].depends_on
        assert "xcode-clt" not in bundled("uninstall")

    def test_bundled_schematic_and_layout_tools(self, bundled):
        install = bundled("install")
        for name in ("port-xschem", "port-klayout"):
            assert install[name].kind == ResourceKind.PACKAGE
            assert {"macports", "xquartz"} <= set(install[name].depends_on)
            assert name in bundled("uninstall")

    def test_bundled_env_blocks_wait_for_pdk(self, bundled):
        install = bundled("install")
        for name in ("env-zprofile", "env-zshrc"):
            assert install[name].depends_on == ["pdk"]

    def test_bundled_uninstall_cleans_every_startup_file(self, bundled):
        uninstall = bundled("uninstall")
        home = Path.home()
        for name, rc in [
            ("env-zshenv", ".zshenv"),
            ("env-bashrc", ".bashrc"),
            ("env-bash-profile", ".bash_profile"),
            ("env-profile", ".profile"),
        ]:
            assert uninstall[name].kind == ResourceKind.ENV_BLOCK
            assert uninstall[name].identifier == str(home / rc)
            assert name not in bundled("install")

        patterns = uninstall["env-bashrc"].opt("legacy_patterns")
        text = (
            "alias ll='ls -l'\n"
            "export PDK_ROOT=$HOME/.eda/sky130/pdks\n"
            "export PATH=\"$HOME/.eda/sky130/bin:$PATH\"\n"
            "alias xschem=$HOME/.eda/sky130/bin/xschem\n"
            "# Added by 05_env_activate.sh (EDA toolchain)\n"
            "[ -f \"$HOME/.eda/sky130_dev/activate\" ] && source \"$HOME/.eda/sky130_dev/activate\"\n"
        )
        cleaned = envblock.strip_blocks(text, "# BEGIN SKY130 ENV", "# END SKY130 ENV", patterns)
        assert cleaned == "alias ll='ls -l'\n"


# ── Templating ───────────────────────────────────────────────────────


class TestTemplating:
    def test_builtins(self):
        v = builtin_variables()
        assert {"user", "home", "arch", "nproc"} <= set(v)
        assert int(v["nproc"]) >= 1

    def test_render_known_keys_only(self):
        out = render_template("{pdk_root}/{pdk} ${PDK} {![info exists env(PDK)]}", {
            "pdk_root": "/opt/pdk/share/pdk", "pdk": "sky130A",
        })
        assert out == "/opt/pdk/share/pdk/sky130A ${PDK} {![info exists env(PDK)]}"

    def test_render_value_nested(self):
        value = {"cmds": ["make -j{nproc}", {"run": "cd {dir}", "sudo": True}]}
        out = render_value(value, {"nproc": "8", "dir": "/w"})
        assert out == {"cmds": ["make -j8", {"run": "cd /w", "sudo": True}]}

    def test_export_lines(self):
        assert shell_export_line("PDK", "sky130A") == 'export PDK="sky130A"'
        assert shell_export_line("PDK", "sky130A", "fish") == "set -gx PDK sky130A"


# ── Catalog ──────────────────────────────────────────────────────────


class TestCatalog:
    def test_base_variables_render_settings(self, write_manifest, tmp_path: Path):
        manifest = load_manifest(write_manifest("[]\n"))
        v = base_variables(manifest.settings)
        assert v["pdk"] == "sky130A"
        assert v["workdir"] == f"{tmp_path}/work"
        assert v["manager_prefix"] == "/opt/local"

    def test_env_block_body_from_exports(self, write_manifest):
        manifest = load_manifest(write_manifest("""\
            - name: env
              kind: env-block
              identifier: ~/.zshrc
              exports:
                PDK_ROOT: "{pdk_root}"
                PDK: "{pdk}"
              lines:
                - 'export PATH="/opt/local/bin:$PATH"'
            """))
        decl = manifest.get("env")
        body = env_block_body(decl, {"pdk_root": "/r", "pdk": "sky130A"})
        assert body == (
            'export PDK_ROOT="/r"\n'
            'export PDK="sky130A"\n'
            'export PATH="/opt/local/bin:$PATH"'
        )

    def test_build_resources_install(self, write_manifest, home: Path):
        manifest = load_manifest(write_manifest(f"""\
            - {{name: mgr, kind: package-manager, identifier: fake}}
            - {{name: rc, kind: config-file, identifier: "{home}/rc.tcl", content: "root={{pdk_root}}\\n", depends_on: [mgr]}}
            - {{name: old, kind: package, identifier: old, flows: [uninstall]}}
            """))
        root = InstallRoot(path="/p/share/pdk", prefix="/p", source="prefix")
        resources = build_resources(manifest, "install", run_variables(manifest.settings, root))
        assert [r.name for r in resources] == ["mgr", "rc"]
        rc = resources[1]
        assert rc.desired.content == "root=/p/share/pdk\n"
        assert rc.desired.present
        assert rc.depends_on == ["mgr"]

    def test_build_resources_uninstall(self, write_manifest):
        manifest = load_manifest(write_manifest("""\
            - {name: mgr, kind: package-manager, identifier: fake, flows: [install]}
            - {name: pkg, kind: package, identifier: magic, depends_on: [mgr]}
            """))
        root = InstallRoot(path="/p/share/pdk", prefix="/p", source="prefix")
        resources = build_resources(manifest, "uninstall", run_variables(manifest.settings, root))
        assert [r.name for r in resources] == ["pkg"]
        assert not resources[0].desired.present
        assert resources[0].depends_on == []

    def test_user_paths_expanded(self, write_manifest, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("HOME", str(tmp_path))
        manifest = load_manifest(write_manifest("""\
            - {name: env, kind: env-block, identifier: ~/.zshrc, exports: {PDK: x}}
            """))
        root = InstallRoot(path="/p", prefix="/p", source="prefix")
        [env] = build_resources(manifest, "install", run_variables(manifest.settings, root))
        assert env.kind == ResourceKind.ENV_BLOCK
        assert env.identifier == f"{tmp_path}/.zshrc"
        assert env.desired.content == 'export PDK="x"'
