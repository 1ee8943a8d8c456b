"""Tests for artifact autoloading and plugin isolation."""

from pathlib import Path

import pytest
from unittest.mock import patch

from dasmlaunch.artifacts import apply_artifacts, artifact_base, autoload_options
from dasmlaunch.core.errors import ArtifactLoadFailure
from dasmlaunch.core.types import Options
from dasmlaunch.engines.static import StaticDisassembler
from dasmlaunch.formats import decode_file


class TestArtifactBase:
    """Test extension stripping."""

    @pytest.mark.parametrize("path,base", [
        ("dir/a.exe", "dir/a"),
        ("a.so", "a"),
        ("a.c", "a"),
        ("a.tar.gz", "a.tar"),
        ("a.long", "a.long"),
        ("noext", "noext"),
    ])
    def test_strip(self, path: str, base: str) -> None:
        assert artifact_base(path) == base


class TestAutoloadOptions:
    """Test sibling artifact discovery."""

    def test_disabled(self, tmp_path: Path) -> None:
        (tmp_path / "a.map").write_text("")
        options = Options()
        assert autoload_options(str(tmp_path / "a.exe"), options) is options

    def test_finds_siblings(self, tmp_path: Path) -> None:
        for name in ("a.map", "a.h", "a.py", "a.dasm-session"):
            (tmp_path / name).write_text("")
        options = Options(autoload=True, plugins=("first.py",))

        result = autoload_options(str(tmp_path / "a.exe"), options)

        assert result.map_file == str(tmp_path / "a.map")
        assert result.c_header_file == str(tmp_path / "a.h")
        assert result.plugins == ("first.py", str(tmp_path / "a.py"))
        assert result.session_file == str(tmp_path / "a.dasm-session")
        # The input is left unchanged
        assert options.map_file is None

    def test_missing_siblings_ignored(self, tmp_path: Path) -> None:
        """Test only files that exist are added."""
        (tmp_path / "a.h").write_text("")
        result = autoload_options(str(tmp_path / "a.exe"), Options(autoload=True))
        assert result.map_file is None
        assert result.c_header_file == str(tmp_path / "a.h")
        assert result.plugins == ()
        assert result.session_file is None

    def test_explicit_values_win(self, tmp_path: Path) -> None:
        for name in ("a.map", "a.h", "a.dasm-session"):
            (tmp_path / name).write_text("")
        options = Options(
            autoload=True,
            map_file="other.map",
            c_header_file="other.h",
            session_file="other.dasm-session",
        )
        result = autoload_options(str(tmp_path / "a.exe"), options)
        assert result.map_file == "other.map"
        assert result.c_header_file == "other.h"
        assert result.session_file == "other.dasm-session"

    def test_plugin_not_duplicated(self, tmp_path: Path) -> None:
        plugin = tmp_path / "a.py"
        plugin.write_text("")
        options = Options(autoload=True, plugins=(str(plugin),))
        result = autoload_options(str(tmp_path / "a.exe"), options)
        assert result.plugins == (str(plugin),)

    def test_no_target(self) -> None:
        options = Options(autoload=True)
        assert autoload_options(None, options) is options


class TestApplyArtifacts:
    """Test loading artifacts into an engine."""

    @pytest.fixture
    def engine(self, shellcode_path: Path) -> StaticDisassembler:
        return StaticDisassembler(decode_file(str(shellcode_path)), "t")

    def _plugins(self, tmp_path: Path) -> list:
        good1 = tmp_path / "good1.py"
        good1.write_text("engine.comment(0, 'one')\n")
        bad = tmp_path / "bad.py"
        bad.write_text("raise RuntimeError('plugin defect')\n")
        good2 = tmp_path / "good2.py"
        good2.write_text("def register(engine):\n    engine.comment(3, 'two')\n")
        return [str(good1), str(bad), str(good2)]

    @pytest.mark.asyncio
    async def test_plugin_failure_isolated(self, engine: StaticDisassembler, tmp_path: Path) -> None:
        """Test one failing plugin of N leaves N-1 loaded."""
        plugins = self._plugins(tmp_path)

        with patch("dasmlaunch.artifacts.console") as mock_console:
            results = await apply_artifacts(engine, Options(plugins=tuple(plugins)))

        assert [r.succeeded for r in results] == [True, False, True]
        assert results[1].path == plugins[1]
        assert results[1].error == "RuntimeError plugin defect"
        assert engine.plugins == [plugins[0], plugins[2]]
        assert engine.comments == {0: "one", 3: "two"}
        printed = mock_console.print.call_args[0][0]
        assert plugins[1] in printed
        assert "RuntimeError plugin defect" in printed

    @pytest.mark.asyncio
    async def test_plugin_exit_isolated(self, engine: StaticDisassembler, tmp_path: Path) -> None:
        """Test a plugin calling sys.exit() does not stop the plugins after it."""
        quitter = tmp_path / "quitter.py"
        quitter.write_text("import sys\nsys.exit(3)\n")
        good = tmp_path / "good.py"
        good.write_text("engine.comment(0, 'loaded')\n")

        with patch("dasmlaunch.artifacts.console"):
            results = await apply_artifacts(engine, Options(plugins=(str(quitter), str(good))))

        assert [r.succeeded for r in results] == [False, True]
        assert results[0].error == "SystemExit 3"
        assert engine.comments == {0: "loaded"}

    @pytest.mark.asyncio
    async def test_keyboard_interrupt_propagates(
        self, engine: StaticDisassembler, tmp_path: Path
    ) -> None:
        plugin = tmp_path / "interrupted.py"
        plugin.write_text("raise KeyboardInterrupt\n")
        with patch("dasmlaunch.artifacts.console"):
            with pytest.raises(KeyboardInterrupt):
                await apply_artifacts(engine, Options(plugins=(str(plugin),)))

    @pytest.mark.asyncio
    async def test_syntax_error_isolated(self, engine: StaticDisassembler, tmp_path: Path) -> None:
        bad = tmp_path / "syntax.py"
        bad.write_text("def (:\n")
        with patch("dasmlaunch.artifacts.console"):
            results = await apply_artifacts(engine, Options(plugins=(str(bad),)))
        assert results[0].succeeded is False
        assert results[0].error.startswith("SyntaxError")

    @pytest.mark.asyncio
    async def test_map_and_header(self, engine: StaticDisassembler, tmp_path: Path) -> None:
        map_file = tmp_path / "a.map"
        map_file.write_text("0xb zero\n")
        header = tmp_path / "a.h"
        header.write_text("int zero(void);\n")

        results = await apply_artifacts(
            engine, Options(map_file=str(map_file), c_header_file=str(header))
        )

        assert results == []
        assert engine.label_at(0xB) == "zero"
        assert engine.prototypes["zero"] == "int zero(void)"

    @pytest.mark.asyncio
    async def test_bad_map_is_fatal(self, engine: StaticDisassembler, tmp_path: Path) -> None:
        """Test a broken map stops loading before any plugin runs."""
        map_file = tmp_path / "a.map"
        map_file.write_text("garbage\n")
        plugin = tmp_path / "p.py"
        plugin.write_text("engine.comment(0, 'ran')\n")

        with pytest.raises(ArtifactLoadFailure):
            await apply_artifacts(engine, Options(map_file=str(map_file), plugins=(str(plugin),)))
        assert engine.comments == {}

    @pytest.mark.asyncio
    async def test_missing_header_is_fatal(self, engine: StaticDisassembler, tmp_path: Path) -> None:
        with pytest.raises(ArtifactLoadFailure):
            await apply_artifacts(engine, Options(c_header_file=str(tmp_path / "missing.h")))
