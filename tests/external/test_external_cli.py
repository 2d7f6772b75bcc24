from __future__ import annotations

from pathlib import Path
import subprocess
import sys


def _tool_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _fixture_registry() -> Path:
    return _tool_root() / "tests" / "fixtures" / "gl_minimal.xml"


def _run(args: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "glgen.py", *args],
        cwd=_tool_root(),
        capture_output=True,
        text=True,
        check=False,
    )


def test_generate_writes_header_and_source(tmp_path: Path) -> None:
    result = _run(
        [
            str(_fixture_registry()),
            "--api",
            "gl",
            "--ver",
            "3.2",
            "--profile",
            "core",
            "--filename",
            "mygl",
            "--exts",
            "KHR_debug",
            "--output-dir",
            str(tmp_path),
        ]
    )

    assert result.returncode == 0, result.stderr
    assert result.stdout.rstrip().endswith("Generation finished successfully!")
    assert "gl 3.2 core + GL_KHR_debug loader generated:" in result.stdout
    assert sorted(p.name for p in tmp_path.iterdir()) == ["mygl.c", "mygl.h"]
    header = (tmp_path / "mygl.h").read_text(encoding="utf-8")
    assert '#define GLGEN_API_PROFILE "core"' in header
    assert "glDebugMessageCallback" in header


def test_nulldriver_generator(tmp_path: Path) -> None:
    result = _run(
        [
            str(_fixture_registry()),
            "--generator",
            "c_nulldriver",
            "--output-dir",
            str(tmp_path),
        ]
    )

    assert result.returncode == 0, result.stderr
    source = (tmp_path / "gl_4_0_compatibility.c").read_text(encoding="utf-8")
    assert "return (GLenum)0;" in source
    assert "GlgenGetProcAddress" not in source


def test_no_arguments_prints_usage() -> None:
    result = _run([])

    assert result.returncode == 0
    assert result.stdout.startswith("usage: glgen")
    assert result.stderr == ""


def test_invalid_version_exits_with_error(tmp_path: Path) -> None:
    result = _run([str(_fixture_registry()), "--ver", "abc", "--output-dir", str(tmp_path)])

    assert result.returncode == 1
    assert "Config error [INVALID_VERSION]" in result.stderr
    assert list(tmp_path.iterdir()) == []


def test_unknown_option_exits_with_error() -> None:
    result = _run([str(_fixture_registry()), "--bogus"])

    assert result.returncode == 1
    assert "unrecognized arguments: --bogus" in result.stderr


def test_unsupported_extension_warns(tmp_path: Path) -> None:
    result = _run(
        [
            str(_fixture_registry()),
            "--api",
            "gles2",
            "--exts",
            "ARB_debug_output",
            "--output-dir",
            str(tmp_path),
        ]
    )

    assert result.returncode == 1
    assert "WARNING: extension GL_ARB_debug_output requested" in result.stderr
    assert "Config error [UNRESOLVED_EXTENSIONS]" in result.stderr


def test_missing_registry_file(tmp_path: Path) -> None:
    result = _run([str(tmp_path / "nope.xml")])

    assert result.returncode == 1
    assert "Config error [PATH_NOT_FOUND]" in result.stderr
