import json
from pathlib import Path

import html2llms.cli as cli


PAGE_HTML = """<h1>Install</h1>
<aside class="starlight-aside starlight-aside--tip"><p>Use a recent Node.js.</p></aside>
<p>Run the installer.</p>
<details><summary>Troubleshooting</summary><p>Clear the cache.</p></details>
"""


def _create_source_dir(tmp_path: Path) -> Path:
    source_dir = tmp_path / "src"
    (source_dir / "guides").mkdir(parents=True, exist_ok=True)
    (source_dir / "index.html").write_text(PAGE_HTML, encoding="utf-8")
    (source_dir / "guides" / "raw.mdx").write_text("# Raw\n\n<Tabs />\n", encoding="utf-8")
    (source_dir / "notes.txt").write_text("ignored", encoding="utf-8")
    return source_dir


def test_version_flags_print_version(capsys):
    assert cli.main(["--version"]) == 0
    out = capsys.readouterr().out.strip()
    assert out == cli.__version__

    assert cli.main(["--ver"]) == 0
    out = capsys.readouterr().out.strip()
    assert out == cli.__version__


def test_help_and_no_args_show_usage(capsys):
    assert cli.main([]) == 0
    out = capsys.readouterr().out
    assert "html2llms" in out
    assert cli.__version__ in out

    assert cli.main(["--help"]) == 0
    out = capsys.readouterr().out
    assert "--from-file" in out


def test_unknown_option_returns_usage_error(capsys):
    assert cli.main(["--bogus"]) == 2
    assert "Usage" in capsys.readouterr().out


def test_from_file_prints_markdown(tmp_path, capsys):
    page = tmp_path / "page.html"
    page.write_text(PAGE_HTML, encoding="utf-8")

    assert cli.main(["--from-file", str(page)]) == 0
    out = capsys.readouterr().out

    assert "# Install" in out
    assert "Use a recent Node.js." in out
    assert "Clear the cache." in out


def test_from_file_minify_writes_output(tmp_path):
    page = tmp_path / "page.html"
    page.write_text(PAGE_HTML, encoding="utf-8")
    target = tmp_path / "out" / "page.md"

    assert cli.main(["--from-file", str(page), "--to-file", str(target), "--minify"]) == 0

    text = target.read_text(encoding="utf-8")
    assert text == "# Install Run the installer.\n"


def test_config_file_overrides_minify_options(tmp_path, capsys):
    page = tmp_path / "page.html"
    page.write_text(PAGE_HTML, encoding="utf-8")
    config = tmp_path / "llms.json"
    config.write_text(json.dumps({"minify": {"tip": False, "whitespace": False}}), encoding="utf-8")

    assert cli.main(["--from-file", str(page), "--minify", "--config", str(config)]) == 0
    out = capsys.readouterr().out

    assert "Use a recent Node.js." in out
    assert "Clear the cache." not in out
    assert "\n\n" in out


def test_invalid_config_file_returns_error(tmp_path, capsys):
    page = tmp_path / "page.html"
    page.write_text(PAGE_HTML, encoding="utf-8")
    config = tmp_path / "llms.json"
    config.write_text(json.dumps({"minify": {"customSelectors": ["div[["]}}), encoding="utf-8")

    assert cli.main(["--from-file", str(page), "--config", str(config)]) == 6
    assert "Invalid minify selector" in capsys.readouterr().err


def test_missing_config_file_returns_error(tmp_path, capsys):
    page = tmp_path / "page.html"
    page.write_text(PAGE_HTML, encoding="utf-8")

    assert cli.main(["--from-file", str(page), "--config", str(tmp_path / "missing.json")]) == 6
    assert "Config file not found" in capsys.readouterr().err


def test_missing_source_file_returns_error(tmp_path, capsys):
    assert cli.main(["--from-file", str(tmp_path / "missing.html")]) == 6
    assert "Source file not found" in capsys.readouterr().err


def test_from_dir_converts_html_and_passes_mdx_through(tmp_path):
    source_dir = _create_source_dir(tmp_path)
    out_dir = tmp_path / "out"

    assert cli.main(["--from-dir", str(source_dir), "--to-dir", str(out_dir), "--minify"]) == 0

    assert (out_dir / "index.md").read_text(encoding="utf-8") == "# Install Run the installer.\n"
    assert (out_dir / "guides" / "raw.md").read_text(encoding="utf-8") == "# Raw\n\n<Tabs />\n"
    assert not (out_dir / "notes.md").exists()


def test_from_dir_requires_empty_output_dir(tmp_path, capsys):
    source_dir = _create_source_dir(tmp_path)
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    (out_dir / "existing.md").write_text("x", encoding="utf-8")

    assert cli.main(["--from-dir", str(source_dir), "--to-dir", str(out_dir)]) == 7
    assert "must be empty" in capsys.readouterr().err


def test_from_dir_requires_to_dir(tmp_path, capsys):
    source_dir = _create_source_dir(tmp_path)

    assert cli.main(["--from-dir", str(source_dir)]) == 6
    assert "--from-dir" in capsys.readouterr().err


def test_from_file_and_from_dir_are_mutually_exclusive(tmp_path, capsys):
    source_dir = _create_source_dir(tmp_path)

    assert cli.main(["--from-file", str(source_dir / "index.html"), "--from-dir", str(source_dir)]) == 6
    assert "mutually exclusive" in capsys.readouterr().err


def test_write_config_writes_defaults(tmp_path):
    target = tmp_path / "llms.json"

    assert cli.main(["--write-config", str(target)]) == 0

    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["minify"]["details"] is True
    assert data["rawMDX"] is False


def test_from_file_with_invalid_utf8_returns_error(tmp_path, capsys):
    page = tmp_path / "page.html"
    page.write_bytes(b"<p>caf\xe9</p>")

    assert cli.main(["--from-file", str(page)]) == 6
    assert "Unable to read" in capsys.readouterr().err


def test_from_dir_with_invalid_utf8_returns_error(tmp_path, capsys):
    source_dir = _create_source_dir(tmp_path)
    (source_dir / "latin1.html").write_bytes(b"<p>caf\xe9</p>")

    assert cli.main(["--from-dir", str(source_dir), "--to-dir", str(tmp_path / "out")]) == 6
    assert "Unable to read" in capsys.readouterr().err


def test_from_file_unwritable_target_returns_error(tmp_path, capsys):
    page = tmp_path / "page.html"
    page.write_text(PAGE_HTML, encoding="utf-8")
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    assert cli.main(["--from-file", str(page), "--to-file", str(blocker / "page.md")]) == 7
    assert "Unable to write" in capsys.readouterr().err
