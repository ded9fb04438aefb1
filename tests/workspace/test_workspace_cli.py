from __future__ import annotations

from convert_hub.workspace import cli


def test_init_creates_workspace_from_env(tmp_path, capsys, monkeypatch):
    target = tmp_path / "workspace"
    monkeypatch.setenv("CONVERT_HUB_DATA_HOME", str(target))

    code = cli.main([])

    captured = capsys.readouterr()
    assert code == 0
    assert captured.out.startswith(f"Workspace: {target.resolve()} (created)")
    assert (target / "engine").is_dir()
    assert "converted" in captured.out


def test_init_reports_existing_directories(tmp_path, capsys):
    target = tmp_path / "custom"
    cli.main(["--path", str(target), "--quiet"])

    code = cli.main(["--path", str(target)])

    captured = capsys.readouterr()
    assert code == 0
    assert "(created)" not in captured.out
    assert captured.out.count("(exists)") == 5


def test_init_quiet_mode(tmp_path, capsys):
    code = cli.main(["--path", str(tmp_path / "quiet"), "--quiet"])

    assert code == 0
    assert capsys.readouterr().out == ""


def test_init_reports_unusable_path(tmp_path, capsys):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")

    code = cli.main(["--path", str(blocker)])

    assert code == 1
    assert "not a directory" in capsys.readouterr().err
