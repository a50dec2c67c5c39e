from group_harvest.cli import main


def test_plan_prints_worker_chunks(capsys) -> None:
    assert main(["plan", "--max-page", "9", "--workers", "4"]) == 0
    output = capsys.readouterr().out
    assert "0..2" in output
    assert "9..9" in output


def test_plan_rejects_zero_workers(capsys) -> None:
    assert main(["plan", "--max-page", "9", "--workers", "0"]) == 1
    assert "worker_count" in capsys.readouterr().out


def test_run_without_required_settings_fails(monkeypatch, capsys) -> None:
    monkeypatch.delenv("GROUP_ID", raising=False)
    monkeypatch.delenv("SEARCH_KEY", raising=False)
    monkeypatch.delenv("TZ", raising=False)
    assert main(["run"]) == 1
    assert "Missing required settings" in capsys.readouterr().out
