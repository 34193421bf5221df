from confluence_trader import cli
from confluence_trader.runner import scheduler as scheduler_module
from confluence_trader.runner.scheduler import RunMode, RunSummary, TickerResult


def test_parser_commands():
    parser = cli.build_parser()
    assert parser.parse_args(["loop", "--interval", "60"]).interval == 60
    args = parser.parse_args(["serve", "--port", "9000"])
    assert (args.host, args.port) == ("0.0.0.0", 9000)
    assert parser.parse_args(["run-once"]).command == "run-once"


def test_migrate_command(monkeypatch, capsys):
    monkeypatch.setattr(cli, "migrate", lambda: [1, 2])
    assert cli.main(["migrate"]) == 0
    assert "[1, 2]" in capsys.readouterr().out


def test_run_once_exit_code_reflects_failures(monkeypatch, capsys):
    summary = RunSummary(
        run_id="r1",
        mode=RunMode.FULL_ANALYSIS,
        started_at=0,
        results=[TickerResult(ticker="SOLUSDT", ok=False, error="boom")],
    )

    class _Scheduler:
        def run(self):
            return summary

    monkeypatch.setattr(
        scheduler_module.AnalysisScheduler,
        "from_settings",
        classmethod(lambda cls, settings=None, store=None: _Scheduler()),
    )

    assert cli.main(["run-once"]) == 1
    assert '"run_id": "r1"' in capsys.readouterr().out
