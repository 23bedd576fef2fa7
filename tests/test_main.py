from __future__ import annotations

import asyncio

import pytest

from dns_dashboard import main as cli
from dns_dashboard.logging_config import redact_secrets
from dns_dashboard.models import AnalysisRecord, Category, RiskLevel
from dns_dashboard.store import AnalysisStore


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


def test_log_processor_masks_secrets() -> None:
    event = redact_secrets(None, "info", {"event": "x", "token": "abc", "gemini_api_key": "", "domain": "a.com"})

    assert event["token"] == "***"
    assert event["gemini_api_key"] == ""
    assert event["domain"] == "a.com"


def test_parser_reads_view_options() -> None:
    args = cli._build_parser().parse_args(
        ["watch", "--client", "10.0.0.5", "--limit", "10", "--enrich", "--interval", "2.5"]
    )

    assert args.command == "watch"
    assert args.client == "10.0.0.5"
    assert args.limit == 10
    assert args.enrich and not args.messaging
    assert args.interval == 2.5


def test_enrich_command_shares_view_options() -> None:
    args = cli._build_parser().parse_args(["enrich", "--batch", "5", "--messaging"])

    assert cli._COMMANDS[args.command] is cli._enrich
    assert args.batch == 5
    assert args.messaging


def test_set_credentials_updates_env_file(tmp_path, capsys) -> None:
    env_file = tmp_path / ".env"

    cli.main(["--env-file", str(env_file), "set-credentials", "--gemini-api-key", "k"])

    assert "DNS_DASHBOARD_GEMINI_API_KEY=k" in env_file.read_text()
    assert "Settings updated." in capsys.readouterr().out


def test_set_credentials_without_values_exits_2(tmp_path) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--env-file", str(tmp_path / ".env"), "set-credentials"])
    assert exc.value.code == 2


def test_lookup_prints_cached_and_missing(tmp_path, monkeypatch, capsys) -> None:
    cache = tmp_path / "cache.db"
    record = AnalysisRecord(
        domain="web.whatsapp.com",
        app_name="WhatsApp",
        category=Category.MESSAGING,
        risk=RiskLevel.LOW,
        summary="Meta's messaging service.",
    )
    asyncio.run(AnalysisStore(cache).put(record.domain, record))
    monkeypatch.setenv("DNS_DASHBOARD_CACHE_DB", str(cache))

    with pytest.raises(SystemExit) as exc:
        cli.main(["--env-file", str(tmp_path / "none.env"), "lookup", "web.whatsapp.com", "b.com"])

    out = capsys.readouterr().out
    assert exc.value.code == 0
    assert "web.whatsapp.com: WhatsApp [Messaging / Low]" in out
    assert "b.com: not cached" in out
