"""Tests for the command-line interface."""

from sqlalchemy.orm import Session
from typer.testing import CliRunner

from studio_ledger.cli import app

runner = CliRunner()


class TestPricingCommands:
    """Test commands that only read the price tables."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "Studio Ledger v" in result.output

    def test_pricing(self) -> None:
        result = runner.invoke(app, ["pricing"])

        assert result.exit_code == 0
        assert "seedance_2_0" in result.output

    def test_estimate(self) -> None:
        result = runner.invoke(app, ["estimate", "seedance_2_0", "720p", "10", "5"])

        assert result.exit_code == 0
        assert "Total: 12 coins for 15s" in result.output

    def test_estimate_unpriced(self) -> None:
        result = runner.invoke(app, ["estimate", "jimeng_3_0_pro", "720p", "5"])

        assert result.exit_code == 1
        assert "No price" in result.output

    def test_estimate_negative_duration(self) -> None:
        result = runner.invoke(app, ["estimate", "seedance_2_0", "720p", "--", "10", "-5"])

        assert result.exit_code == 1
        assert "must not be negative" in result.output


class TestBalanceCommands:
    """Test commands that touch the ledger."""

    def test_grant_and_balance(self, db_session: Session) -> None:
        result = runner.invoke(app, ["grant", "user-1", "25", "--reason", "Beta tester"])

        assert result.exit_code == 0
        assert "Granted 25 coins" in result.output

        result = runner.invoke(app, ["balance", "user-1"])

        assert result.exit_code == 0
        assert "25" in result.output

    def test_grant_rejects_zero(self, db_session: Session) -> None:
        result = runner.invoke(app, ["grant", "user-1", "0"])

        assert result.exit_code == 1

    def test_features(self, db_session: Session) -> None:
        result = runner.invoke(app, ["features"])

        assert result.exit_code == 0
        assert "ai_split" in result.output

    def test_sweep(self, db_session: Session) -> None:
        result = runner.invoke(app, ["sweep"])

        assert result.exit_code == 0
        assert "Released 0 stale job(s)" in result.output
