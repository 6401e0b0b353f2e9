"""Tests for the chatmem admin CLI."""

from click.testing import CliRunner

from chatmem.cli import main


class TestStrategyCommand:
    def test_memory_reference(self):
        runner = CliRunner()
        result = runner.invoke(main, ["strategy", "remember what we discussed about pricing?", "--turn", "5"])

        assert result.exit_code == 0
        assert "full" in result.output
        assert "memory_reference" in result.output

    def test_acknowledgment(self):
        result = CliRunner().invoke(main, ["strategy", "thanks", "-t", "5"])

        assert result.exit_code == 0
        assert "skip" in result.output


class TestConfigCommand:
    def test_shows_settings_and_masks_url(self, monkeypatch):
        monkeypatch.setenv("CHATMEM_DATABASE_URL", "postgresql://user:secret@db/chatmem")

        result = CliRunner().invoke(main, ["config"])

        assert result.exit_code == 0
        assert "persist_cooldown_seconds" in result.output
        assert "(set)" in result.output
        assert "secret" not in result.output


class TestDurableCommands:
    def test_recall_without_database(self):
        result = CliRunner().invoke(main, ["recall", "u1", "pricing"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_erase_aborted(self):
        result = CliRunner().invoke(main, ["erase", "u1"], input="n\n")

        assert result.exit_code == 0
        assert "Aborted" in result.output
