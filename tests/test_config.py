"""
Tests for environment-driven settings.
"""

from config import Settings, get_cors_origins, load_settings


class TestSettings:

    def test_defaults(self):
        settings = Settings()

        assert settings.history_budget_chars == 6000
        assert settings.max_tool_iterations == 8
        assert settings.min_acres == 2.0
        assert not settings.has_any_stage

    def test_placeholder_keys_count_as_absent(self):
        settings = Settings(
            anthropic_api_key="your_anthropic_api_key",
            groq_api_key="your_groq_api_key",
            tavily_api_key="your_tavily_api_key",
        )
        assert not settings.has_anthropic
        assert not settings.has_groq
        assert not settings.has_tavily

    def test_anthropic_key_prefix(self):
        assert Settings(anthropic_api_key="sk-ant-api03-abc").has_anthropic
        assert not Settings(anthropic_api_key="sk-proj-abc").has_anthropic

    def test_load_settings_reads_environment(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "gsk_live")
        monkeypatch.setenv("HISTORY_BUDGET_CHARS", "4000")
        monkeypatch.setenv("MAX_TOOL_ITERATIONS", "5")
        monkeypatch.setenv("MIN_ACRES", "3.5")
        monkeypatch.setenv("ACREAGE_POLICY", "drop")
        monkeypatch.setenv("ANTHROPIC_TIMEOUT", "12")

        settings = load_settings()

        assert settings.groq_api_key == "gsk_live"
        assert settings.has_groq
        assert settings.history_budget_chars == 4000
        assert settings.max_tool_iterations == 5
        assert settings.min_acres == 3.5
        assert settings.acreage_policy == "drop"
        assert settings.anthropic_timeout == 12.0

    def test_cors_origins_are_split(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000, https://deals.example.com ,")
        assert get_cors_origins() == ["http://localhost:3000", "https://deals.example.com"]
