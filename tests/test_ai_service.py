"""
Tests for aidwatch/services/ai.py - Anthropic primary, OpenAI fallback, and budget cap.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from aidwatch.services.ai import (
    COST_TABLE,
    DAILY_SPEND_KEY,
    _check_daily_budget,
    _error_result,
    _generate_anthropic,
    _generate_openai,
    _record_spend,
    _strip_reasoning,
    calculate_cost,
    generate_response,
)


class TestCalculateCost:
    def test_haiku_pricing(self):
        cost = calculate_cost("claude-haiku-4-5-20251001", input_tokens=5000, output_tokens=2000)
        assert cost == pytest.approx((5000 * 1.00 + 2000 * 5.00) / 1_000_000)

    def test_gpt4o_mini_pricing(self):
        cost = calculate_cost("gpt-4o-mini", input_tokens=5000, output_tokens=2000)
        assert cost == pytest.approx((5000 * 0.15 + 2000 * 0.60) / 1_000_000)

    def test_unknown_model_uses_default_pricing(self):
        cost = calculate_cost("unknown-model", input_tokens=1000, output_tokens=500)
        assert cost == pytest.approx((1000 * 1.0 + 500 * 5.0) / 1_000_000)

    def test_cost_table_has_both_providers(self):
        assert "claude-haiku-4-5-20251001" in COST_TABLE
        assert "gpt-4o-mini" in COST_TABLE


class TestStripReasoning:
    def test_removes_think_block(self):
        assert _strip_reasoning("<think>hmm</think>\n{\"a\": 1}") == '{"a": 1}'

    def test_none(self):
        assert _strip_reasoning(None) == ""


def _make_mock_settings(**overrides):
    defaults = {
        "openai_api_key": "sk-openai-test",
        "openai_base_url": "",
        "openai_model_fast": "gpt-4o-mini",
        "openai_model_smart": "gpt-4o-mini",
        "openai_max_tokens_fast": 300,
        "openai_max_tokens_smart": 500,
        "openai_timeout_seconds": 10,
        "anthropic_api_key": "sk-ant-test",
        "anthropic_model_fast": "claude-haiku-4-5-20251001",
        "anthropic_model_smart": "claude-sonnet-4-5-20250929",
        "anthropic_max_tokens_fast": 300,
        "anthropic_max_tokens_smart": 500,
        "anthropic_timeout_seconds": 10,
        "ai_daily_budget_usd": 5.0,
    }
    defaults.update(overrides)
    settings = MagicMock()
    for key, value in defaults.items():
        setattr(settings, key, value)
    return settings


def _make_openai_response(text="Hello", prompt_tokens=40, completion_tokens=15):
    message = MagicMock()
    message.content = text
    choice = MagicMock()
    choice.message = message
    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens
    response = MagicMock()
    response.choices = [choice]
    response.usage = usage
    return response


def _make_anthropic_response(text="Hello", input_tokens=40, output_tokens=15):
    text_block = MagicMock()
    text_block.type = "text"
    text_block.text = text
    usage = MagicMock()
    usage.input_tokens = input_tokens
    usage.output_tokens = output_tokens
    response = MagicMock()
    response.content = [text_block]
    response.usage = usage
    return response


class TestErrorResult:
    def test_returns_standardized_dict(self):
        result = _error_result("test error")
        assert result["content"] == ""
        assert result["provider"] == "none"
        assert result["error"] == "test error"
        assert result["cost_usd"] == 0.0


class TestAnthropic:
    async def test_fast_tier(self):
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=_make_anthropic_response("reply", 100, 50))

        with (
            patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()),
            patch("anthropic.AsyncAnthropic", return_value=mock_client),
        ):
            result = await _generate_anthropic("system", "user", "fast", None, 0.1)

        assert result["content"] == "reply"
        assert result["provider"] == "anthropic"
        assert result["model"] == "claude-haiku-4-5-20251001"
        assert result["input_tokens"] == 100
        assert result["cost_usd"] > 0

    async def test_smart_tier_uses_sonnet(self):
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=_make_anthropic_response())

        with (
            patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()),
            patch("anthropic.AsyncAnthropic", return_value=mock_client),
        ):
            result = await _generate_anthropic("system", "user", "smart", None, 0.3)

        assert result["model"] == "claude-sonnet-4-5-20250929"
        assert mock_client.messages.create.call_args.kwargs["max_tokens"] == 500


class TestOpenAI:
    async def test_json_mode_sets_response_format(self):
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_make_openai_response("{}"))

        with (
            patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()),
            patch("openai.AsyncOpenAI", return_value=mock_client),
        ):
            result = await _generate_openai("system", "user", "fast", None, 0.1, True)

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert result["provider"] == "openai"

    async def test_without_json_mode(self):
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_make_openai_response())

        with (
            patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()),
            patch("openai.AsyncOpenAI", return_value=mock_client),
        ):
            await _generate_openai("system", "user", "fast", 123, 0.1, False)

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert "response_format" not in kwargs
        assert kwargs["max_tokens"] == 123


class TestGenerateResponseRouting:
    async def test_anthropic_failure_falls_back_to_openai(self):
        openai_result = {
            "content": "openai reply", "provider": "openai", "model": "gpt-4o-mini",
            "latency_ms": 1, "cost_usd": 0.001, "input_tokens": 10, "output_tokens": 5, "error": None,
        }
        with (
            patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()),
            patch("aidwatch.services.ai._check_daily_budget", new_callable=AsyncMock, return_value=(True, 0.0)),
            patch("aidwatch.services.ai._record_spend", new_callable=AsyncMock),
            patch("aidwatch.services.ai._generate_anthropic", new_callable=AsyncMock, side_effect=Exception("down")),
            patch("aidwatch.services.ai._generate_openai", new_callable=AsyncMock, return_value=openai_result),
        ):
            result = await generate_response("system", "user")

        assert result["provider"] == "openai"

    async def test_no_api_keys_returns_error(self):
        settings = _make_mock_settings(anthropic_api_key="", openai_api_key="")
        with (
            patch("aidwatch.services.ai.get_settings", return_value=settings),
            patch("aidwatch.services.ai._check_daily_budget", new_callable=AsyncMock, return_value=(True, 0.0)),
        ):
            result = await generate_response("system", "user")

        assert result["provider"] == "none"
        assert "No AI provider available" in result["error"]

    async def test_budget_exceeded_blocks_and_alerts(self):
        with (
            patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()),
            patch("aidwatch.services.ai._check_daily_budget", new_callable=AsyncMock, return_value=(False, 5.01)),
            patch("aidwatch.utils.alerting.send_alert", new_callable=AsyncMock) as mock_alert,
            patch("aidwatch.services.ai._generate_anthropic", new_callable=AsyncMock) as mock_anthropic,
        ):
            result = await generate_response("system", "user")

        assert "budget exceeded" in result["error"].lower()
        mock_alert.assert_awaited_once()
        mock_anthropic.assert_not_awaited()


class TestDailyBudget:
    async def test_under_limit(self, mock_redis):
        mock_redis.get = AsyncMock(return_value="2.50")
        with patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()):
            allowed, current = await _check_daily_budget()
        assert allowed is True
        assert current == pytest.approx(2.50)

    async def test_over_limit(self, mock_redis):
        mock_redis.get = AsyncMock(return_value="5.20")
        with patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()):
            allowed, _ = await _check_daily_budget()
        assert allowed is False

    async def test_redis_failure_allows(self):
        with (
            patch("aidwatch.services.ai.get_settings", return_value=_make_mock_settings()),
            patch("aidwatch.services.ai.get_redis", new_callable=AsyncMock, side_effect=Exception("Redis down")),
        ):
            allowed, current = await _check_daily_budget()
        assert allowed is True
        assert current == 0.0

    async def test_record_spend_uses_pipeline(self, mock_redis):
        mock_pipe = MagicMock()
        mock_pipe.execute = AsyncMock()
        mock_redis.pipeline = MagicMock(return_value=mock_pipe)

        await _record_spend(0.05)

        mock_pipe.incrbyfloat.assert_called_once_with(DAILY_SPEND_KEY, 0.05)
        mock_pipe.expire.assert_called_once()
        mock_pipe.execute.assert_awaited_once()

    async def test_record_spend_skips_zero_cost(self, mock_redis):
        mock_redis.pipeline = MagicMock()
        await _record_spend(0.0)
        mock_redis.pipeline.assert_not_called()
