from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from shopbot.models import AIMessage
from shopbot.schemas.session import SessionData
from shopbot.services.ai_service import (
    build_instructions,
    check_quota,
    daily_cap,
    generate_ai_reply,
    get_ai_history,
    get_llm_provider,
    log_ai_message,
)
from shopbot.services.company_service import resolve_company
from shopbot.services.llm import LLMError, LLMResponse, OpenAIProvider
from shopbot.services.result import AI_ERROR, DISABLED, EMPTY_REPLY, LIMIT_REACHED, NOT_CONFIGURED, RATE_LIMITED
from shopbot.services.session_service import load_session, save_session

CUSTOMER = "whatsapp:+5491111111111"
NOW = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def provider():
    provider = Mock()
    provider.generate.return_value = LLMResponse(content="¿Qué talle buscás?", model="gpt-4o-mini")
    with patch("shopbot.services.ai_service.get_llm_provider", return_value=provider):
        yield provider


@pytest.fixture
def company(db):
    return resolve_company(db, "veterinaria_sm")


def _session(db, mode="lite"):
    session = load_session(db, CUSTOMER)
    session.data.ai_mode = mode
    save_session(db, session)
    return session


def _ask(db, session, company, now, text="¿Atienden sábados?"):
    return generate_ai_reply(db, session, company, text, now=now)


class TestDailyCap:
    def test_tier_caps(self):
        assert daily_cap("lite") == 40
        assert daily_cap("pro") == 120
        assert daily_cap("off") == 0

    def test_caps_are_configurable(self, monkeypatch, test_settings):
        monkeypatch.setattr(test_settings, "ai_lite_daily_cap", 3)
        assert daily_cap("lite") == 3

    def test_forty_first_call_is_refused_without_provider_call(self, db, company, provider):
        session = _session(db)
        for i in range(40):
            assert _ask(db, session, company, NOW + timedelta(seconds=10 * i)).ok

        result = _ask(db, session, company, NOW + timedelta(seconds=600))

        assert result.ok is False
        assert result.error_code == LIMIT_REACHED
        assert provider.generate.call_count == 40
        assert session.data.ai_count == 40

    def test_counter_resets_at_utc_rollover(self, db, company, provider):
        session = _session(db)
        session.data.ai_count = 40
        session.data.ai_count_date = NOW.strftime("%Y-%m-%d")
        assert _ask(db, session, company, NOW).error_code == LIMIT_REACHED

        tomorrow = NOW + timedelta(days=1)
        result = _ask(db, session, company, tomorrow)

        assert result.ok is True
        assert session.data.ai_count == 1
        assert session.data.ai_count_date == tomorrow.strftime("%Y-%m-%d")


class TestRateLimit:
    def test_rapid_message_consumes_quota(self, db, company, provider):
        session = _session(db)
        assert _ask(db, session, company, NOW).ok

        result = _ask(db, session, company, NOW + timedelta(seconds=2))

        assert result.error_code == RATE_LIMITED
        assert provider.generate.call_count == 1
        assert session.data.ai_count == 2
        assert session.data.last_ai_at == (NOW + timedelta(seconds=2)).timestamp()

    def test_rapid_message_free_when_configured(self, db, company, provider, monkeypatch, test_settings):
        monkeypatch.setattr(test_settings, "ai_rate_limit_consumes_quota", False)
        session = _session(db)
        assert _ask(db, session, company, NOW).ok

        result = _ask(db, session, company, NOW + timedelta(seconds=2))

        assert result.error_code == RATE_LIMITED
        assert session.data.ai_count == 1

    def test_interval_elapsed(self, db, company, provider):
        session = _session(db)
        assert _ask(db, session, company, NOW).ok
        assert _ask(db, session, company, NOW + timedelta(seconds=6)).ok
        assert session.data.ai_count == 2

    def test_check_quota_first_call_passes(self):
        data = SessionData(ai_mode="lite")
        assert check_quota(data, NOW) is None
        assert data.ai_count_date == "2026-05-10"


class TestFailures:
    def test_provider_error_is_free(self, db, company, provider):
        provider.generate.side_effect = LLMError("timeout")
        session = _session(db)

        result = _ask(db, session, company, NOW)

        assert result.error_code == AI_ERROR
        assert session.data.ai_count == 0
        assert session.data.last_ai_at == 0.0
        assert db.query(AIMessage).count() == 0

    def test_empty_reply(self, db, company, provider):
        provider.generate.return_value = LLMResponse(content="   ", model="gpt-4o-mini")
        session = _session(db)

        result = _ask(db, session, company, NOW)

        assert result.error_code == EMPTY_REPLY
        assert session.data.ai_count == 1

    def test_not_configured(self, db, company):
        session = _session(db)
        with patch("shopbot.services.ai_service.get_llm_provider", return_value=None):
            result = _ask(db, session, company, NOW)
        assert result.error_code == NOT_CONFIGURED

    def test_global_switch_off(self, db, company, provider, monkeypatch, test_settings):
        monkeypatch.setattr(test_settings, "ai_global", "off")
        result = _ask(db, _session(db), company, NOW)
        assert result.error_code == DISABLED
        provider.generate.assert_not_called()

    def test_mode_off(self, db, company, provider):
        result = _ask(db, _session(db, mode="off"), company, NOW)
        assert result.error_code == DISABLED
        provider.generate.assert_not_called()


class TestContext:
    def test_success_logs_both_turns(self, db, company, provider):
        session = _session(db)
        result = _ask(db, session, company, NOW, text="¿Atienden sábados?")

        assert result.value == "¿Qué talle buscás?"
        assert get_ai_history(db, CUSTOMER, 10) == [
            {"role": "user", "content": "¿Atienden sábados?"},
            {"role": "assistant", "content": "¿Qué talle buscás?"},
        ]

    def test_history_is_sent_between_instructions_and_new_turn(self, db, company, provider):
        session = _session(db)
        _ask(db, session, company, NOW, text="primero")
        _ask(db, session, company, NOW + timedelta(seconds=30), text="segundo")

        messages = provider.generate.call_args[0][0]
        assert messages[0]["role"] == "system"
        assert messages[1] == {"role": "user", "content": "primero"}
        assert messages[2]["role"] == "assistant"
        assert messages[-1] == {"role": "user", "content": "segundo"}

    def test_history_is_bounded_and_oldest_first(self, db):
        for i in range(5):
            log_ai_message(db, CUSTOMER, "user", f"m{i}")

        assert [m["content"] for m in get_ai_history(db, CUSTOMER, 3)] == ["m2", "m3", "m4"]
        assert get_ai_history(db, CUSTOMER, 0) == []

    def test_instructions_include_catalog_and_rules(self, company):
        text = build_instructions(company)
        assert "Sos asistente de una veterinaria" in text
        assert "1) Consulta: $5000" in text
        assert "Tono: empatico" in text
        assert "No inventar datos" in text
        assert "Siempre cerrar con pregunta" in text
        assert "urgente, accidente" in text


class TestGetProvider:
    def test_none_without_key(self):
        assert get_llm_provider() is None

    def test_configured_provider(self, monkeypatch, test_settings):
        monkeypatch.setattr(test_settings, "openai_api_key", "sk-test")
        provider = get_llm_provider()
        assert isinstance(provider, OpenAIProvider)
        assert provider.default_model == "gpt-4o-mini"
        assert provider.default_timeout == 8.0
