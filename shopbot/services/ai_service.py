"""Generative replies for free text, budgeted per customer per day.

Governor rules, evaluated before every call:

1. The daily counter resets lazily when the UTC date changes.
2. ``lite`` and ``pro`` have separate daily caps; at the cap the call is refused.
3. Messages closer than ``AI_MIN_INTERVAL_SECONDS`` to the previous call get a
   nudge instead of a call. With ``AI_RATE_LIMIT_CONSUMES_QUOTA`` on (default)
   the nudge burns one unit of the daily quota, so rapid-fire messages cannot
   bypass the cap.
4. A completed provider call costs exactly one unit. A failed call is free.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from shopbot.config import settings
from shopbot.logging_config import get_logger
from shopbot.models import AIMessage
from shopbot.schemas.company import CompanyProfile
from shopbot.schemas.session import SessionData
from shopbot.services.llm import LLMError, OpenAIProvider
from shopbot.services.order_service import format_price
from shopbot.services.result import (
    AI_ERROR,
    DISABLED,
    EMPTY_REPLY,
    LIMIT_REACHED,
    NOT_CONFIGURED,
    RATE_LIMITED,
    Result,
)
from shopbot.services.session_service import CustomerSession, save_session

logger = get_logger("ai_service")

AI_MODES_ENABLED = ("lite", "pro")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_llm_provider() -> Optional[OpenAIProvider]:
    api_key = settings.openai_api_key.strip()
    if not api_key:
        return None
    return OpenAIProvider(
        api_key=api_key,
        default_model=settings.openai_model,
        default_timeout=settings.llm_timeout_seconds,
    )


def is_ai_enabled(data: SessionData) -> bool:
    return data.ai_mode in AI_MODES_ENABLED


def daily_cap(ai_mode: str) -> int:
    if ai_mode == "pro":
        return settings.ai_pro_daily_cap
    if ai_mode == "lite":
        return settings.ai_lite_daily_cap
    return 0


def history_limit(ai_mode: str) -> int:
    return settings.ai_history_pro if ai_mode == "pro" else settings.ai_history_lite


def roll_over_daily_count(data: SessionData, now: datetime) -> None:
    today = now.astimezone(timezone.utc).strftime("%Y-%m-%d")
    if data.ai_count_date != today:
        data.ai_count = 0
        data.ai_count_date = today


def check_quota(data: SessionData, now: datetime) -> Optional[str]:
    """Apply rollover, cap and rate limit. Returns an error code or None when a call may go out."""
    roll_over_daily_count(data, now)

    if data.ai_count >= daily_cap(data.ai_mode):
        return LIMIT_REACHED

    now_ts = now.timestamp()
    if data.last_ai_at and now_ts - data.last_ai_at < settings.ai_min_interval_seconds:
        data.last_ai_at = now_ts
        if settings.ai_rate_limit_consumes_quota:
            data.ai_count += 1
        return RATE_LIMITED

    return None


def build_instructions(company: CompanyProfile) -> str:
    catalog_lines = "\n".join(f"{item.id}) {item.name}: {format_price(item.price)}" for item in company.catalog)
    rules = [
        f"- Tono: {company.rules.tone or 'neutral'}",
        "- No inventar datos",
        "- Siempre cerrar con pregunta",
        "- Para comprar, el cliente escribe: agregar <número> y después checkout",
    ]
    if company.rules.emergency_keywords:
        keywords = ", ".join(company.rules.emergency_keywords)
        rules.append(f"- Ante urgencias ({keywords}) indicá escribir: humano")
    return f"{company.prompt}\n\nCATÁLOGO:\n{catalog_lines or '(sin productos)'}\n\nReglas:\n" + "\n".join(rules)


def get_ai_history(db: Session, from_number: str, limit: int) -> List[dict]:
    """Last ``limit`` turns for the customer, oldest first."""
    if limit <= 0:
        return []
    rows = (
        db.query(AIMessage)
        .filter(AIMessage.from_number == from_number)
        .order_by(AIMessage.created_at.desc(), AIMessage.id.desc())
        .limit(limit)
        .all()
    )
    return [{"role": row.role, "content": row.content} for row in reversed(rows) if row.role in ("user", "assistant")]


def log_ai_message(db: Session, from_number: str, role: str, content: str) -> AIMessage:
    message = AIMessage(from_number=from_number, role=role, content=content, created_at=_utcnow())
    db.add(message)
    db.flush()
    return message


def generate_ai_reply(
    db: Session,
    session: CustomerSession,
    company: CompanyProfile,
    user_message: str,
    now: Optional[datetime] = None,
) -> Result[str]:
    now = now or _utcnow()
    data = session.data

    if settings.ai_global.strip().lower() == "off" or not is_ai_enabled(data):
        return Result.failure("AI disabled", DISABLED)

    provider = get_llm_provider()
    if provider is None:
        logger.warning("OPENAI_API_KEY not configured")
        return Result.failure("AI provider not configured", NOT_CONFIGURED)

    blocked = check_quota(data, now)
    if blocked:
        save_session(db, session)
        logger.info(
            "AI call refused by governor",
            extra={"context": {"from_number": session.from_number, "reason": blocked, "ai_count": data.ai_count}},
        )
        return Result.failure(f"AI call refused: {blocked}", blocked)

    messages = [{"role": "system", "content": build_instructions(company)}]
    messages.extend(get_ai_history(db, session.from_number, history_limit(data.ai_mode)))
    messages.append({"role": "user", "content": user_message})

    try:
        response = provider.generate(messages, max_tokens=settings.ai_max_tokens)
    except LLMError as e:
        logger.error(
            "AI provider failed",
            extra={"context": {"from_number": session.from_number, "company_id": company.id, "error": str(e)}},
        )
        return Result.failure(str(e), AI_ERROR)

    data.ai_count += 1
    data.last_ai_at = now.timestamp()
    save_session(db, session)

    text = (response.content or "").strip()
    if not text:
        logger.warning("AI provider returned empty text", extra={"context": {"from_number": session.from_number}})
        return Result.failure("Empty AI reply", EMPTY_REPLY)

    log_ai_message(db, session.from_number, "user", user_message)
    log_ai_message(db, session.from_number, "assistant", text)
    return Result.success(text)
