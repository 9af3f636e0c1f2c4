from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from skorbot.database import CreditBase, TranscriptBase
from skorbot.models import PaymentHistory, Tradeline, UserCreditInsight
from skorbot.services.credit_context import CreditDataStore
from skorbot.services.llm import LLMProvider, LLMResponse
from skorbot.services.transcript_logger import TranscriptLogger


def sqlite_session_factory(base) -> sessionmaker:
    """In-memory SQLite shared across threads (asyncio.to_thread workers)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class FakeProvider(LLMProvider):
    """Scripted LLM: returns queued replies in order, raises queued exceptions."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def generate(self, messages, model=None, timeout_seconds=None) -> LLMResponse:
        self.calls.append({"messages": [dict(m) for m in messages], "model": model})
        reply = self.replies.pop(0) if self.replies else "ok"
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, LLMResponse):
            return reply
        return LLMResponse(content=reply, model=model or "test-model", usage={"total_tokens": 42})


def seed_credit_profile(factory: sessionmaker, user_id: str = "user-1", full_name: Optional[str] = "Budi") -> None:
    with factory() as db:
        db.add(
            UserCreditInsight(
                user_id=user_id,
                credit_score=720,
                kol_score=1,
                outstanding_amount=Decimal("15000000.00"),
                number_of_unsecured_loan=2,
                number_of_secured_loan=1,
                penalty_amount=Decimal("0.00"),
                max_dpd=0,
                number_of_cc=1,
                full_name=full_name,
                email=f"{user_id}@example.com",
                last_updated=datetime(2024, 5, 1, tzinfo=timezone.utc),
            )
        )
        db.add(
            Tradeline(
                tradeline_id=1,
                user_id=user_id,
                creditor="Bank Contoh",
                loan_type="credit_card",
                credit_limit=Decimal("10000000.00"),
                outstanding=Decimal("2500000.50"),
                monthly_payment=Decimal("500000.00"),
                interest_rate=Decimal("2.25"),
                tenure=12,
                open_date=date(2023, 1, 15),
                status="active",
            )
        )
        db.add(
            PaymentHistory(
                payment_id=1,
                tradeline_id=1,
                payment_date=date(2024, 4, 15),
                payment_amount=Decimal("500000.00"),
                penalty_amount=Decimal("0.00"),
                dpd=0,
            )
        )
        db.commit()


@pytest.fixture
def credit_factory():
    return sqlite_session_factory(CreditBase)


@pytest.fixture
def credit_store(credit_factory):
    return CreditDataStore(credit_factory)


@pytest.fixture
def transcript_store():
    return TranscriptLogger(sqlite_session_factory(TranscriptBase))


@pytest.fixture
def disabled_transcript_store():
    return TranscriptLogger(None)


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("META_WEBHOOK_VERIFY_TOKEN", "verify-me")
