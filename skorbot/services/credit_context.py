"""Credit Data Store access and the per-call credit context for the LLM."""

import asyncio
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from skorbot.logging_config import get_logger
from skorbot.models import PaymentHistory, Tradeline, UserCreditInsight

logger = get_logger("credit_context")

NO_CREDIT_DATA = "No specific credit data found for your account in the simulation database."
CONTEXT_HEADER = "Current User's Simulated Credit Data:"

REDACTED_INSIGHT_FIELDS = frozenset({"user_id", "full_name", "email", "last_updated"})
REDACTED_TRADELINE_FIELDS = frozenset({"tradeline_id", "user_id"})
REDACTED_PAYMENT_FIELDS = frozenset({"payment_id", "tradeline_id"})


class CreditDataError(Exception):
    """Credit Data Store could not be read."""


def _columns(row: Any) -> dict:
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def redact(record: dict, fields: frozenset) -> dict:
    return {key: value for key, value in record.items() if key not in fields}


class CreditDataStore:
    """Read-only view over usercreditinsights / usertradelinedata / userpaymenthistory."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def is_configured(self) -> bool:
        return self._session_factory is not None

    def _require(self) -> sessionmaker:
        if self._session_factory is None:
            raise CreditDataError("Credit data store is not configured")
        return self._session_factory

    def get_profile(self, user_id: str) -> Optional[dict]:
        with self._require()() as db:
            row = db.query(UserCreditInsight).filter(UserCreditInsight.user_id == user_id).first()
            return _columns(row) if row else None

    def has_profile(self, user_id: str) -> bool:
        return self.get_profile(user_id) is not None

    def get_tradelines(self, user_id: str) -> list[dict]:
        with self._require()() as db:
            rows = db.query(Tradeline).filter(Tradeline.user_id == user_id).order_by(Tradeline.tradeline_id).all()
            return [_columns(row) for row in rows]

    def get_payment_history(self, tradeline_id: int) -> list[dict]:
        with self._require()() as db:
            rows = (
                db.query(PaymentHistory)
                .filter(PaymentHistory.tradeline_id == tradeline_id)
                .order_by(PaymentHistory.payment_date.desc())
                .all()
            )
            return [_columns(row) for row in rows]


def load_credit_snapshot(store: CreditDataStore, user_id: str) -> Optional[dict]:
    """Profile + tradelines (each with its payment history), or None when the user has no profile."""
    try:
        insights = store.get_profile(user_id)
        if insights is None:
            return None
        tradelines = store.get_tradelines(user_id)
        for tradeline in tradelines:
            tradeline["payment_history"] = store.get_payment_history(tradeline["tradeline_id"])
    except SQLAlchemyError as exc:
        raise CreditDataError(f"Failed to load credit data: {exc}") from exc
    return {"insights": insights, "tradelines": tradelines}


def serialize_credit_snapshot(snapshot: Optional[dict]) -> str:
    """LLM-readable text with identifiers and raw timestamps removed."""
    if snapshot is None:
        return f"{CONTEXT_HEADER}\n{NO_CREDIT_DATA}"

    insights = redact(snapshot["insights"], REDACTED_INSIGHT_FIELDS)
    tradelines = []
    for tradeline in snapshot.get("tradelines", []):
        cleaned = redact(tradeline, REDACTED_TRADELINE_FIELDS | {"payment_history"})
        cleaned["payment_history"] = [
            redact(payment, REDACTED_PAYMENT_FIELDS) for payment in tradeline.get("payment_history", [])
        ]
        tradelines.append(cleaned)

    insights_json = json.dumps(insights, default=_json_default, ensure_ascii=False)
    tradelines_json = json.dumps(tradelines, default=_json_default, ensure_ascii=False)
    return f"{CONTEXT_HEADER}\nUser Credit Data:\nInsights: {insights_json}\nTradelines: {tradelines_json}"


class ContextAssembler:
    def __init__(self, store: CreditDataStore):
        self.store = store

    async def build_context(self, user_id: str) -> str:
        """Fresh credit context for one completion. Raises CreditDataError on store failure."""
        snapshot = await asyncio.to_thread(load_credit_snapshot, self.store, user_id)
        if snapshot is None:
            logger.info("No credit data found for user", extra={"context": {"user_id": user_id}})
        return serialize_credit_snapshot(snapshot)
