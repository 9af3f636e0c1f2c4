import json
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import seed_credit_profile
from skorbot.services.credit_context import (
    CONTEXT_HEADER,
    NO_CREDIT_DATA,
    ContextAssembler,
    CreditDataError,
    CreditDataStore,
    load_credit_snapshot,
    serialize_credit_snapshot,
)


def parse_context(text: str) -> tuple[dict, list]:
    lines = text.splitlines()
    insights = json.loads(lines[2][len("Insights: ") :])
    tradelines = json.loads(lines[3][len("Tradelines: ") :])
    return insights, tradelines


class TestCreditDataStore:
    def test_profile_lookup(self, credit_factory, credit_store):
        seed_credit_profile(credit_factory, "user-1")

        assert credit_store.has_profile("user-1") is True
        assert credit_store.has_profile("someone-else") is False
        assert credit_store.get_profile("user-1")["credit_score"] == 720

    def test_unconfigured_store_raises(self):
        store = CreditDataStore(None)
        assert store.is_configured() is False
        with pytest.raises(CreditDataError):
            store.get_profile("user-1")


class TestLoadSnapshot:
    def test_tradelines_carry_payment_history(self, credit_factory, credit_store):
        seed_credit_profile(credit_factory, "user-1")

        snapshot = load_credit_snapshot(credit_store, "user-1")

        assert snapshot["insights"]["full_name"] == "Budi"
        assert len(snapshot["tradelines"]) == 1
        assert snapshot["tradelines"][0]["payment_history"][0]["dpd"] == 0

    def test_unknown_user_has_no_snapshot(self, credit_store):
        assert load_credit_snapshot(credit_store, "nobody") is None

    def test_database_errors_become_credit_data_errors(self):
        store = Mock()
        store.get_profile.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(CreditDataError):
            load_credit_snapshot(store, "user-1")


class TestSerialize:
    def test_no_data_sentinel(self):
        assert serialize_credit_snapshot(None) == f"{CONTEXT_HEADER}\n{NO_CREDIT_DATA}"

    def test_identifiers_are_redacted(self, credit_factory, credit_store):
        seed_credit_profile(credit_factory, "user-1")

        text = serialize_credit_snapshot(load_credit_snapshot(credit_store, "user-1"))
        insights, tradelines = parse_context(text)

        assert text.startswith(CONTEXT_HEADER)
        assert "user_id" not in insights
        assert "full_name" not in insights
        assert "Budi" not in text
        assert "email" not in insights
        assert "last_updated" not in insights
        assert insights["outstanding_amount"] == 15000000
        assert "tradeline_id" not in tradelines[0]
        assert "user_id" not in tradelines[0]
        assert tradelines[0]["outstanding"] == 2500000.5
        assert tradelines[0]["open_date"] == "2023-01-15"
        payment = tradelines[0]["payment_history"][0]
        assert "payment_id" not in payment
        assert "tradeline_id" not in payment
        assert payment["payment_date"] == "2024-04-15"


class TestContextAssembler:
    @pytest.mark.asyncio
    async def test_builds_fresh_context_per_call(self, credit_factory, credit_store):
        assembler = ContextAssembler(credit_store)

        before = await assembler.build_context("user-1")
        seed_credit_profile(credit_factory, "user-1")
        after = await assembler.build_context("user-1")

        assert NO_CREDIT_DATA in before
        assert "Insights:" in after

    @pytest.mark.asyncio
    async def test_unconfigured_store_fails(self):
        with pytest.raises(CreditDataError):
            await ContextAssembler(CreditDataStore(None)).build_context("user-1")
