from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import relationship

from skorbot.database import CreditBase


class UserCreditInsight(CreditBase):
    __tablename__ = "usercreditinsights"

    user_id = Column(Text, primary_key=True)
    credit_score = Column(Integer)
    kol_score = Column(Integer)  # OJK collectability 1..5
    outstanding_amount = Column(Numeric(18, 2))
    number_of_unsecured_loan = Column(Integer)
    number_of_secured_loan = Column(Integer)
    penalty_amount = Column(Numeric(18, 2))
    max_dpd = Column(Integer)
    number_of_cc = Column(Integer)
    full_name = Column(Text)
    email = Column(Text)
    last_updated = Column(DateTime(timezone=True))

    tradelines = relationship("Tradeline", back_populates="insight")


class Tradeline(CreditBase):
    __tablename__ = "usertradelinedata"

    tradeline_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, ForeignKey("usercreditinsights.user_id"), nullable=False)
    creditor = Column(Text)
    loan_type = Column(Text)  # personal_loan, credit_card, ...
    credit_limit = Column(Numeric(18, 2))
    outstanding = Column(Numeric(18, 2))
    monthly_payment = Column(Numeric(18, 2))
    interest_rate = Column(Numeric(6, 2))
    tenure = Column(Integer)
    open_date = Column(Date)
    status = Column(Text)

    insight = relationship("UserCreditInsight", back_populates="tradelines")
    payments = relationship("PaymentHistory", back_populates="tradeline")


class PaymentHistory(CreditBase):
    __tablename__ = "userpaymenthistory"

    payment_id = Column(Integer, primary_key=True, autoincrement=True)
    tradeline_id = Column(Integer, ForeignKey("usertradelinedata.tradeline_id"), nullable=False)
    payment_date = Column(Date)
    payment_amount = Column(Numeric(18, 2))
    penalty_amount = Column(Numeric(18, 2))
    dpd = Column(Integer)

    tradeline = relationship("Tradeline", back_populates="payments")
