from sqlalchemy import JSON, Column, DateTime, Integer, Numeric, String

from database import Base


class CreditAdvisoryRecord(Base):
    __tablename__ = "credit_advisories"

    id = Column(String(64), primary_key=True, index=True)
    loan_application_id = Column(String(64), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="pending", index=True)
    overall_score = Column(Numeric(5, 2), nullable=True)
    overall_rating = Column(String(32), nullable=True)
    recommendation = Column(String(32), nullable=True)
    model_version = Column(String(64), nullable=True)
    state = Column(JSON, nullable=False)
    version_id = Column(Integer, nullable=False, default=1)
    # Sequence breaks ties between advisories created in the same instant
    sequence = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False)

    __mapper_args__ = {"version_id_col": version_id}
