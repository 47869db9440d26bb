from sqlalchemy import JSON, Column, DateTime, Integer, String, func

from database import Base


class CommitteeReviewRecord(Base):
    __tablename__ = "committee_reviews"

    id = Column(String(64), primary_key=True, index=True)
    # Only corporate large loans go to committee; at most one review per application
    loan_application_id = Column(String(64), unique=True, nullable=False, index=True)
    committee_type = Column(String(32), nullable=False)
    status = Column(String(32), nullable=False, default="circulated", index=True)
    deadline_at = Column(DateTime(timezone=True), nullable=False, index=True)
    state = Column(JSON, nullable=False)
    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version_id}
