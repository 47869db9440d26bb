from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, func

from database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True, index=True)
    # event_type:event_id; a redelivered event finds its row and is skipped
    dedup_key = Column(String(128), unique=True, nullable=False, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    aggregate_id = Column(String(64), nullable=False, index=True)
    loan_application_id = Column(String(64), nullable=False, index=True)
    recipient_role = Column(String(64), nullable=True)
    recipient_user_id = Column(String(64), nullable=True)
    subject = Column(String(256), nullable=False)
    body = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(32), nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
