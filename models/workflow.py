from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, func

from database import Base


class WorkflowDefinitionRecord(Base):
    __tablename__ = "workflow_definitions"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(256), nullable=False)
    application_type = Column(String(32), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    revision = Column(Integer, nullable=False, default=1)
    # Published definition snapshot (stages + transitions); never updated in place
    state = Column(JSON, nullable=False)
    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version_id}


class WorkflowInstanceRecord(Base):
    __tablename__ = "workflow_instances"

    id = Column(String(64), primary_key=True, index=True)
    loan_application_id = Column(String(64), unique=True, nullable=False, index=True)
    workflow_definition_id = Column(String(64), nullable=False, index=True)
    current_status = Column(String(32), nullable=False, index=True)
    assigned_role = Column(String(64), nullable=True, index=True)
    assigned_to_user_id = Column(String(64), nullable=True, index=True)
    sla_due_at = Column(DateTime(timezone=True), nullable=True, index=True)
    is_completed = Column(Boolean, nullable=False, default=False, index=True)
    state = Column(JSON, nullable=False)
    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version_id}
