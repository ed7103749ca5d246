"""
Database models and the store handle for the Lifestyle Planner API.

Every query that touches plan data is scoped by the owning user, either directly on
``plans.user_id`` or through a join on ``plans`` for the child tables.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from fastapi import Request
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text, create_engine, event, text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from lifeplanner_api.models import PlanStatus, SectionStatus

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Registered account; the password is only ever stored as a bcrypt hash"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    plans = relationship("Plan", back_populates="owner", cascade="all, delete-orphan")


class Plan(Base):
    """A user's lifestyle plan"""
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)

    title = Column(String(255), nullable=True)
    # Free-form mapping supplied by the client, e.g. {"Nutrición": "Dieta balanceada"}
    parameters = Column(JSON, nullable=False, default=dict)
    status = Column(String(50), nullable=False, default=PlanStatus.draft.value)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    owner = relationship("User", back_populates="plans")
    sections = relationship(
        "PlanSection", back_populates="plan", cascade="all, delete-orphan", order_by="PlanSection.id"
    )
    reminders = relationship(
        "PlanReminder", back_populates="plan", cascade="all, delete-orphan", order_by="PlanReminder.id"
    )
    summaries = relationship(
        "PlanSummary", back_populates="plan", cascade="all, delete-orphan", order_by="PlanSummary.id"
    )


class PlanSection(Base):
    """One thematic block of a plan (Profesional, Nutrición, ...)"""
    __tablename__ = "plan_sections"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), index=True, nullable=False)

    section_type = Column(String(100), nullable=False)
    content = Column(Text, nullable=False, default="")
    status = Column(String(50), nullable=False, default=SectionStatus.generated.value)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    plan = relationship("Plan", back_populates="sections")


class PlanReminder(Base):
    """Recurring reminder attached to a plan"""
    __tablename__ = "plan_reminders"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), index=True, nullable=False)

    rule = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    plan = relationship("Plan", back_populates="reminders")


class PlanSummary(Base):
    """Executive summary history; append-only, the newest row is the current one"""
    __tablename__ = "plan_summaries"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), index=True, nullable=False)

    title = Column(String(255), nullable=True)
    executive_summary = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, default=_utcnow)

    plan = relationship("Plan", back_populates="summaries")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine and session factory with an explicit lifecycle.

    Created once per application, ``open()``-ed at startup and ``dispose()``-d at
    shutdown. Routes reach it through ``get_database``.
    """

    def __init__(self, url: str):
        self.url = url
        engine_kwargs: Dict[str, Any] = {
            "pool_pre_ping": True,  # Detect connections dropped by the server
            "pool_recycle": 3600,
        }
        if url.startswith("sqlite"):
            # Requests are served from a thread pool, so the connection may change threads
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 10.0}
        else:
            engine_kwargs["connect_args"] = {"connect_timeout": 10}

        self.engine: Engine = create_engine(url, **engine_kwargs)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def open(self) -> None:
        """Create all tables that do not exist yet"""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database ready at %s", self.engine.url.render_as_string(hide_password=True))

    def session(self) -> Session:
        return self.SessionLocal()

    def ping(self) -> None:
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database connections released")


class DatabaseService:
    """Service class for database operations"""

    def __init__(self, db: Session):
        self.db = db

    # Users

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, email: str, password_hash: str) -> User:
        user = User(email=email, password_hash=password_hash)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    # Plans

    def list_plans(self, user_id: int) -> List[Plan]:
        """List plans owned by the user"""
        return self.db.query(Plan).filter(Plan.user_id == user_id).all()

    def create_plan(self, user_id: int, title: Optional[str], parameters: Dict[str, str]) -> Plan:
        plan = Plan(user_id=user_id, title=title, parameters=parameters, status=PlanStatus.draft.value)
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def get_plan(self, user_id: int, plan_id: int) -> Optional[Plan]:
        """Get plan by ID, only if it belongs to the user"""
        return self.db.query(Plan).filter(Plan.id == plan_id, Plan.user_id == user_id).first()

    def update_plan(self, plan: Plan, changes: Dict[str, Any]) -> Plan:
        """Apply the fields present in a patch"""
        for key, value in changes.items():
            setattr(plan, key, value)
        plan.updated_at = _utcnow()
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def delete_plan(self, plan: Plan) -> None:
        """Delete a plan; sections, reminders and summaries go with it"""
        self.db.delete(plan)
        self.db.commit()

    # Sections

    def list_sections(self, plan_id: int) -> List[PlanSection]:
        return (
            self.db.query(PlanSection)
            .filter(PlanSection.plan_id == plan_id)
            .order_by(PlanSection.id)
            .all()
        )

    def create_sections(self, plan_id: int, drafts: Iterable[Tuple[str, str]]) -> List[PlanSection]:
        """Insert (section_type, content) pairs in a single transaction"""
        sections = [
            PlanSection(plan_id=plan_id, section_type=section_type, content=content)
            for section_type, content in drafts
        ]
        try:
            self.db.add_all(sections)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return sections

    def get_section(self, user_id: int, plan_id: int, section_id: int) -> Optional[PlanSection]:
        """Get a section of the given plan, only if the plan belongs to the user"""
        return (
            self.db.query(PlanSection)
            .join(Plan, PlanSection.plan_id == Plan.id)
            .filter(
                PlanSection.id == section_id,
                PlanSection.plan_id == plan_id,
                Plan.user_id == user_id,
            )
            .first()
        )

    def update_section_content(self, section: PlanSection, content: str,
                               status: str = SectionStatus.adjusted.value) -> PlanSection:
        section.content = content
        section.status = status
        # onupdate only fires when a column value actually changes
        section.updated_at = _utcnow()
        self.db.commit()
        self.db.refresh(section)
        return section

    # Summaries

    def create_summary(self, plan_id: int, title: Optional[str], executive_summary: str) -> PlanSummary:
        summary = PlanSummary(plan_id=plan_id, title=title, executive_summary=executive_summary)
        self.db.add(summary)
        self.db.commit()
        self.db.refresh(summary)
        return summary

    def get_latest_summary(self, plan_id: int) -> Optional[PlanSummary]:
        return (
            self.db.query(PlanSummary)
            .filter(PlanSummary.plan_id == plan_id)
            .order_by(PlanSummary.id.desc())
            .first()
        )

    def list_summaries(self, plan_id: int) -> List[PlanSummary]:
        return (
            self.db.query(PlanSummary)
            .filter(PlanSummary.plan_id == plan_id)
            .order_by(PlanSummary.id.desc())
            .all()
        )

    # Reminders

    def create_reminder(self, plan_id: int, rule: str, is_active: bool = True) -> PlanReminder:
        reminder = PlanReminder(plan_id=plan_id, rule=rule, is_active=is_active)
        self.db.add(reminder)
        self.db.commit()
        self.db.refresh(reminder)
        return reminder

    def list_reminders(self, plan_id: int) -> List[PlanReminder]:
        return (
            self.db.query(PlanReminder)
            .filter(PlanReminder.plan_id == plan_id)
            .order_by(PlanReminder.id)
            .all()
        )

    def get_reminder(self, user_id: int, reminder_id: int) -> Optional[PlanReminder]:
        """Get a reminder, only if its plan belongs to the user"""
        return (
            self.db.query(PlanReminder)
            .join(Plan, PlanReminder.plan_id == Plan.id)
            .filter(PlanReminder.id == reminder_id, Plan.user_id == user_id)
            .first()
        )

    def update_reminder(self, reminder: PlanReminder, changes: Dict[str, Any]) -> PlanReminder:
        for key, value in changes.items():
            setattr(reminder, key, value)
        reminder.updated_at = _utcnow()
        self.db.commit()
        self.db.refresh(reminder)
        return reminder

    def delete_reminder(self, reminder: PlanReminder) -> None:
        self.db.delete(reminder)
        self.db.commit()

    def close(self):
        """Close database session"""
        self.db.close()


# Database connection management
def get_database(request: Request) -> Iterator[DatabaseService]:
    """Get DatabaseService instance for dependency injection"""
    db = request.app.state.database.session()
    try:
        yield DatabaseService(db)
    finally:
        db.close()
