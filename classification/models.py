# classification/models.py
"""
SQLAlchemy models for the records the classification pipeline touches.

Maps to:
- users, boards, board_members - read to resolve the caller's boards
- contacts - unique by lower-cased email when one is present
- vendors - at most one per contact (unique contact_id)
- expenses, expense_line_items - one fresh expense per classified expense
- tasks, activities - one task per classified task plus its "created" entry
"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class TaskStatus(str, enum.Enum):
    BACKLOG = "BACKLOG"
    NEXT_7_DAYS = "NEXT_7_DAYS"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    DONE = "DONE"


class Priority(str, enum.Enum):
    URGENT = "URGENT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class Board(Base):
    __tablename__ = "boards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    color = Column(String(20))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("BoardMember", back_populates="board")

    def __repr__(self) -> str:
        return f"<Board(id={self.id}, name={self.name})>"


class BoardMember(Base):
    __tablename__ = "board_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    board_id = Column(Integer, ForeignKey("boards.id"), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)

    board = relationship("Board", back_populates="members")

    __table_args__ = (
        UniqueConstraint("board_id", "user_id", name="board_members_board_id_user_id_key"),
    )


class Contact(Base):
    """A person or organisation; ``is_vendor`` flips to True once and stays."""

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), ForeignKey("users.id"))
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255))
    email = Column(String(255), index=True)
    phone = Column(String(50))
    company = Column(String(255))
    job_title = Column(String(255))
    notes = Column(Text)
    is_vendor = Column(Boolean, nullable=False, default=False)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor", back_populates="contact", uselist=False)

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, email={self.email})>"


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    phone = Column(String(50))
    notes = Column(Text)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    contact = relationship("Contact", back_populates="vendor")

    def __repr__(self) -> str:
        return f"<Vendor(id={self.id}, contact_id={self.contact_id})>"


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(10), nullable=False, default="USD")
    category = Column(String(100), nullable=False, default="Uncategorized")
    description = Column(Text)
    receipt_url = Column(Text)
    ai_vendor_name = Column(String(255))
    ai_confidence = Column(Float)
    ai_extracted_data = Column(JSON)
    created_by_id = Column(String(64), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    line_items = relationship(
        "ExpenseLineItem",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseLineItem.id",
    )


class ExpenseLineItem(Base):
    __tablename__ = "expense_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False)
    description = Column(Text, nullable=False, default="")
    quantity = Column(Float)
    rate = Column(Float)
    total = Column(Float)

    expense = relationship("Expense", back_populates="line_items")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    board_id = Column(Integer, ForeignKey("boards.id"), nullable=False)
    creator_id = Column(String(64), ForeignKey("users.id"))
    title = Column(String(500), nullable=False)
    description = Column(Text)
    status = Column(String(20), nullable=False, default=TaskStatus.BACKLOG.value)
    priority = Column(String(20), nullable=False, default=Priority.MEDIUM.value)
    position = Column(Integer, nullable=False, default=0)
    due_date = Column(DateTime)
    ai_summary = Column(Text)
    ai_labels = Column(JSON, nullable=False, default=list)
    ai_confidence = Column(Float)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    activities = relationship("Activity", back_populates="task")

    __table_args__ = (Index("idx_tasks_board_status_position", "board_id", "status", "position"),)

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, board_id={self.board_id}, position={self.position})>"


class Activity(Base):
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id"))
    action = Column(String(50), nullable=False)
    details = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    task = relationship("Task", back_populates="activities")
