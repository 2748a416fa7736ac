"""
Database models and persistence layer using SQLAlchemy.
Stores negotiations, their messages, offer notices and user interventions,
and exposes them to the orchestrator as callbacks.
"""

import asyncio
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from .collaborators import NegotiationCallbacks, OfferNotice
from .guidance import UserIntervention
from .models import FinalOffer, MessageRecord, NegotiationStatus

Base = declarative_base()

USER_SENDER = "user"


# ===== DATABASE MODELS =====

class NegotiationRecord(Base):
    """One negotiation and its latest status."""
    __tablename__ = "negotiations"

    id = Column(Integer, primary_key=True, index=True)
    negotiation_id = Column(String, unique=True, index=True)
    counterparty_id = Column(String, index=True, default="")

    status = Column(String, default=NegotiationStatus.ACTIVE.value)
    round_count = Column(Integer, default=0)
    final_offer = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime, nullable=True)

    messages = relationship("MessageRow", back_populates="negotiation", order_by="MessageRow.timestamp")
    offers = relationship("OfferRow", back_populates="negotiation")

    def to_dict(self) -> dict:
        return {
            'negotiation_id': self.negotiation_id,
            'counterparty_id': self.counterparty_id,
            'status': self.status,
            'round_count': self.round_count,
            'final_offer': self.final_offer,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }


class MessageRow(Base):
    """A negotiation message, or a user intervention when ``is_intervention``."""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(String, unique=True, index=True)
    negotiation_id = Column(String, ForeignKey("negotiations.negotiation_id"), index=True)

    sender = Column(String)
    content = Column(Text)
    timestamp = Column(Float, index=True)
    message_metadata = Column(JSON, nullable=True)
    is_intervention = Column(Boolean, default=False)

    negotiation = relationship("NegotiationRecord", back_populates="messages")


class OfferRow(Base):
    """Supplier offer notices, one per captured supplier turn."""
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True)
    negotiation_id = Column(String, ForeignKey("negotiations.negotiation_id"), index=True)
    counterparty_id = Column(String)
    avg_price = Column(Float)
    lead_time = Column(Integer)
    payment_terms = Column(String)
    received_at = Column(DateTime, default=func.now())

    negotiation = relationship("NegotiationRecord", back_populates="offers")


# ===== UTILITY FUNCTIONS =====

def make_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def init_database(engine: Engine) -> sessionmaker:
    """Create tables and return a session factory bound to ``engine``."""
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ===== STORE =====

class MessageStore:
    """Negotiation persistence backing the orchestrator callbacks.

    Callback writes run in the default executor so concurrent negotiations
    keep their event loop free while the database commits.
    """

    def __init__(self, session_factory: sessionmaker, clock=time.time):
        self._session_factory = session_factory
        self._clock = clock
        self._lock = threading.RLock()

    @classmethod
    def from_url(cls, database_url: str) -> "MessageStore":
        return cls(init_database(make_engine(database_url)))

    @contextmanager
    def _session(self):
        # One session at a time: in-memory SQLite shares a single connection
        with self._lock, self._session_factory() as session:
            yield session

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _ensure(self, session: Session, negotiation_id: str, counterparty_id: str = "") -> NegotiationRecord:
        record = session.query(NegotiationRecord).filter(
            NegotiationRecord.negotiation_id == negotiation_id
        ).first()
        if record is None:
            record = NegotiationRecord(negotiation_id=negotiation_id, counterparty_id=counterparty_id)
            session.add(record)
            session.flush()
        elif counterparty_id and not record.counterparty_id:
            record.counterparty_id = counterparty_id
        return record

    def create_negotiation(self, negotiation_id: str, counterparty_id: str = "") -> dict:
        with self._session() as session:
            record = self._ensure(session, negotiation_id, counterparty_id)
            session.commit()
            return record.to_dict()

    def get_negotiation(self, negotiation_id: str) -> Optional[dict]:
        with self._session() as session:
            record = session.query(NegotiationRecord).filter(
                NegotiationRecord.negotiation_id == negotiation_id
            ).first()
            return record.to_dict() if record else None

    def save_message(self, negotiation_id: str, message: MessageRecord) -> None:
        with self._session() as session:
            self._ensure(session, negotiation_id)
            session.add(MessageRow(
                message_id=uuid.uuid4().hex,
                negotiation_id=negotiation_id,
                sender=message.sender,
                content=message.content,
                timestamp=message.timestamp,
                message_metadata=message.metadata,
            ))
            session.commit()

    def get_messages(self, negotiation_id: str) -> List[MessageRecord]:
        """Negotiation messages in timestamp order, interventions excluded."""
        with self._session() as session:
            rows = session.query(MessageRow).filter(
                MessageRow.negotiation_id == negotiation_id,
                MessageRow.is_intervention == False,  # noqa: E712
            ).order_by(MessageRow.timestamp, MessageRow.id).all()
            return [
                MessageRecord(
                    sender=row.sender, content=row.content,
                    timestamp=row.timestamp, metadata=row.message_metadata or {},
                )
                for row in rows
            ]

    def add_intervention(
        self, negotiation_id: str, content: str, timestamp: Optional[float] = None
    ) -> UserIntervention:
        intervention = UserIntervention(
            content=content,
            timestamp=self._clock() if timestamp is None else timestamp,
            message_id=uuid.uuid4().hex,
        )
        with self._session() as session:
            self._ensure(session, negotiation_id)
            session.add(MessageRow(
                message_id=intervention.message_id,
                negotiation_id=negotiation_id,
                sender=USER_SENDER,
                content=content,
                timestamp=intervention.timestamp,
                is_intervention=True,
            ))
            session.commit()
        return intervention

    def get_interventions(self, negotiation_id: str, since: float) -> List[UserIntervention]:
        """Interventions strictly newer than ``since``, oldest first."""
        with self._session() as session:
            rows = session.query(MessageRow).filter(
                MessageRow.negotiation_id == negotiation_id,
                MessageRow.is_intervention == True,  # noqa: E712
                MessageRow.timestamp > since,
            ).order_by(MessageRow.timestamp).all()
            return [
                UserIntervention(content=row.content, timestamp=row.timestamp, message_id=row.message_id)
                for row in rows
            ]

    def update_status(
        self,
        negotiation_id: str,
        status: NegotiationStatus,
        round_count: int,
        final_offer: Optional[FinalOffer] = None,
    ) -> None:
        with self._session() as session:
            record = self._ensure(session, negotiation_id)
            record.status = NegotiationStatus(status).value
            record.round_count = round_count
            record.final_offer = final_offer.model_dump(mode="json") if final_offer else None
            if record.status != NegotiationStatus.ACTIVE.value:
                record.completed_at = datetime.now()
            session.commit()

    def save_offer(self, negotiation_id: str, notice: OfferNotice) -> None:
        with self._session() as session:
            self._ensure(session, negotiation_id, notice.counterparty_id)
            session.add(OfferRow(
                negotiation_id=negotiation_id,
                counterparty_id=notice.counterparty_id,
                avg_price=notice.avg_price,
                lead_time=notice.lead_time,
                payment_terms=notice.payment_terms,
            ))
            session.commit()

    def get_offers(self, negotiation_id: str) -> List[OfferNotice]:
        with self._session() as session:
            rows = session.query(OfferRow).filter(
                OfferRow.negotiation_id == negotiation_id
            ).order_by(OfferRow.id).all()
            return [
                OfferNotice(
                    counterparty_id=row.counterparty_id, avg_price=row.avg_price,
                    lead_time=row.lead_time, payment_terms=row.payment_terms,
                )
                for row in rows
            ]

    def get_statistics(self) -> dict:
        with self._session() as session:
            total = session.query(NegotiationRecord).count()
            completed = session.query(NegotiationRecord).filter(
                NegotiationRecord.status == NegotiationStatus.COMPLETED.value
            ).count()
            avg_rounds = session.query(func.avg(NegotiationRecord.round_count)).scalar()
            return {
                'total_negotiations': total,
                'completed_negotiations': completed,
                'completion_rate': completed / total if total > 0 else 0,
                'avg_rounds': avg_rounds or 0,
            }

    def callbacks(self, negotiation_id: Optional[str] = None) -> NegotiationCallbacks:
        """Orchestrator callbacks writing to this store.

        Usable directly as a per-negotiation callbacks factory; the record
        is created up front when ``negotiation_id`` is given.
        """
        if negotiation_id is not None:
            self.create_negotiation(negotiation_id)

        async def on_message(nid: str, message: MessageRecord) -> None:
            await self._run_blocking(self.save_message, nid, message)

        async def on_status_change(nid, status, round_count, final_offer=None) -> None:
            await self._run_blocking(self.update_status, nid, status, round_count, final_offer)

        async def on_offer_received(nid: str, notice: OfferNotice) -> None:
            await self._run_blocking(self.save_offer, nid, notice)

        async def get_user_interventions(nid: str, since: float) -> List[UserIntervention]:
            return await self._run_blocking(self.get_interventions, nid, since)

        return NegotiationCallbacks(
            on_message=on_message,
            on_status_change=on_status_change,
            on_offer_received=on_offer_received,
            get_user_interventions=get_user_interventions,
        )
