# backend/slotbook/models/tables.py

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    Time,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

from .enums import BookingStatus, SubscriptionStatus, UserRole, enum_values

Base = declarative_base()
metadata = Base.metadata


def _enum_column(enum_cls, name: str):
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=16,
        values_callable=enum_values,
        validate_strings=True,
    )


class Users(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(Text, nullable=False, unique=True)
    name = Column(Text)
    role = Column(_enum_column(UserRole, 'user_role'), nullable=False, default=UserRole.CLIENT)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    businesses = relationship('Businesses', back_populates='owner')
    bookings = relationship('Bookings', back_populates='client')
    subscriptions = relationship('Subscriptions', back_populates='user')

    @property
    def display_name(self) -> str:
        return self.name or self.email


class Businesses(Base):
    __tablename__ = 'businesses'

    id = Column(Integer, primary_key=True)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    phone_number = Column(Text)
    location = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    # Both NULL = no configured hours = accepts no bookings
    open_time = Column(Time)
    close_time = Column(Time)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    owner = relationship('Users', back_populates='businesses')
    services = relationship('Services', back_populates='business', cascade='all, delete-orphan')
    calendar_events = relationship('CalendarEvents', back_populates='business', passive_deletes=True)


class Services(Base):
    __tablename__ = 'services'
    __table_args__ = (
        UniqueConstraint('business_id', 'name', name='uq_services_business_name'),
    )

    id = Column(Integer, primary_key=True)
    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Float, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    business = relationship('Businesses', back_populates='services')
    bookings = relationship('Bookings', back_populates='service', cascade='all, delete-orphan')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        # Storage-level guard: two live bookings can never share a start
        # instant on the same service, even across processes.
        Index(
            'uq_bookings_service_start_active',
            'service_id',
            'start_time',
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    service_id = Column(ForeignKey('services.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(_enum_column(BookingStatus, 'booking_status'), nullable=False, default=BookingStatus.PENDING)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    service = relationship('Services', back_populates='bookings')
    client = relationship('Users', back_populates='bookings')
    calendar_event = relationship(
        'CalendarEvents',
        uselist=False,
        back_populates='booking',
        cascade='all, delete-orphan',
        passive_deletes=True,
    )


class CalendarEvents(Base):
    __tablename__ = 'calendar_events'

    id = Column(Integer, primary_key=True)
    booking_id = Column(ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, unique=True)
    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(Text, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    booking = relationship('Bookings', back_populates='calendar_event')
    business = relationship('Businesses', back_populates='calendar_events')


class Subscriptions(Base):
    __tablename__ = 'subscriptions'

    id = Column(Integer, primary_key=True)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(_enum_column(SubscriptionStatus, 'subscription_status'), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(Text, nullable=False, server_default=text("'SAR'"))
    payment_reference = Column(Text, unique=True)
    current_period_start = Column(DateTime)
    current_period_end = Column(DateTime)
    trial_ends_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    user = relationship('Users', back_populates='subscriptions')
