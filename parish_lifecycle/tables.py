"""
SQLAlchemy models for the parish administrative tables.

Booking rows reference their sacrament document through plain integer
columns rather than foreign key constraints: a cascade soft delete removes
the document row while the booking row still points at it.
"""

import uuid

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, Integer, String
from sqlalchemy import Text, Time, func

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):  # type: ignore[valid-type,misc]
    """Parishioner profile; the id mirrors the auth service user id."""

    __tablename__ = "user_tbl"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_firstname = Column(String(100), nullable=False)
    user_middle = Column(String(100), nullable=True)
    user_lastname = Column(String(100), nullable=False)
    user_gender = Column(String(20), nullable=True)
    user_status = Column(String(30), nullable=True)
    user_mobile = Column(String(30), nullable=True)
    user_bday = Column(Date, nullable=True)
    user_email = Column(String(200), nullable=False)
    user_image = Column(Text, nullable=True)
    date_created = Column(DateTime, server_default=func.now())


class Admin(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "admin_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    admin_firstname = Column(String(100), nullable=False)
    admin_lastname = Column(String(100), nullable=False)
    admin_email = Column(String(200), nullable=False)
    admin_mobile = Column(String(30), nullable=True)
    admin_bday = Column(Date, nullable=True)


class Priest(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "priest_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    priest_name = Column(String(200), nullable=False)
    priest_diocese = Column(String(200), nullable=True)
    priest_parish = Column(String(200), nullable=True)
    priest_availability = Column(String(10), nullable=True)


class Donation(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "donation_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=True)
    donation_amount = Column(Float, nullable=False)
    donation_intercession = Column(Text, nullable=True)
    donation_receipts = Column(Text, nullable=True)
    date_created = Column(DateTime, server_default=func.now())


class Document(Base):  # type: ignore[valid-type,misc]
    """Parishioner certificate record with uploaded scans."""

    __tablename__ = "document_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    firstname = Column(String(100), nullable=False)
    middle = Column(String(100), nullable=True)
    lastname = Column(String(100), nullable=False)
    gender = Column(String(20), nullable=True)
    mobile = Column(String(30), nullable=True)
    bday = Column(Date, nullable=True)
    marital_status = Column(String(30), nullable=True)
    baptismal_certificate = Column(Text, nullable=True)
    confirmation_certificate = Column(Text, nullable=True)
    wedding_certificate = Column(Text, nullable=True)


class CertificateRequest(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "request_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False)
    request_baptismcert = Column(Boolean, default=False)
    request_confirmationcert = Column(Boolean, default=False)
    document_id = Column(Integer, nullable=True)


class Booking(Base):  # type: ignore[valid-type,misc]
    """Sacrament booking, optionally owning one sacrament document."""

    __tablename__ = "booking_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=True)
    booking_sacrament = Column(String(30), nullable=False)
    booking_date = Column(Date, nullable=False)
    booking_time = Column(Time, nullable=False)
    booking_pax = Column(Integer, default=1)
    booking_status = Column(String(20), default="pending")
    booking_transaction = Column(String(64), nullable=True)
    price = Column(Float, nullable=True)
    payment_receipts = Column(Text, nullable=True)
    paid = Column(Boolean, default=False)
    wedding_docu_id = Column(Integer, nullable=True)
    baptism_docu_id = Column(Integer, nullable=True)
    burial_docu_id = Column(Integer, nullable=True)


class WeddingDocument(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "booking_wedding_docu_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    groom_fname = Column(String(100), nullable=True)
    groom_middle = Column(String(100), nullable=True)
    groom_lname = Column(String(100), nullable=True)
    bride_fname = Column(String(100), nullable=True)
    bride_middle = Column(String(100), nullable=True)
    bride_lname = Column(String(100), nullable=True)
    contact_no = Column(String(30), nullable=True)
    # Attachments hold public URLs or bucket paths
    groom_1x1 = Column(Text, nullable=True)
    bride_1x1 = Column(Text, nullable=True)
    groom_baptismal_cert = Column(Text, nullable=True)
    bride_baptismal_cert = Column(Text, nullable=True)
    groom_confirmation_cert = Column(Text, nullable=True)
    bride_confirmation_cert = Column(Text, nullable=True)
    groom_cenomar = Column(Text, nullable=True)
    bride_cenomar = Column(Text, nullable=True)
    groom_banns = Column(Text, nullable=True)
    bride_banns = Column(Text, nullable=True)
    groom_permission = Column(Text, nullable=True)
    bride_permission = Column(Text, nullable=True)
    marriage_license = Column(Text, nullable=True)
    marriage_contract = Column(Text, nullable=True)


class BaptismDocument(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "booking_baptism_docu_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    baby_name = Column(String(200), nullable=True)
    baby_bday = Column(Date, nullable=True)
    baby_birthplace = Column(String(200), nullable=True)
    father_name = Column(String(200), nullable=True)
    father_birthplace = Column(String(200), nullable=True)
    mother_name = Column(String(200), nullable=True)
    mother_birthplace = Column(String(200), nullable=True)
    current_address = Column(Text, nullable=True)
    marriage_type = Column(String(50), nullable=True)
    main_godfather = Column(JSON, nullable=True)
    main_godmother = Column(JSON, nullable=True)
    additional_godparents = Column(JSON, nullable=True)
    contact_no = Column(String(30), nullable=True)


class BurialDocument(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "booking_burial_docu_tbl"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deceased_name = Column(String(200), nullable=True)
    deceased_age = Column(Integer, nullable=True)
    deceased_civil_status = Column(String(30), nullable=True)
    requested_by = Column(String(200), nullable=True)
    deceased_relationship = Column(String(100), nullable=True)
    contact_no = Column(String(30), nullable=True)
    place_of_mass = Column(String(200), nullable=True)
    mass_address = Column(Text, nullable=True)
    funeral_mass = Column(Boolean, default=False)
    death_anniversary = Column(Boolean, default=False)
    funeral_blessing = Column(Boolean, default=False)
    tomb_blessing = Column(Boolean, default=False)
