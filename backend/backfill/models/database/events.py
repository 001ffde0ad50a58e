"""
Canonical event store model.

Live tracking and imports both write here; the import quota tracker reads
monthly counts from it.
"""
from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, Float, JSON
from backfill.core.database import Base


class Event(Base):
    """Canonical analytics event."""

    __tablename__ = "events"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    site_id = Column(Integer, nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)  # UTC
    type = Column(String(32), nullable=False)  # pageview, custom_event, performance, ...
    event_name = Column(String(256), nullable=False, default="")
    session_id = Column(String(64), nullable=False, default="")
    user_id = Column(String(64), nullable=False, default="")
    hostname = Column(String(253), nullable=False, default="")
    pathname = Column(Text, nullable=False, default="")
    querystring = Column(Text, nullable=False, default="")
    url_parameters = Column(JSON, nullable=True)
    page_title = Column(String(512), nullable=False, default="")
    referrer = Column(Text, nullable=False, default="")
    channel = Column(String(32), nullable=False, default="")
    browser = Column(String(64), nullable=False, default="")
    browser_version = Column(String(32), nullable=False, default="")
    operating_system = Column(String(64), nullable=False, default="")
    operating_system_version = Column(String(32), nullable=False, default="")
    language = Column(String(35), nullable=False, default="")
    country = Column(String(2), nullable=False, default="")
    region = Column(String(8), nullable=False, default="")
    city = Column(String(60), nullable=False, default="")
    lat = Column(Float, nullable=False, default=0)
    lon = Column(Float, nullable=False, default=0)
    screen_width = Column(Integer, nullable=False, default=0)
    screen_height = Column(Integer, nullable=False, default=0)
    device_type = Column(String(20), nullable=False, default="")
    props = Column(JSON, nullable=True)
    import_id = Column(String(36), nullable=True, index=True)
