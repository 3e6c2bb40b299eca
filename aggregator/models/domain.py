"""
Pageview Aggregator — Domain model.

Domains are provisioned by the tracking frontend; the aggregator only reads
them. ``id`` namespaces every per-domain statistics table and ``name``
locates the domain's buffer file.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from aggregator.database import Base


class Domain(Base):
    __tablename__ = "domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self):
        return f"<Domain {self.id} {self.name}>"
