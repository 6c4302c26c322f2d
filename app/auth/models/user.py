import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utcnow
from app.db.session import Base


class UserType(str, enum.Enum):
    FREELANCER = "freelancer"
    JOB_SEEKER = "job_seeker"
    TRAINER = "trainer"
    BA_PM = "ba_pm"
    CLIENT = "client"
    EMPLOYER = "employer"


class User(Base):
    """
    Marketplace profile as seen by the messaging subsystem.

    Accounts are owned by the identity provider; this table only carries what
    conversations and notifications need to render a participant.

    Attributes:
        id: Stable user id, equal to the ``sub`` claim of the access token
        email: Unique email address
        name: Display name
        avatar_url: Optional avatar location
        user_type: Marketplace profile kind (freelancer, employer, ...)
        role: "user" or "admin"
        is_active: Whether the account may act
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True, default=None)

    user_type: Mapped[str] = mapped_column(String(50), default=UserType.FREELANCER.value)
    role: Mapped[str] = mapped_column(String(50), default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
