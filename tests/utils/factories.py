import uuid
from datetime import datetime

from faker import Faker
from sqlalchemy.orm import Session

from app.auth.models.user import User, UserType
from app.core.datetime_utils import utcnow
from app.notifications.models.notification import Notification, NotificationType

fake = Faker()


def create_user_factory(
    db_session: Session,
    email: str | None = None,
    name: str | None = None,
    user_type: UserType = UserType.FREELANCER,
    role: str = "user",
    is_active: bool = True,
) -> User:
    """
    Factory function to create test users.

    Args:
        db_session: Database session
        email: User email (generates random if None)
        name: User name (generates random if None)
        user_type: Marketplace profile kind
        role: User role ("user" or "admin")
        is_active: Whether user is active

    Returns:
        Created User instance
    """
    user = User(
        id=uuid.uuid4(),
        email=email or fake.unique.email(),
        name=name or fake.name(),
        avatar_url=fake.image_url(),
        user_type=user_type.value,
        role=role,
        is_active=is_active,
        created_at=utcnow(),
    )

    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)

    return user


def create_notification_factory(
    db_session: Session,
    user: User,
    notification_type: NotificationType = NotificationType.SYSTEM,
    title: str | None = None,
    is_read: bool = False,
    created_at: datetime | None = None,
    from_user: User | None = None,
) -> Notification:
    notification = Notification(
        id=uuid.uuid4(),
        user_id=user.id,
        notification_type=notification_type.value,
        title=title or fake.sentence(nb_words=4),
        content=fake.sentence(),
        from_user_id=from_user.id if from_user else None,
        is_read=is_read,
        read_at=utcnow() if is_read else None,
        created_at=created_at or utcnow(),
    )

    db_session.add(notification)
    db_session.commit()

    return notification
