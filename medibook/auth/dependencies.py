from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from medibook.auth import jwt_handler
from medibook.database import SessionLocal
from medibook.models.doctor import Doctor
from medibook.models.user import DOCTOR_ROLE, User
from medibook.scheduling.permissions import Actor

security = HTTPBearer()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def actor_for_user(db: Session, user: User) -> Actor:
    doctor_id = None
    if user.role == DOCTOR_ROLE:
        doctor_id = db.query(Doctor.id).filter(Doctor.user_id == user.id).scalar()
    return Actor(user_id=user.id, role=user.role, doctor_id=doctor_id)


def get_current_actor(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Actor:
    return actor_for_user(db, user)
