from sqlalchemy import Column, Integer, String, DateTime, func
from . import Base

ROLES = ('student', 'parent', 'therapist', 'admin')

class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, default='student')  # one of ROLES
    created_at = Column(DateTime(timezone=True), server_default=func.now())
