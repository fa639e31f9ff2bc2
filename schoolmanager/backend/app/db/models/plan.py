# backend/app/db/models/plan.py
from sqlalchemy import Column, String, Integer
from app.db.base import BaseModel


class Plan(BaseModel):
    """Named capacity plan assignable to tenants"""
    __tablename__ = "plans"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    max_members = Column(Integer, nullable=False, default=0)
