"""
数据库模型基类（SQLAlchemy 2.0 风格）
"""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# 元数据对象（建表使用）
metadata = Base.metadata
