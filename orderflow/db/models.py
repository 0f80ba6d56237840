"""Database base for the order store"""

from sqlalchemy.orm import declarative_base

# ORM models live in infrastructure/orm and register on this Base
Base = declarative_base()
