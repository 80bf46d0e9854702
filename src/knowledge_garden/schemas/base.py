"""Shared schema building blocks."""

from pydantic import BaseModel, ConfigDict


class SQLAlchemyModel(BaseModel):
    """Base class for models that read from SQLAlchemy attributes."""

    model_config = ConfigDict(from_attributes=True)
