"""ORM tables and pydantic request/response models."""
