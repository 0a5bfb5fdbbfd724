"""Social login for FastAPI applications backed by SQLModel."""

__version__ = "0.1.0"
