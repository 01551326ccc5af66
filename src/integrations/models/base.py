from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative root for connection tables; every model names its own table."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(primary_key=True)
