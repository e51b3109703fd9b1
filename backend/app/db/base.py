from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# register every model on Base.metadata for create_all
import app.models  # noqa: E402,F401
