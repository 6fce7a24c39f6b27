import re

from sqlalchemy.orm import DeclarativeBase, declared_attr


def _snake_plural(name: str) -> str:
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
    return snake if snake.endswith("s") else f"{snake}s"


class Base(DeclarativeBase):
    # Generate __tablename__ automatically (DomainRecord -> domain_records)
    @declared_attr.directive
    def __tablename__(cls) -> str:
        return _snake_plural(cls.__name__)
