from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def upsert(db: AsyncSession, model, values: dict, index_elements: list, set_):
    """
    Build an INSERT ... ON CONFLICT (index_elements) DO UPDATE statement.

    ``set_`` is either a dict or a callable receiving the statement, so callers
    can reference ``stmt.excluded`` for additive updates.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(**values)
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(**values)
    else:
        raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")

    updates = set_(stmt) if callable(set_) else set_
    return stmt.on_conflict_do_update(index_elements=index_elements, set_=updates)
