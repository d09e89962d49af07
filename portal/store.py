"""
Store Helpers
Commits through Flask-SQLAlchemy and translates driver errors into portal errors
"""
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from portal.errors import StorageError, UniqueViolation
from portal.extensions import db

# SQLSTATE for unique_violation
PG_UNIQUE_VIOLATION = '23505'


def is_unique_violation(exc):
    """True when an IntegrityError comes from a unique constraint"""
    orig = getattr(exc, 'orig', None)
    code = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)
    if code:
        return code == PG_UNIQUE_VIOLATION
    message = str(orig if orig is not None else exc).lower()
    return 'unique' in message or 'duplicate' in message


@contextmanager
def atomic():
    """
    Unit of work: commits on success, rolls back and raises a typed error on failure.
    Flushes inside the block surface constraint errors here as well.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if is_unique_violation(exc):
            raise UniqueViolation(str(exc.orig)) from exc
        raise StorageError(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(str(exc)) from exc
    except Exception:
        db.session.rollback()
        raise


def save(*objects):
    """Insert/update objects in a single commit"""
    with atomic() as session:
        session.add_all(objects)
    return objects[0] if len(objects) == 1 else objects
