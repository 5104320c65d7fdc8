"""
Generic handlers shared by resource routers.
"""
import logging
from fastapi import Depends, Response, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import NotFound

logger = logging.getLogger(__name__)


def delete_one(model):
    """Build a DELETE endpoint removing one `model` row by primary key."""
    def handler(id: int, db: Session = Depends(get_db)):
        doc = db.get(model, id)
        if not doc:
            raise NotFound("No document found with that ID")

        db.delete(doc)
        db.commit()
        logger.info("Deleted %s id=%s", model.__tablename__, id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    handler.__name__ = f"delete_{model.__tablename__}"
    return handler
