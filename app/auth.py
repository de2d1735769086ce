import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from .models import User

logger = logging.getLogger(__name__)


def get_current_host(
    x_host_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the host making a management request.

    Identity and permissions belong to the surrounding application; this reads
    the host id its gateway forwards in X-Host-Id. Deployments replace it via
    app.dependency_overrides with their real identity provider.
    """
    if x_host_id is None:
        logger.warning("Authentication failed: missing X-Host-Id header")
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = db.query(User).filter(User.id == x_host_id).first()
    if not user:
        logger.warning(f"Authentication failed: unknown host {x_host_id}")
        raise HTTPException(status_code=401, detail="Not authenticated")

    return user
