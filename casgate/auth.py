from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from .models import CASUser

SESSION_KEY = "cas"

def get_cas_user_optional(request: Request) -> Optional[CASUser]:
    cas = request.session.get(SESSION_KEY)
    if not cas or not cas.get("user"):
        return None
    return CASUser(
        user=cas["user"],
        attributes=cas.get("extra_attributes") or {},
        proxy_ticket=cas.get("proxy_ticket"),
    )

def get_cas_user(user: Optional[CASUser] = Depends(get_cas_user_optional)) -> CASUser:
    """
    Raises 401 for anonymous requests. CASMiddleware turns that into a
    redirect to the CAS login page (XHR requests keep the 401).
    """
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user

def require_attribute(name: str, value: str):
    """
    Dependency factory: the CAS user must carry attribute `name` equal to (or,
    for multi-valued attributes, containing) `value`.
    """
    def dependency(user: CASUser = Depends(get_cas_user)) -> CASUser:
        actual = user.attributes.get(name)
        values = actual if isinstance(actual, list) else [actual]
        if value not in values:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Attribute {name} required")
        return user
    return dependency
