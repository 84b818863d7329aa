# healthdesk/connectors.py
from fastapi import APIRouter, Depends

from . import errors, schemas
from .deps import get_identity_provider, get_settings

router = APIRouter(prefix="/api/connector", tags=["connectors"])

SUPPORTED_ACTION = "get_authorization_url"


@router.post("/authorize", response_model=schemas.ConnectorAuthorizeOut)
def authorize_connector(
    payload: schemas.ConnectorAuthorizeIn,
    idp=Depends(get_identity_provider),
    settings=Depends(get_settings),
):
    if payload.action != SUPPORTED_ACTION:
        raise errors.ValidationError(f"Unsupported action. Only `{SUPPORTED_ACTION}` is implemented.")
    connector = payload.connector.strip().lower()
    connection_id = settings.connector_ids.get(connector)
    if not connection_id:
        raise errors.ValidationError(f"Unknown connector: {payload.connector}")

    url = idp.authorization_url(
        idp.connector_redirect_uri(connection_id),
        connection_id=connection_id,
        state=f"{connector}-connection",
    )
    return {"authorization_url": url, "data": {"link": url}}
