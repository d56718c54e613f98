"""Paymentwall pingback receiver.

/api/webhooks/paymentwall accepts the partner callback on any HTTP method,
with all parameters in the query string.

The response is ALWAYS ``200 OK`` with permissive CORS headers, whether a
token was issued, the signature was wrong, or the database was down.
Paymentwall retries on anything else, so a differentiated response would
turn every rejected or duplicate pingback into a retry storm.  What actually
happened is only visible in the logs (see ``app.core.pingback``).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from app.api.deps import get_pingback_controller
from app.core.pingback import PingbackController

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

PINGBACK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def acknowledge() -> PlainTextResponse:
    """The one response the partner ever sees."""
    return PlainTextResponse("OK", status_code=200, headers=CORS_HEADERS)


@router.api_route("/paymentwall", methods=PINGBACK_METHODS, include_in_schema=True)
async def receive_paymentwall_pingback(
    request: Request,
    controller: PingbackController = Depends(get_pingback_controller),
) -> PlainTextResponse:
    """Receive a Paymentwall pingback and acknowledge it unconditionally."""
    if request.method == "OPTIONS":
        return acknowledge()

    # Repeated keys resolve to their last value.
    params = dict(request.query_params)
    result = await controller.handle(params)

    logger.debug(
        "Pingback finished",
        extra={"outcome": result.outcome.value, "uid": result.uid, "ref": result.ref},
    )
    return acknowledge()
