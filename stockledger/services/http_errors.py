from __future__ import annotations

from fastapi import HTTPException

from stockledger.errors import REASON_PERMISSION, REASON_STOCK, LedgerError

_STATUS_BY_REASON = {
    REASON_STOCK: 409,
    REASON_PERMISSION: 403,
}


def http_error(exc: LedgerError) -> HTTPException:
    return HTTPException(status_code=_STATUS_BY_REASON.get(exc.reason, 409), detail=exc.as_detail())


def not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"reason": "not_found", "message": f"{what} not found"})


def invalid(message: str) -> HTTPException:
    return HTTPException(status_code=422, detail={"reason": "validation", "message": message})
