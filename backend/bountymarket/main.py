from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from . import schemas
from .core.config import get_settings
from .core.logging import configure_logging
from .domain import (
    AlreadyResolved,
    DeadlinePassed,
    EventKind,
    InvalidAmount,
    InvalidIdentity,
    InvalidTimestampGuess,
    InvalidTiming,
    LedgerError,
    MarketNotActive,
    MarketNotFound,
    MarketStatus,
    ProofNotFound,
    ProofNotPending,
    ProofStatus,
    Side,
    TransferFailed,
    Unauthorized,
)
from .runtime import Runtime, build_runtime
from .services.market_service import MarketQuery, MarketService

settings = get_settings()
app = FastAPI(title="Bounty Market Ledger API", version="0.1.0", debug=settings.debug)

_runtime: Runtime | None = None

_ERROR_STATUS: dict[type[LedgerError], int] = {
    MarketNotFound: 404,
    ProofNotFound: 404,
    Unauthorized: 403,
    AlreadyResolved: 409,
    MarketNotActive: 409,
    DeadlinePassed: 409,
    ProofNotPending: 409,
    InvalidTiming: 422,
    InvalidAmount: 422,
    InvalidIdentity: 422,
    InvalidTimestampGuess: 422,
    TransferFailed: 502,
}


@app.on_event("startup")
def on_startup() -> None:
    """Build the ledger runtime when the API boots."""

    global _runtime
    configure_logging(settings)
    if _runtime is None:
        _runtime = build_runtime(settings)


@app.on_event("shutdown")
def on_shutdown() -> None:
    global _runtime
    if _runtime is not None:
        _runtime.close()
        _runtime = None


@app.exception_handler(LedgerError)
async def handle_ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)), 400
    )
    return JSONResponse(status_code=status_code, content={"error": exc.code, "detail": exc.message})


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _market_service() -> MarketService:
    """Provide the process-wide market service."""

    if _runtime is None:
        raise RuntimeError("Ledger runtime is not initialised")
    return _runtime.service


def _caller(x_account: Annotated[str, Header(description="Calling account identity")] = "") -> str:
    return x_account.strip()


def _required_caller(caller: str = Depends(_caller)) -> str:
    if not caller:
        raise Unauthorized("X-Account header is required")
    return caller


def _market_query(
    *,
    status: Annotated[MarketStatus | None, Query(description="Effective market status filter")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> MarketQuery:
    return MarketQuery(status=status, limit=limit, offset=offset)


@app.get("/markets", response_model=schemas.MarketList, tags=["markets"])
def list_markets(
    *,
    query: MarketQuery = Depends(_market_query),
    service: MarketService = Depends(_market_service),
):
    """List markets in creation order with their current odds."""

    result = service.list_markets(query)
    return schemas.MarketList(
        total=result.total, items=[schemas.Market.from_view(view) for view in result.markets]
    )


@app.post("/markets", response_model=schemas.Market, status_code=201, tags=["markets"])
def create_market(
    payload: schemas.MarketCreate,
    creator: str = Depends(_required_caller),
    service: MarketService = Depends(_market_service),
):
    view = service.create_market(
        question=payload.question,
        description=payload.description,
        deadline=payload.deadline,
        resolution_date=payload.resolution_date,
        creator=creator,
    )
    return schemas.Market.from_view(view)


@app.get("/markets/{market_id}", response_model=schemas.Market, tags=["markets"])
def get_market(market_id: int, service: MarketService = Depends(_market_service)):
    return schemas.Market.from_view(service.get_market(market_id))


@app.get("/markets/{market_id}/odds", response_model=schemas.Odds, tags=["markets"])
def get_odds(market_id: int, service: MarketService = Depends(_market_service)):
    return schemas.Odds.model_validate(service.get_odds(market_id))


@app.get(
    "/markets/{market_id}/payout-preview", response_model=schemas.PayoutPreview, tags=["markets"]
)
def preview_payout(
    market_id: int,
    side: Side,
    amount: Annotated[int, Query(description="Stake in the token's smallest unit")],
    service: MarketService = Depends(_market_service),
):
    """Estimate the payout of a stake placed now, ignoring later stakes."""

    return schemas.PayoutPreview(
        market_id=market_id,
        side=side,
        amount=amount,
        potential_payout=service.preview_payout(market_id, side, amount),
    )


@app.get("/markets/{market_id}/stakes", response_model=list[schemas.Stake], tags=["stakes"])
def list_stakes(market_id: int, service: MarketService = Depends(_market_service)):
    return list(service.list_stakes(market_id))


@app.post(
    "/markets/{market_id}/stakes", response_model=schemas.Stake, status_code=201, tags=["stakes"]
)
def place_stake(
    market_id: int,
    payload: schemas.StakeCreate,
    staker: str = Depends(_required_caller),
    service: MarketService = Depends(_market_service),
):
    return service.place_stake(
        market_id,
        side=payload.side,
        amount=payload.amount,
        timestamp_guess=payload.timestamp_guess,
        staker=staker,
    )


@app.post("/markets/{market_id}/bounty-claim", response_model=schemas.Market, tags=["admin"])
def verify_bounty_claim(
    market_id: int,
    payload: schemas.BountyClaim,
    caller: str = Depends(_caller),
    service: MarketService = Depends(_market_service),
):
    view = service.verify_bounty_claim(
        market_id,
        claimant=payload.claimant,
        actual_timestamp=payload.actual_timestamp,
        caller=caller,
    )
    return schemas.Market.from_view(view)


@app.post("/markets/{market_id}/resolve", response_model=schemas.SettlementReport, tags=["admin"])
def resolve_market(
    market_id: int,
    payload: schemas.Resolution,
    caller: str = Depends(_caller),
    service: MarketService = Depends(_market_service),
):
    """Resolve the market and pay winners and the bounty claimant in one step."""

    report = service.resolve_market(
        market_id,
        correct_answer=payload.correct_answer,
        actual_timestamp=payload.actual_timestamp,
        caller=caller,
    )
    return schemas.SettlementReport.model_validate(report.to_dict())


@app.get("/markets/{market_id}/proofs", response_model=list[schemas.Proof], tags=["proofs"])
def list_proofs(
    market_id: int,
    status: ProofStatus | None = None,
    service: MarketService = Depends(_market_service),
):
    return service.list_proofs(market_id=market_id, status=status)


@app.post(
    "/markets/{market_id}/proofs", response_model=schemas.Proof, status_code=201, tags=["proofs"]
)
def submit_proof(
    market_id: int,
    payload: schemas.ProofCreate,
    submitter: str = Depends(_required_caller),
    service: MarketService = Depends(_market_service),
):
    return service.submit_proof(
        market_id,
        submitter=submitter,
        image_url=payload.image_url,
        claimed_timestamp=payload.claimed_timestamp,
    )


@app.post("/proofs/{proof_id}/approve", response_model=schemas.Proof, tags=["proofs"])
def approve_proof(
    proof_id: int,
    caller: str = Depends(_caller),
    service: MarketService = Depends(_market_service),
):
    return service.approve_proof(proof_id, caller=caller)


@app.post("/proofs/{proof_id}/reject", response_model=schemas.Proof, tags=["proofs"])
def reject_proof(
    proof_id: int,
    caller: str = Depends(_caller),
    service: MarketService = Depends(_market_service),
):
    return service.reject_proof(proof_id, caller=caller)


@app.get("/events", response_model=list[schemas.LedgerEvent], tags=["events"])
def list_events(
    market_id: int | None = None,
    kind: EventKind | None = None,
    service: MarketService = Depends(_market_service),
):
    """Return the append-only audit trail, oldest first."""

    return service.list_events(market_id=market_id, kind=kind)


@app.get("/admin", response_model=schemas.Admin, tags=["admin"])
def get_admin(service: MarketService = Depends(_market_service)):
    return schemas.Admin(admin=service.get_admin())


@app.put("/admin", response_model=schemas.Admin, tags=["admin"])
def set_admin(
    payload: schemas.AdminUpdate,
    caller: str = Depends(_caller),
    service: MarketService = Depends(_market_service),
):
    return schemas.Admin(admin=service.set_admin(payload.admin, caller=caller))
