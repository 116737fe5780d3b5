from __future__ import annotations

from typing import Annotated

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger

from . import crud, schemas
from .core.config import settings
from .db import get_db, init_db
from .domain import RaffleError, TicketIntegrityError
from .repositories import NotificationRepository
from .services.notifications import WinnerNotifier, build_winner_notifier
from .services.payment_service import PaymentService
from .services.raffle_service import RaffleService, RaffleUpdate
from .services.ticket_allocator import TicketAllocator
from .services.winner_selector import WinnerSelector

app = FastAPI(title="Raffle Draw API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize database connections when the API boots."""

    init_db()


@app.exception_handler(RaffleError)
def handle_raffle_error(request: Request, exc: RaffleError) -> JSONResponse:
    """Render domain failures with the status code each error class carries."""

    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc)
    payload = schemas.ErrorResponse(
        detail=str(exc),
        error=type(exc).__name__,
        issues=exc.issues if isinstance(exc, TicketIntegrityError) else None,
    )
    return JSONResponse(status_code=exc.status_code, content=payload.model_dump(exclude_none=True))


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness check consumed by infrastructure monitors."""

    return {"status": "ok"}


def _raffle_service(db=Depends(get_db)) -> RaffleService:
    return RaffleService(db)


def _payment_service(db=Depends(get_db)) -> PaymentService:
    return PaymentService(db)


def _ticket_allocator(db=Depends(get_db)) -> TicketAllocator:
    """Provide the ticket allocator wired with a SQLAlchemy session."""

    return TicketAllocator(db)


def _winner_selector(db=Depends(get_db)) -> WinnerSelector:
    """Provide the winner selector wired with a SQLAlchemy session."""

    return WinnerSelector(db)


def _winner_notifier() -> WinnerNotifier:
    return build_winner_notifier(settings)


def _notification_repository(db=Depends(get_db)) -> NotificationRepository:
    return NotificationRepository(db)


# ----------------------------------------------------------------------
# Raffles


@app.get("/raffles", response_model=schemas.RaffleList, tags=["raffles"])
def list_raffles(service: RaffleService = Depends(_raffle_service)):
    raffles = service.list_raffles()
    return schemas.RaffleList(total=len(raffles), items=raffles)


@app.post("/raffles", response_model=schemas.Raffle, status_code=201, tags=["raffles"])
def create_raffle(payload: schemas.RaffleCreate, service: RaffleService = Depends(_raffle_service)):
    """Create a raffle; every other raffle is deactivated."""

    return service.create_raffle(**payload.model_dump())


@app.get("/raffles/active", response_model=schemas.Raffle, tags=["raffles"])
def get_active_raffle(service: RaffleService = Depends(_raffle_service)):
    raffle = service.get_active_raffle()
    if raffle is None:
        raise HTTPException(status_code=404, detail="No active raffle")
    return raffle


@app.get("/raffles/{raffle_id}", response_model=schemas.Raffle, tags=["raffles"])
def get_raffle(raffle_id: int, service: RaffleService = Depends(_raffle_service)):
    return service.get_raffle(raffle_id)


@app.patch("/raffles/{raffle_id}", response_model=schemas.Raffle, tags=["raffles"])
def update_raffle(
    raffle_id: int,
    payload: schemas.RaffleUpdateRequest,
    service: RaffleService = Depends(_raffle_service),
):
    return service.update_raffle(raffle_id, RaffleUpdate(**payload.model_dump()))


@app.post("/raffles/{raffle_id}/sync-totals", response_model=schemas.TotalsSync, tags=["raffles"])
def sync_totals(raffle_id: int, service: RaffleService = Depends(_raffle_service)):
    """Reset the cached entry total to the real sum of completed raffle entries."""

    return schemas.TotalsSync.model_validate(service.sync_totals(raffle_id))


@app.get("/raffles/{raffle_id}/stats", response_model=schemas.RaffleStats, tags=["raffles"])
def raffle_stats(raffle_id: int, service: RaffleService = Depends(_raffle_service)):
    return schemas.RaffleStats.model_validate(service.real_stats(raffle_id))


@app.post("/raffles/{raffle_id}/end", response_model=schemas.Raffle, tags=["raffles"])
def end_raffle(raffle_id: int, service: RaffleService = Depends(_raffle_service)):
    """Close the raffle now; winners can be drawn immediately afterwards."""

    return service.end_raffle(raffle_id)


@app.post("/raffles/{raffle_id}/extend", response_model=schemas.Raffle, tags=["raffles"])
def extend_raffle(
    raffle_id: int,
    payload: schemas.RaffleExtend,
    service: RaffleService = Depends(_raffle_service),
):
    return service.extend_raffle(raffle_id, payload.end_date)


# ----------------------------------------------------------------------
# Entries and payments


@app.post("/entries", response_model=schemas.Entry, status_code=201, tags=["entries"])
def create_entry(
    payload: schemas.EntryCreate,
    request: Request,
    service: PaymentService = Depends(_payment_service),
):
    """Record a purchase awaiting payment confirmation."""

    client_host = request.client.host if request.client else None
    return service.create_pending_entry(**payload.model_dump(), ip_address=client_host)


@app.get("/entries", response_model=list[schemas.Entry], tags=["entries"])
def list_entries(
    email: Annotated[str, Query(min_length=3, description="Purchaser email")],
    service: PaymentService = Depends(_payment_service),
):
    return service.entries_for_email(email)


@app.post("/entries/{entry_id}/refund", response_model=schemas.Entry, tags=["entries"])
def refund_entry(entry_id: int, service: PaymentService = Depends(_payment_service)):
    return service.mark_refunded(entry_id)


@app.post("/entries/{entry_id}/tickets", response_model=schemas.TicketAssignment, tags=["tickets"])
def assign_tickets(entry_id: int, allocator: TicketAllocator = Depends(_ticket_allocator)):
    """Mint tickets for a completed entry; repeated calls return the existing block."""

    return allocator.assign_tickets(entry_id)


@app.post("/payments/succeeded", response_model=schemas.PaymentOutcome, tags=["payments"])
def payment_succeeded(payload: schemas.PaymentSucceeded, service: PaymentService = Depends(_payment_service)):
    return service.handle_payment_success(
        payload.payment_session_id,
        payment_intent_id=payload.payment_intent_id,
        event_id=payload.event_id,
        raw_data=payload.raw_data,
    )


@app.post("/payments/failed", response_model=schemas.PaymentOutcome, tags=["payments"])
def payment_failed(payload: schemas.PaymentFailed, service: PaymentService = Depends(_payment_service)):
    return service.handle_payment_failure(
        payload.payment_session_id,
        event_id=payload.event_id,
        error_message=payload.error_message,
        raw_data=payload.raw_data,
    )


@app.get("/payments/events", response_model=list[schemas.PaymentEvent], tags=["payments"])
def list_payment_events(
    unprocessed: bool = False,
    event_type: str | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    db=Depends(get_db),
):
    """Webhook audit log; ``unprocessed`` lists events that matched no entry."""

    return crud.list_payment_events(db, limit=limit, event_type=event_type, unprocessed_only=unprocessed)


# ----------------------------------------------------------------------
# Tickets


@app.get("/raffles/{raffle_id}/tickets", response_model=schemas.TicketList, tags=["tickets"])
def list_tickets(
    raffle_id: int,
    email: Annotated[str, Query(min_length=3, description="Ticket owner email")],
    allocator: TicketAllocator = Depends(_ticket_allocator),
):
    tickets = allocator.tickets_for_email(raffle_id, email)
    return schemas.TicketList(total=len(tickets), items=tickets)


@app.get("/raffles/{raffle_id}/tickets/integrity", response_model=schemas.IntegrityReport, tags=["tickets"])
def validate_integrity(raffle_id: int, allocator: TicketAllocator = Depends(_ticket_allocator)):
    return allocator.validate_integrity(raffle_id)


@app.post("/raffles/{raffle_id}/tickets/rebuild", response_model=schemas.RebuildSummary, tags=["tickets"])
def rebuild_tickets(raffle_id: int, allocator: TicketAllocator = Depends(_ticket_allocator)):
    """Renumber the whole pool from 1 in payment-completion order."""

    return schemas.RebuildSummary.model_validate(allocator.rebuild_all_tickets(raffle_id))


@app.get(
    "/raffles/{raffle_id}/tickets/distribution",
    response_model=schemas.TicketDistribution,
    tags=["tickets"],
)
def ticket_distribution(raffle_id: int, allocator: TicketAllocator = Depends(_ticket_allocator)):
    return allocator.ticket_distribution(raffle_id)


@app.get("/raffles/{raffle_id}/tickets/{ticket_number}", response_model=schemas.Ticket, tags=["tickets"])
def get_ticket(raffle_id: int, ticket_number: int, allocator: TicketAllocator = Depends(_ticket_allocator)):
    ticket = allocator.ticket_by_number(raffle_id, ticket_number)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


# ----------------------------------------------------------------------
# Winners


def _schedule_notification(background_tasks: BackgroundTasks, notifier: WinnerNotifier):
    return lambda event: background_tasks.add_task(notifier.notify, event)


@app.post("/raffles/{raffle_id}/winners", response_model=schemas.DrawResult, status_code=201, tags=["winners"])
def select_winner(
    raffle_id: int,
    background_tasks: BackgroundTasks,
    force: bool = False,
    selector: WinnerSelector = Depends(_winner_selector),
    notifier: WinnerNotifier = Depends(_winner_notifier),
):
    """Draw the next winner; the admin notification is sent after the response.

    Open raffles are refused unless ``force`` is set.
    """

    return selector.select_winner(
        raffle_id, force=force, on_winner=_schedule_notification(background_tasks, notifier)
    )


@app.post("/raffles/{raffle_id}/winners/auto", response_model=schemas.AutoDrawOutcome, tags=["winners"])
def draw_if_ended(
    raffle_id: int,
    background_tasks: BackgroundTasks,
    selector: WinnerSelector = Depends(_winner_selector),
    notifier: WinnerNotifier = Depends(_winner_notifier),
):
    """End-of-raffle trigger for one raffle; a no-op while it is open or complete."""

    outcome = selector.draw_if_ended(raffle_id, on_winner=_schedule_notification(background_tasks, notifier))
    return schemas.AutoDrawOutcome.model_validate(outcome)


@app.post("/scheduled-draws", response_model=list[schemas.AutoDrawOutcome], tags=["winners"])
def draw_ended_raffles(
    background_tasks: BackgroundTasks,
    selector: WinnerSelector = Depends(_winner_selector),
    notifier: WinnerNotifier = Depends(_winner_notifier),
):
    """Sweep every ended raffle with an open winner slot; meant for a cron caller."""

    outcomes = selector.draw_ended_raffles(on_winner=_schedule_notification(background_tasks, notifier))
    return [schemas.AutoDrawOutcome.model_validate(outcome) for outcome in outcomes]


@app.get("/raffles/{raffle_id}/winners", response_model=schemas.WinnerList, tags=["winners"])
def list_winners(
    raffle_id: int,
    include_inactive: bool = False,
    selector: WinnerSelector = Depends(_winner_selector),
):
    slots = selector.winner_slots(raffle_id)
    winners = selector.list_winners(raffle_id, include_inactive=include_inactive)
    return schemas.WinnerList(
        raffle_id=raffle_id,
        max_winners=slots.max_winners,
        active_winners=slots.active_winners,
        remaining_winners=slots.remaining_winners,
        state=slots.state.value,
        items=winners,
    )


@app.post("/raffles/{raffle_id}/winners/reset", response_model=schemas.ResetSummary, tags=["winners"])
def reset_winners(
    raffle_id: int,
    payload: schemas.ResetRequest,
    selector: WinnerSelector = Depends(_winner_selector),
):
    return selector.reset_winners(raffle_id, payload.confirmation)


@app.get("/winners/{winner_id}", response_model=schemas.Winner, tags=["winners"])
def get_winner(winner_id: int, selector: WinnerSelector = Depends(_winner_selector)):
    return selector.get_winner(winner_id)


@app.get("/winners/{winner_id}/verify", response_model=schemas.VerificationResult, tags=["winners"])
def verify_winner(winner_id: int, selector: WinnerSelector = Depends(_winner_selector)):
    """Recompute the stored verification hash for a winner."""

    return selector.verify(winner_id)


@app.post("/winners/{winner_id}/contacted", response_model=schemas.Winner, tags=["winners"])
def mark_contacted(
    winner_id: int,
    payload: schemas.ContactUpdate,
    selector: WinnerSelector = Depends(_winner_selector),
):
    return selector.mark_contacted(winner_id, notes=payload.notes)


@app.post("/winners/{winner_id}/delivered", response_model=schemas.Winner, tags=["winners"])
def mark_delivered(
    winner_id: int,
    payload: schemas.DeliveryUpdate,
    selector: WinnerSelector = Depends(_winner_selector),
):
    return selector.mark_prize_delivered(
        winner_id, delivery_address=payload.delivery_address, notes=payload.notes
    )


# ----------------------------------------------------------------------
# Notifications


@app.get("/notifications", response_model=list[schemas.AdminNotification], tags=["notifications"])
def list_notifications(
    unread_only: bool = False,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    repo: NotificationRepository = Depends(_notification_repository),
):
    return repo.list_notifications(unread_only=unread_only, limit=limit)


@app.post(
    "/notifications/{notification_id}/read",
    response_model=schemas.AdminNotification,
    tags=["notifications"],
)
def mark_notification_read(notification_id: int, db=Depends(get_db)):
    notification = crud.mark_notification_read(db, notification_id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification
