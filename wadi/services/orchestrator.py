"""Run orchestration: validate, bill, generate, persist, refund on failure."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy.orm import Session

from wadi.config import settings
from wadi.errors import InsufficientCreditsError, InvalidInputError, ProviderError, WadiError
from wadi.models.run import TERMINAL_STATUSES, Run
from wadi.services.credits import CreditLedger
from wadi.services.model_catalog import credit_cost, is_valid_model
from wadi.services.sessions import get_or_create_active_session, get_owned_project
from wadi.services.vector_memory import VectorMemoryService

logger = logging.getLogger(__name__)

MAX_INPUT_LENGTH = 5000
DEBIT_REASON = "generation"
REFUND_REASON = "generation failed - refund"


@dataclass
class RunTicket:
    """A validated, paid-for generation that has not run yet."""

    user_id: str
    project_id: uuid.UUID
    session_id: Optional[uuid.UUID]
    input: str
    model: str
    cost: int
    balance_before: int

    @property
    def credits_remaining(self) -> int:
        return self.balance_before - self.cost


@dataclass
class RunResult:
    run: Run
    credits_used: int
    credits_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": self.run.to_dict(),
            "credits_used": self.credits_used,
            "credits_remaining": self.credits_remaining,
        }


class RunOrchestrator:
    """Sequences debit -> generate -> persist as one unit of work.

    The debit always precedes generation and a failed generation is always
    followed by an equal refund. Both the request/response and the
    streaming paths go through ``reserve``.
    """

    def __init__(
        self,
        db: Session,
        provider,
        ledger: Optional[CreditLedger] = None,
        memory: Optional[VectorMemoryService] = None,
        memory_enabled: Optional[bool] = None,
        system_prompt: Optional[str] = None,
    ):
        self.db = db
        self.provider = provider
        self.ledger = ledger or CreditLedger(db)
        self.memory = memory
        self.memory_enabled = settings.MEMORY_ENABLED if memory_enabled is None else memory_enabled
        self.system_prompt = settings.SYSTEM_PROMPT if system_prompt is None else system_prompt

    def validate(self, input_text, model: Optional[str]) -> tuple:
        """Return the trimmed input and the effective model, or raise InvalidInputError."""
        if not isinstance(input_text, str) or not input_text.strip():
            raise InvalidInputError("Input is required")
        if len(input_text) > MAX_INPUT_LENGTH:
            raise InvalidInputError(f"Input must be {MAX_INPUT_LENGTH} characters or less")

        selected_model = model or settings.LLM_DEFAULT_MODEL
        if not is_valid_model(selected_model):
            raise InvalidInputError("Invalid model name")

        return input_text.strip(), selected_model

    def reserve(self, user_id: str, project_id, input_text, model: Optional[str] = None) -> RunTicket:
        """
        Validate the request, resolve the session and debit the cost.

        Raises:
            InvalidInputError: Bad input or model, before any side effect
            ProjectNotFoundError: Unknown project or not the caller's
            InsufficientCreditsError: Balance below cost, nothing debited
        """
        input_text, model = self.validate(input_text, model)
        project = get_owned_project(self.db, user_id, project_id)
        session = get_or_create_active_session(self.db, user_id, project.project_id)

        cost = credit_cost(model)
        balance = self.ledger.get_balance(user_id)
        if balance < cost:
            raise InsufficientCreditsError(required=cost, available=balance)

        debit = self.ledger.debit(
            user_id,
            cost,
            DEBIT_REASON,
            {"model": model, "project_id": str(project.project_id)},
        )
        if not debit.success:
            # A concurrent debit drained the balance after our check
            raise InsufficientCreditsError(required=cost, available=debit.new_balance)

        return RunTicket(
            user_id=user_id,
            project_id=project.project_id,
            session_id=session.session_id,
            input=input_text,
            model=model,
            cost=cost,
            balance_before=balance,
        )

    def create_run(self, user_id: str, project_id, input_text, model: Optional[str] = None) -> RunResult:
        """Non-streaming generation. Raises ProviderError after refunding on failure."""
        ticket = self.reserve(user_id, project_id, input_text, model)

        try:
            messages = self._build_messages(ticket)
            output = self.provider.complete(messages, ticket.model)
        except Exception as e:
            logger.error(f"AI generation error for user {user_id}: {e}")
            self._refund(ticket, e)
            error = self._as_provider_error(e, ticket)
            if error is e:
                raise
            raise error from e

        run = self._persist(ticket, output, "complete")
        self._remember(run)
        return RunResult(run=run, credits_used=ticket.cost, credits_remaining=ticket.credits_remaining)

    def stream(
        self,
        ticket: RunTicket,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> Iterator[Dict[str, Any]]:
        """
        Generate for a reserved ticket, yielding transport-neutral events.

        Events: ``chunk`` per fragment, then one of ``complete``,
        ``stopped`` or ``error``. ``should_stop`` is polled between chunks;
        once it returns True the text so far is persisted as a stopped run
        and nothing more is forwarded. The upstream call is not aborted.
        A stream that ends without any chunk is a failed generation.
        """
        parts: List[str] = []
        stopped = False

        try:
            messages = self._build_messages(ticket)
            for chunk in self.provider.complete_stream(messages, ticket.model):
                if should_stop is not None and should_stop():
                    stopped = True
                    break
                parts.append(chunk)
                yield {"type": "chunk", "content": chunk}
        except GeneratorExit:
            # Client went away mid-stream
            logger.info(f"Stream for user {ticket.user_id} closed by client after {len(parts)} chunks")
            self._persist(ticket, "".join(parts), "stopped")
            raise
        except Exception as e:
            logger.error(f"AI stream error for user {ticket.user_id}: {e}")
            # Partial output is discarded
            yield self._failed_event(ticket, e)
            return

        if stopped or (should_stop is not None and should_stop()):
            yield self._stopped_event(ticket, parts)
            return

        if not parts:
            logger.error(f"AI stream for user {ticket.user_id} ended without output")
            yield self._failed_event(ticket, ProviderError("No response generated from LLM"))
            return

        run = self._persist(ticket, "".join(parts), "complete")
        self._remember(run)
        yield {"type": "complete", "run": run.to_dict()}

    def _stopped_event(self, ticket: RunTicket, parts: List[str]) -> Dict[str, Any]:
        run = self._persist(ticket, "".join(parts), "stopped")
        logger.info(f"Run {run.run_id} stopped by client after {len(parts)} chunks")
        return {"type": "stopped", "run": run.to_dict()}

    def _failed_event(self, ticket: RunTicket, error: Exception) -> Dict[str, Any]:
        self._refund(ticket, error)
        provider_error = self._as_provider_error(error, ticket)
        return {"type": "error", "message": provider_error.message, "code": provider_error.code}

    def _build_messages(self, ticket: RunTicket) -> List[Dict[str, str]]:
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})

        if self.memory_enabled and self.memory is not None:
            try:
                context = self.memory.get_context(
                    ticket.user_id, ticket.project_id, ticket.input, settings.MEMORY_CONTEXT_TOKENS
                )
            except WadiError as e:
                logger.warning(f"Memory context unavailable: {e}")
                context = ""
            if context:
                messages.append({"role": "system", "content": context})

        messages.append({"role": "user", "content": ticket.input})
        return messages

    def _persist(self, ticket: RunTicket, output: str, status: str) -> Run:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Runs are persisted in a terminal status, not {status!r}")
        run = Run(
            user_id=ticket.user_id,
            project_id=ticket.project_id,
            session_id=ticket.session_id,
            input=ticket.input,
            output=output,
            model=ticket.model,
            status=status,
        )
        self.db.add(run)
        self.db.commit()
        logger.info(f"Persisted run {run.run_id} ({status}) for project {ticket.project_id}")
        return run

    def _refund(self, ticket: RunTicket, error: Exception) -> None:
        """Return the debited credits. Failures are logged, never retried."""
        # The debit is already committed; drop anything the failure left pending
        self.db.rollback()
        try:
            self.ledger.credit(
                ticket.user_id,
                ticket.cost,
                REFUND_REASON,
                {"model": ticket.model, "project_id": str(ticket.project_id), "error": str(error)},
            )
        except Exception as refund_error:
            self.db.rollback()
            logger.error(
                f"Refund of {ticket.cost} credits for user {ticket.user_id} failed: {refund_error}",
                exc_info=True,
            )

    def _remember(self, run: Run) -> None:
        if not self.memory_enabled or self.memory is None:
            return
        try:
            self.memory.create_memory_from_run(
                run.user_id, run.project_id, run.run_id, run.input, run.output
            )
        except WadiError as e:
            logger.warning(f"Could not store memory for run {run.run_id}: {e}")

    @staticmethod
    def _as_provider_error(error: Exception, ticket: RunTicket) -> ProviderError:
        if isinstance(error, ProviderError):
            provider_error = error
        else:
            provider_error = ProviderError(str(error) or "Failed to generate AI response")
        provider_error.model = ticket.model
        provider_error.timestamp = datetime.utcnow().isoformat()
        return provider_error
