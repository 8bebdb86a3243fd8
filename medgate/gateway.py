"""
Conversation gateway: one user message in, one assistant answer out.

Coze answers asynchronously, so a send is submit-then-poll:

1. submit the message (fatal on any failure, no retry here);
2. poll the chat status with backoff until it is completed or failed;
3. if the status never flips, poll the message list directly for a while,
   because Coze sometimes publishes the answer before updating the status;
4. give up with BackendTimeout once both stages are spent or the total
   wall-clock budget would be exceeded.

Polls are strictly sequential and never overlap for the same chat.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .coze import STATUS_COMPLETED, TERMINAL_FAILURES, pick_answer
from .errors import BackendError, BackendRejected, BackendTimeout, PollingStopped

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    initial: float
    multiplier: float
    cap: float
    max_attempts: int
    error_multiplier: float = 1.5
    error_cap: float = 3.0

    def next_delay(self, delay: float, error: bool = False) -> float:
        if error:
            return min(delay * self.error_multiplier, self.error_cap)
        return min(delay * self.multiplier, self.cap)

    def schedule(self):
        """Delays used when every attempt comes back pending."""
        delays = []
        delay = self.initial
        for _ in range(self.max_attempts):
            delays.append(delay)
            delay = self.next_delay(delay)
        return delays


# Status polling: short first wait, gentle growth while the bot is still working
STATUS_POLICY = BackoffPolicy(initial=0.5, multiplier=1.2, cap=2.0, max_attempts=20)
# Message-list fallback after the status stage gives up
MESSAGE_POLICY = BackoffPolicy(initial=1.0, multiplier=1.5, cap=3.0, max_attempts=10)


@dataclass(frozen=True)
class ChatReply:
    answer: str
    conversation_id: str
    chat_id: str
    status_checks: int = 0
    message_checks: int = 0

    def to_dict(self):
        return {'answer': self.answer, 'conversation_id': self.conversation_id}


class ConversationGateway:
    def __init__(self, client, status_policy: BackoffPolicy = STATUS_POLICY,
                 message_policy: BackoffPolicy = MESSAGE_POLICY, total_budget: float = 60.0,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.status_policy = status_policy
        self.message_policy = message_policy
        self.total_budget = total_budget
        self._sleep = sleep
        self._clock = clock

    def send(self, user_id: str, text: str, conversation_id: Optional[str] = None,
             should_stop: Optional[Callable[[], bool]] = None) -> ChatReply:
        started = self._clock()
        submission = self.client.submit(user_id, text, conversation_id)
        logger.info(f"Chat submitted: chat_id={submission.chat_id} conversation_id={submission.conversation_id}")

        answer, status_checks = self._poll_status(submission, started, should_stop)
        message_checks = 0
        if answer is None:
            logger.warning(f"Status polling exhausted for chat {submission.chat_id}, falling back to message list")
            answer, message_checks = self._poll_messages(submission, started, should_stop)

        elapsed = round(self._clock() - started, 2)
        logger.info(f"Chat {submission.chat_id} answered in {elapsed}s "
                    f"({status_checks} status checks, {message_checks} message checks)")
        return ChatReply(
            answer=answer,
            conversation_id=submission.conversation_id,
            chat_id=submission.chat_id,
            status_checks=status_checks,
            message_checks=message_checks,
        )

    def _wait(self, delay, started, should_stop):
        if should_stop is not None and should_stop():
            raise PollingStopped()
        if self._clock() - started + delay > self.total_budget:
            raise BackendTimeout(f'No answer within {self.total_budget:g}s')
        self._sleep(delay)

    def _poll_status(self, submission, started, should_stop):
        policy = self.status_policy
        delay = policy.initial
        checks = 0
        for attempt in range(1, policy.max_attempts + 1):
            self._wait(delay, started, should_stop)
            checks += 1
            try:
                status = self.client.retrieve(submission)
            except BackendError as e:
                logger.warning(f"Status check {attempt} failed: {e.message}")
                delay = policy.next_delay(delay, error=True)
                continue
            logger.debug(f"Status check {attempt}: {status} (delay {delay:.2f}s)")

            if status == STATUS_COMPLETED:
                try:
                    messages = self.client.list_messages(submission)
                except BackendError as e:
                    logger.warning(f"Message list after completion failed: {e.message}")
                    delay = policy.next_delay(delay, error=True)
                    continue
                answer = pick_answer(messages)
                if answer is None:
                    raise BackendRejected('Chat completed without an assistant answer')
                return answer, checks
            if status in TERMINAL_FAILURES:
                raise BackendRejected(f'Chat backend reported status "{status}"')
            delay = policy.next_delay(delay)
        return None, checks

    def _poll_messages(self, submission, started, should_stop):
        policy = self.message_policy
        delay = policy.initial
        checks = 0
        for attempt in range(1, policy.max_attempts + 1):
            self._wait(delay, started, should_stop)
            try:
                checks += 1
                answer = pick_answer(self.client.list_messages(submission))
            except BackendError as e:
                logger.warning(f"Message poll {attempt} failed: {e.message}")
                delay = policy.next_delay(delay, error=True)
                continue
            if answer is not None:
                return answer, checks
            delay = policy.next_delay(delay)
        raise BackendTimeout('Timed out waiting for the chat backend to answer')
